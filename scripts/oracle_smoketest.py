#!/usr/bin/env python3
"""
Oracle Smoketest - Sends one tiny classification prompt to the configured
chat-completion endpoint and checks the reply parses.

Usage:
    python scripts/oracle_smoketest.py

Environment variables:
    OPENAI_API_KEY   (required)
    OPENAI_BASE_URL  (default: https://api.openai.com/v1)
    OPENAI_MODEL     (default: gpt-4o-mini)

Exit codes:
    0 - OK (endpoint reachable and reply parses as a classification)
    1 - FAIL (not configured, unreachable, or HTTP error)
    2 - DEGRADED (endpoint replied but the reply is not a valid classification)
"""

import sys
import os
import time

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src import config
from src.agents.classifier import parse_classification
from src.agents.llm_gateway import OpenAIClient, LLMError, LLMTimeoutError


PROBE_MESSAGES = [
    {"role": "system", "content": (
        'Reply only with a JSON object: {"response": "ok", "stage": "STAGE_1", '
        '"should_handoff": false}'
    )},
    {"role": "user", "content": "Oi"},
]


def main():
    print("=" * 50)
    print("ORACLE SMOKETEST")
    print("=" * 50)
    print(f"Base URL: {config.OPENAI_BASE_URL}")
    print(f"Model:    {config.OPENAI_MODEL}")
    print(f"Timeout:  {config.ORACLE_TIMEOUT}s")
    print()

    if not config.OPENAI_API_KEY:
        print("  FAIL: OPENAI_API_KEY is not set")
        return 1

    client = OpenAIClient()

    print("[1/2] Test prompt...")
    start = time.time()
    try:
        result = client.chat(PROBE_MESSAGES, temperature=0.0, max_tokens=50)
    except LLMTimeoutError as e:
        print(f"  FAIL: Timed out: {e}")
        return 1
    except LLMError as e:
        print(f"  FAIL: {e}")
        return 1

    duration = time.time() - start
    print(f"  Response: {result['content'][:80]}")
    print(f"  Model: {result['model']}")
    print(f"  Time: {duration:.1f}s")
    print(f"  Tokens: {result['usage'].get('total_tokens', '?')}")

    print()
    print("[2/2] Parse check...")
    parsed = parse_classification(result["content"])
    if not parsed.is_valid:
        print(f"  WARN: Reply did not parse ({parsed.detail})")
        return 2

    print(f"  OK: stage={parsed.proposed_stage}")
    print()
    print("OK - Oracle is working")
    return 0


if __name__ == "__main__":
    sys.exit(main())
