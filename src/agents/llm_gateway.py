"""
SDR Agent - LLM Gateway
Provides a single interface for the chat-completion calls the agent makes.

Features:
- OpenAI-compatible /chat/completions client with a hard overall deadline
  (connect, headers and body together, not per socket read)
- Exactly one attempt per call (a failed turn degrades to the fallback reply
  instead of re-querying)
- Request tracing with stage names
- Logging redaction (no secrets, prompt previews only)
"""

import json
import logging
import socket
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from urllib.request import urlopen, Request
from urllib.error import URLError, HTTPError

from src.config import (
    OPENAI_API_KEY, OPENAI_BASE_URL, OPENAI_MODEL,
    ORACLE_TIMEOUT, ORACLE_TEMPERATURE, ORACLE_MAX_TOKENS,
)

logger = logging.getLogger("sdr.agents.llm_gateway")

READ_CHUNK_BYTES = 8192

# Oracle calls run here so the caller can stop waiting at the deadline even
# when the server keeps trickling bytes
_oracle_pool = ThreadPoolExecutor(max_workers=8, thread_name_prefix="oracle")


# ─── ERRORS ────────────────────────────────────────────────────

class LLMError(Exception):
    """Raised when the chat-completion service returns an error or is unreachable."""
    pass


class LLMTimeoutError(LLMError):
    """Raised when the service does not answer within the configured timeout."""
    pass


# ─── OPENAI CLIENT ─────────────────────────────────────────────

class OpenAIClient:
    """Minimal OpenAI-compatible HTTP client."""

    def __init__(self, api_key: str = None, base_url: str = None,
                 model: str = None, timeout: float = None):
        self.api_key = api_key if api_key is not None else OPENAI_API_KEY
        self.base_url = (base_url or OPENAI_BASE_URL).rstrip("/")
        self.model = model or OPENAI_MODEL
        self.timeout = timeout or ORACLE_TIMEOUT

    def chat(self, messages: list, model: str = None, temperature: float = None,
             max_tokens: int = None, json_mode: bool = True) -> dict:
        """Send a single chat-completion request.

        Args:
            messages: OpenAI-style [{"role": ..., "content": ...}] list.
            model: Override model (uses default if None).
            temperature: Sampling temperature.
            max_tokens: Max tokens to generate.
            json_mode: Ask for a JSON object response.

        Returns:
            {"content": str, "model": str, "usage": dict}

        Raises:
            LLMTimeoutError: The call exceeded the timeout.
            LLMError: Any other transport or HTTP failure.
        """
        if not self.api_key:
            raise LLMError("OPENAI_API_KEY is not configured")

        model = model or self.model
        payload = {
            "model": model,
            "messages": messages,
            "temperature": ORACLE_TEMPERATURE if temperature is None else temperature,
            "max_tokens": max_tokens or ORACLE_MAX_TOKENS,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        req = Request(
            f"{self.base_url}/chat/completions",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            method="POST",
        )

        deadline = time.monotonic() + self.timeout
        future = _oracle_pool.submit(self._post, req, deadline)
        try:
            data = future.result(timeout=self.timeout)
        except FuturesTimeoutError as e:
            future.cancel()
            raise LLMTimeoutError(f"No response within {self.timeout}s") from e
        except HTTPError as e:
            error_body = ""
            try:
                error_body = e.read().decode()
            except OSError:
                pass
            raise LLMError(f"HTTP {e.code}: {error_body[:200]}") from e
        except URLError as e:
            if isinstance(e.reason, (socket.timeout, TimeoutError)):
                raise LLMTimeoutError(f"No response within {self.timeout}s") from e
            raise LLMError(f"Connection error: {e.reason}") from e
        except (socket.timeout, TimeoutError) as e:
            raise LLMTimeoutError(f"No response within {self.timeout}s") from e
        except ValueError as e:
            raise LLMError(f"Response body is not JSON: {e}") from e

        choices = data.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
        return {
            "content": content,
            "model": data.get("model", model),
            "usage": data.get("usage", {}),
        }

    def _post(self, req: Request, deadline: float) -> dict:
        """Runs on the oracle pool. The socket timeout only bounds each recv, so the
        body is read in chunks and abandoned once the overall deadline passes."""
        with urlopen(req, timeout=self.timeout) as resp:
            chunks = []
            while True:
                if time.monotonic() > deadline:
                    raise LLMTimeoutError(f"Response still arriving after {self.timeout}s")
                chunk = resp.read1(READ_CHUNK_BYTES)
                if not chunk:
                    break
                chunks.append(chunk)
        return json.loads(b"".join(chunks).decode())


# ─── LLM GATEWAY (unified interface) ──────────────────────────

class LLMGateway:
    """Unified LLM interface with tracing.

    Usage:
        gateway = LLMGateway()
        result = gateway.complete(
            messages=[{"role": "system", "content": "..."}],
            stage_name="classify",
        )
    """

    def __init__(self, client: OpenAIClient = None):
        self.client = client or OpenAIClient()

    def complete(self, messages: list, stage_name: str = "unknown",
                 model: str = None, temperature: float = None,
                 max_tokens: int = None, json_mode: bool = True,
                 request_id: str = None) -> dict:
        """Run one chat completion.

        Returns:
            {"content": str, "model": str, "request_id": str,
             "stage": str, "duration_ms": int}

        Raises:
            LLMError / LLMTimeoutError from the client, unchanged.
        """
        request_id = request_id or uuid.uuid4().hex[:12]
        start = time.time()

        last = messages[-1].get("content", "") if messages else ""
        preview = last[:80].replace("\n", " ") + ("..." if len(last) > 80 else "")
        logger.info(f"[{request_id}] LLM request: stage={stage_name}, "
                    f"messages={len(messages)}, last='{preview}'")

        try:
            result = self.client.chat(
                messages, model=model, temperature=temperature,
                max_tokens=max_tokens, json_mode=json_mode,
            )
        except LLMError as e:
            duration_ms = int((time.time() - start) * 1000)
            logger.warning(f"[{request_id}] LLM failed after {duration_ms}ms: {e}",
                           extra={"request_id": request_id, "duration_ms": duration_ms})
            raise

        duration_ms = int((time.time() - start) * 1000)
        logger.info(f"[{request_id}] LLM responded in {duration_ms}ms, "
                    f"tokens={result.get('usage', {}).get('total_tokens', '?')}",
                    extra={"request_id": request_id, "duration_ms": duration_ms})
        return {
            "content": result["content"],
            "model": result["model"],
            "request_id": request_id,
            "stage": stage_name,
            "duration_ms": duration_ms,
        }


# ─── MODULE-LEVEL SINGLETON ───────────────────────────────────

_gateway_instance = None


def get_gateway() -> LLMGateway:
    """Get or create the module-level LLM Gateway singleton."""
    global _gateway_instance
    if _gateway_instance is None:
        _gateway_instance = LLMGateway()
    return _gateway_instance
