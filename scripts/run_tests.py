#!/usr/bin/env python3
"""
Grouped test runner for the WhatsApp SDR Agent.

Each group runs as one pytest process so a failing group doesn't hide the
others. Test files under tests/ that no group lists are reported, so a new
test module can't silently drop out of CI.

Usage:
    python scripts/run_tests.py                    # every group
    python scripts/run_tests.py engine api         # selected groups
    python scripts/run_tests.py engine -k bot_loop # pass a -k filter through
    python scripts/run_tests.py --list             # show groups and files
"""

import argparse
import glob
import os
import subprocess
import sys
import time

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
GROUP_TIMEOUT_SECONDS = 300

TEST_SUITES = {
    "funnel": [
        "tests/unit/test_stage_registry.py",
        "tests/unit/test_progression.py",
    ],
    "classifier": [
        "tests/unit/test_classifier.py",
        "tests/unit/test_bot_detector.py",
        "tests/unit/test_llm_gateway.py",
    ],
    "engine": [
        "tests/unit/test_decision_emitter.py",
        "tests/unit/test_agent_settings.py",
        "tests/unit/test_conversation_lock.py",
        "tests/unit/test_sdr_agent.py",
    ],
    "platform": [
        "tests/unit/test_db.py",
        "tests/unit/test_error_handler.py",
        "tests/unit/test_logging_config.py",
    ],
    "api": [
        "tests/test_api.py",
    ],
}


def unlisted_test_files() -> list:
    listed = {path for files in TEST_SUITES.values() for path in files}
    found = glob.glob(os.path.join(PROJECT_ROOT, "tests", "**", "test_*.py"), recursive=True)
    return sorted(p for p in (os.path.relpath(f, PROJECT_ROOT) for f in found) if p not in listed)


def run_group(group: str, keyword: str = None) -> tuple:
    """Run one group through pytest. Returns (passed, summary line)."""
    files = [f for f in TEST_SUITES[group] if os.path.exists(os.path.join(PROJECT_ROOT, f))]
    missing = len(TEST_SUITES[group]) - len(files)
    if not files:
        return False, "no test files found"

    cmd = [sys.executable, "-m", "pytest", "-q", *files]
    if keyword:
        cmd += ["-k", keyword]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True,
                                timeout=GROUP_TIMEOUT_SECONDS, cwd=PROJECT_ROOT)
    except subprocess.TimeoutExpired:
        return False, f"timed out after {GROUP_TIMEOUT_SECONDS}s"

    lines = result.stdout.strip().splitlines()
    summary = lines[-1] if lines else (result.stderr.strip().splitlines() or ["no output"])[-1]
    if missing:
        summary += f" ({missing} listed file(s) missing)"
    # 5 = every test deselected by -k, not a failure
    return result.returncode in (0, 5) and not missing, summary


def main():
    parser = argparse.ArgumentParser(description="Run the SDR agent test groups")
    parser.add_argument("groups", nargs="*", help=f"groups to run (default: all): {', '.join(TEST_SUITES)}")
    parser.add_argument("-k", dest="keyword", help="pytest -k expression applied to every group")
    parser.add_argument("--list", action="store_true", help="list groups and exit")
    args = parser.parse_args()

    if args.list:
        for group, files in TEST_SUITES.items():
            print(f"{group}:")
            for f in files:
                print(f"  {f}")
        return

    unknown = [g for g in args.groups if g not in TEST_SUITES]
    if unknown:
        parser.error(f"unknown group(s) {', '.join(unknown)}; available: {', '.join(TEST_SUITES)}")
    groups = args.groups or list(TEST_SUITES)

    print("=" * 60)
    print("SDR AGENT TEST RUNNER")
    print("=" * 60)

    start = time.time()
    failed = []
    for group in groups:
        passed, summary = run_group(group, args.keyword)
        print(f"  {'PASS' if passed else 'FAIL'}: {group:<12} {summary}")
        if not passed:
            failed.append(group)

    stray = unlisted_test_files()
    if stray:
        print("\nNot in any group:")
        for path in stray:
            print(f"  - {path}")

    print(f"\n{len(groups) - len(failed)}/{len(groups)} groups passed ({time.time() - start:.1f}s)")
    print("=" * 60)
    sys.exit(1 if failed or stray else 0)


if __name__ == "__main__":
    main()
