"""
Centralized Configuration - Single source of truth for all settings.

All environment variables are read here, validated, and exposed as module-level
constants. Other modules import from here instead of reading os.environ directly.

Usage:
    from src.config import DB_PATH, OPENAI_MODEL, ORACLE_TIMEOUT
"""

import os
import sys

# ─── PATHS ───────────────────────────────────────────────────

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
LOGS_DIR = os.path.join(PROJECT_ROOT, "logs")

# ─── DATABASE ────────────────────────────────────────────────

DB_PATH = os.environ.get("SDR_DB_PATH", os.path.join(PROJECT_ROOT, "sdr_agent.db"))
DB_JOURNAL_MODE = os.environ.get("SDR_JOURNAL_MODE", "WAL")
DB_BUSY_TIMEOUT = float(os.environ.get("SDR_DB_BUSY_TIMEOUT_SECONDS", "5"))

# ─── ORACLE (chat-completion model) ──────────────────────────

OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
ORACLE_TIMEOUT = float(os.environ.get("SDR_ORACLE_TIMEOUT_SECONDS", "20"))
ORACLE_TEMPERATURE = float(os.environ.get("SDR_ORACLE_TEMPERATURE", "0.4"))
ORACLE_MAX_TOKENS = int(os.environ.get("SDR_ORACLE_MAX_TOKENS", "500"))

# ─── API ─────────────────────────────────────────────────────

API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "8000"))
CORS_ORIGINS = os.environ.get(
    "SDR_CORS_ORIGINS", "http://localhost:3000,http://localhost:5173,http://localhost:8000"
).split(",")

# ─── AGENT DEFAULTS ──────────────────────────────────────────

DEFAULT_REPLY_DELAY_SECONDS = int(os.environ.get("SDR_DEFAULT_REPLY_DELAY_SECONDS", "5"))

# ─── LOGGING ─────────────────────────────────────────────────

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "text" or "json"
LOG_FILE = os.environ.get("LOG_FILE", "")  # empty = stdout only

# ─── VALIDATION ──────────────────────────────────────────────

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_VALID_LOG_FORMATS = {"text", "json"}
_VALID_JOURNAL_MODES = {"WAL", "DELETE", "MEMORY", "OFF"}

_errors = []

if LOG_LEVEL not in _VALID_LOG_LEVELS:
    _errors.append(f"LOG_LEVEL must be one of {_VALID_LOG_LEVELS}, got '{LOG_LEVEL}'")

if LOG_FORMAT not in _VALID_LOG_FORMATS:
    _errors.append(f"LOG_FORMAT must be one of {_VALID_LOG_FORMATS}, got '{LOG_FORMAT}'")

if DB_BUSY_TIMEOUT < 0:
    _errors.append(f"SDR_DB_BUSY_TIMEOUT_SECONDS must be >= 0, got {DB_BUSY_TIMEOUT}")

if DB_JOURNAL_MODE not in _VALID_JOURNAL_MODES:
    _errors.append(f"SDR_JOURNAL_MODE must be one of {_VALID_JOURNAL_MODES}, got '{DB_JOURNAL_MODE}'")

if ORACLE_TIMEOUT <= 0:
    _errors.append(f"SDR_ORACLE_TIMEOUT_SECONDS must be positive, got {ORACLE_TIMEOUT}")

if not 0.0 <= ORACLE_TEMPERATURE <= 2.0:
    _errors.append(f"SDR_ORACLE_TEMPERATURE must be between 0 and 2, got {ORACLE_TEMPERATURE}")

if ORACLE_MAX_TOKENS < 1:
    _errors.append(f"SDR_ORACLE_MAX_TOKENS must be positive, got {ORACLE_MAX_TOKENS}")

if DEFAULT_REPLY_DELAY_SECONDS < 0:
    _errors.append(f"SDR_DEFAULT_REPLY_DELAY_SECONDS must be >= 0, got {DEFAULT_REPLY_DELAY_SECONDS}")

if _errors:
    for e in _errors:
        print(f"[config] ERROR: {e}", file=sys.stderr)
    # Don't crash during import - the API can still serve CRUD without the oracle


def validate(strict: bool = False) -> list:
    """Validate all configuration settings.

    Args:
        strict: If True, raise ValueError on any errors.

    Returns:
        List of error messages (empty if all valid).
    """
    errors = list(_errors)
    if not OPENAI_API_KEY:
        errors.append("OPENAI_API_KEY is not configured")
    if strict and errors:
        raise ValueError(f"Configuration errors: {'; '.join(errors)}")
    return errors


def print_config():
    """Print current configuration (safe - no secrets)."""
    print("=" * 50)
    print("SDR Agent Configuration")
    print("=" * 50)
    print(f"  DB_PATH:              {DB_PATH}")
    print(f"  DB_JOURNAL_MODE:      {DB_JOURNAL_MODE}")
    print(f"  DB_BUSY_TIMEOUT:      {DB_BUSY_TIMEOUT}s")
    print(f"  OPENAI_BASE_URL:      {OPENAI_BASE_URL}")
    print(f"  OPENAI_MODEL:         {OPENAI_MODEL}")
    print(f"  OPENAI_API_KEY:       {'set' if OPENAI_API_KEY else 'MISSING'}")
    print(f"  ORACLE_TIMEOUT:       {ORACLE_TIMEOUT}s")
    print(f"  ORACLE_TEMPERATURE:   {ORACLE_TEMPERATURE}")
    print(f"  ORACLE_MAX_TOKENS:    {ORACLE_MAX_TOKENS}")
    print(f"  API_HOST:             {API_HOST}")
    print(f"  API_PORT:             {API_PORT}")
    print(f"  LOG_LEVEL:            {LOG_LEVEL}")
    print(f"  LOG_FORMAT:           {LOG_FORMAT}")
    print(f"  PROJECT_ROOT:         {PROJECT_ROOT}")
    print("=" * 50)


if __name__ == "__main__":
    print_config()
    for err in validate():
        print(f"  WARNING: {err}")
