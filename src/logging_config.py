"""
Structured Logging Configuration - Single setup for all modules.

Call setup_logging() once at application startup. All modules then use:
    import logging
    logger = logging.getLogger("sdr.<area>")

Turn-level context is attached with extra={...} (see TURN_FIELDS). Both
formats surface it:
- "text": one readable line, with conv/stage/rule appended in brackets
- "json": JSON lines with every turn field as a top-level key

Lead messages end up in prompt previews, so every handler runs through
RedactingFilter: phone numbers and API keys never reach the log sink.

Usage:
    from src.logging_config import setup_logging
    setup_logging()  # level/format/file come from src.config
"""

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone

from src import config

# Extra fields the agent attaches via logger.info(..., extra={...})
TURN_FIELDS = (
    "conversation_id", "request_id", "persona_id", "stage", "label_id",
    "rule", "phase", "duration_ms",
)

# Short tags the text formatter uses for the fields worth reading on a terminal
_TEXT_TAGS = (("conversation_id", "conv"), ("stage", "stage"), ("rule", "rule"),
              ("phase", "phase"), ("duration_ms", "ms"))

_API_KEY_RE = re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}")
# E.164-ish numbers and Brazilian mobile formats: +55 11 99999-9999, 5511999999999
_PHONE_RE = re.compile(r"(?<!\w)\+?\d[\d\s().\-]{8,}\d(?!\w)")


def _mask_phone(match: re.Match) -> str:
    digits = re.sub(r"\D", "", match.group())
    # Dates and timings stay readable; phone numbers carry 11+ digits
    if len(digits) < 11:
        return match.group()
    return "***" + digits[-4:]


def redact(text: str) -> str:
    """Mask API keys and phone numbers in a log message."""
    text = _API_KEY_RE.sub("sk-***", text)
    return _PHONE_RE.sub(_mask_phone, text)


class RedactingFilter(logging.Filter):
    """Rewrites record messages in place so every formatter sees the masked text."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = redact(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter for production use."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": redact(str(record.exc_info[1])),
            }

        for key in TURN_FIELDS:
            value = getattr(record, key, None)
            if value not in (None, ""):
                log_entry[key] = value

        return json.dumps(log_entry, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        tags = [f"{tag}={getattr(record, key)}" for key, tag in _TEXT_TAGS
                if getattr(record, key, None) not in (None, "")]
        return f"{line} [{' '.join(tags)}]" if tags else line


_initialized = False


def setup_logging(level: str = None, fmt: str = None, log_file: str = None):
    """Configure logging for the entire application.

    Should be called once at startup. Safe to call multiple times (idempotent).

    Args:
        level: Log level override (default: config.LOG_LEVEL)
        fmt: Format override ("text" or "json", default: config.LOG_FORMAT)
        log_file: Log file path override (default: config.LOG_FILE)
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    level = level or config.LOG_LEVEL
    fmt = fmt or config.LOG_FORMAT
    log_file = log_file or config.LOG_FILE

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    # Replaces whatever handlers uvicorn or a previous basicConfig installed
    root.handlers.clear()

    formatter = JSONFormatter() if fmt == "json" else TextFormatter()
    redacting = RedactingFilter()
    for handler in _build_handlers(log_file):
        handler.setFormatter(formatter)
        handler.addFilter(redacting)
        root.addHandler(handler)

    for noisy in ("asyncio", "uvicorn.access", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger("sdr").info("Logging configured: level=%s, format=%s%s",
                                  level, fmt, f", file={log_file}" if log_file else "")


def _build_handlers(log_file: str) -> list:
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    return handlers
