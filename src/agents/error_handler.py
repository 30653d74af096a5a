"""
Agent Error Handler - Captures and logs non-fatal agent errors.

A turn must always produce a reply, so failures on the side paths (audit
writes, oracle outages, stage conflicts) are not raised to the caller.
Instead they are recorded with log_agent_error(), which writes to the
agent_errors table and the logger so operators can see what went wrong.

Usage:
    from src.agents.error_handler import log_agent_error, safe_execute

    # Option 1: Manual logging
    try:
        models.insert_ai_log(entry)
    except Exception as e:
        log_agent_error(phase="audit", error=e, conversation_id=cid)

    # Option 2: Safe execution wrapper
    log_id = safe_execute(
        models.insert_ai_log, args=(entry,),
        phase="audit", conversation_id=cid, fallback=None,
    )
"""

import json
import logging
import traceback
from typing import Any, Callable

from src.db.connection import get_db_conn

logger = logging.getLogger("sdr.error_handler")


def log_agent_error(
    phase: str,
    error: Exception = None,
    error_message: str = None,
    conversation_id: str = None,
    component: str = None,
    context: dict = None,
    severity: str = "warning",
):
    """Log a non-fatal agent error to the database and logger.

    Args:
        phase: Where the error occurred (classify, audit, stage_write, ...)
        error: The exception object (optional if error_message provided)
        error_message: Human-readable error description
        conversation_id: Associated conversation
        component: Which agent component encountered the error
        context: Additional context dict
        severity: "warning", "error", or "critical"
    """
    msg = error_message or (str(error) if error else "Unknown error")
    error_type = type(error).__name__ if error else "UnknownError"

    log_extra = {
        "phase": phase,
        "conversation_id": conversation_id or "",
    }

    if severity == "critical":
        logger.critical("Agent error in %s: %s", phase, msg, extra=log_extra)
    elif severity == "error":
        logger.error("Agent error in %s: %s", phase, msg, extra=log_extra)
    else:
        logger.warning("Agent error in %s: %s", phase, msg, extra=log_extra)

    try:
        with get_db_conn() as conn:
            conn.execute("""
                INSERT INTO agent_errors
                    (conversation_id, phase, component, error_type,
                     error_message, context, severity)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                conversation_id, phase, component,
                error_type, msg, json.dumps(context or {}, default=str), severity,
            ))
    except Exception as db_err:
        # If we can't even log the error to the DB, the logger line above still stands
        logger.error("Failed to log agent error to DB: %s", db_err)


def safe_execute(
    fn: Callable,
    args: tuple = (),
    kwargs: dict = None,
    phase: str = "unknown",
    component: str = None,
    conversation_id: str = None,
    fallback: Any = None,
    severity: str = "warning",
) -> Any:
    """Execute a function with automatic error capture.

    If the function raises, the error is logged and the fallback value is returned.
    The function is called exactly once.
    """
    kwargs = kwargs or {}
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        log_agent_error(
            phase=phase,
            error=e,
            conversation_id=conversation_id,
            component=component,
            context={"function": getattr(fn, "__name__", repr(fn)),
                     "traceback": traceback.format_exc()[-500:]},
            severity=severity,
        )
        return fallback


def get_errors(conversation_id: str = None, severity: str = None,
               unresolved_only: bool = True) -> list:
    """Get agent errors, optionally filtered.

    Returns list of error dicts.
    """
    query = "SELECT * FROM agent_errors WHERE 1=1"
    params = []

    if conversation_id:
        query += " AND conversation_id=?"
        params.append(conversation_id)
    if severity:
        query += " AND severity=?"
        params.append(severity)
    if unresolved_only:
        query += " AND resolved=0"

    query += " ORDER BY created_at DESC, id DESC"
    with get_db_conn() as conn:
        rows = conn.execute(query, params).fetchall()
    return [dict(r) for r in rows]


def resolve_error(error_id: int) -> bool:
    """Mark an agent error as resolved. Returns False when no such error exists."""
    with get_db_conn() as conn:
        cur = conn.execute("UPDATE agent_errors SET resolved=1 WHERE id=?", (error_id,))
        return cur.rowcount == 1
