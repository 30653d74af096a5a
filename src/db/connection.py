"""
SDR Agent - SQLite connection helpers.

Every write the agent makes is small and per-conversation, but the API may run
several workers against one database file, so connections wait on a busy
database instead of failing and writes that depend on a previously read value
go through guarded_update().
"""

import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from src.config import DB_PATH, DB_BUSY_TIMEOUT

logger = logging.getLogger("sdr.db")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_db() -> sqlite3.Connection:
    """Open a connection to DB_PATH with Row access, foreign keys and the configured journal mode."""
    conn = sqlite3.connect(DB_PATH, timeout=DB_BUSY_TIMEOUT)
    conn.row_factory = sqlite3.Row
    # Read per call so tests can switch to DELETE without reloading config
    journal_mode = os.environ.get("SDR_JOURNAL_MODE", "WAL")
    conn.execute(f"PRAGMA journal_mode={journal_mode}")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


@contextmanager
def get_db_conn():
    """One unit of work: commits on success, rolls back on error, always closes."""
    conn = get_db()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def gen_id(prefix: str = "") -> str:
    """Generate a prefixed short id, e.g. conv_1a2b3c4d5e6f."""
    short = uuid.uuid4().hex[:12]
    return f"{prefix}_{short}" if prefix else short


def _fetch(conn: sqlite3.Connection, table: str, record_id: str) -> Optional[dict]:
    row = conn.execute(f"SELECT * FROM {table} WHERE id=?", (record_id,)).fetchone()
    return dict(row) if row else None


def update_row(table: str, record_id: str, data: dict, allowed_fields: set) -> Optional[dict]:
    """Update whitelisted columns and stamp updated_at.

    Returns the updated row, or None when the row doesn't exist or no field is allowed.
    """
    safe_data = {k: v for k, v in data.items() if k in allowed_fields}
    if not safe_data:
        return None
    safe_data["updated_at"] = utc_now()
    fields = ", ".join(f"{k}=?" for k in safe_data)
    with get_db_conn() as conn:
        conn.execute(f"UPDATE {table} SET {fields} WHERE id=?", list(safe_data.values()) + [record_id])
        return _fetch(conn, table, record_id)


def guarded_update(table: str, record_id: str, column: str, expected, data: dict,
                   allowed_fields: set) -> bool:
    """Compare-and-set: apply data only while `column` still holds `expected`.

    Uses `IS` so a NULL expected value matches a NULL column. Returns False when
    another writer changed the column first.
    """
    safe_data = {k: v for k, v in data.items() if k in allowed_fields}
    safe_data["updated_at"] = utc_now()
    fields = ", ".join(f"{k}=?" for k in safe_data)
    with get_db_conn() as conn:
        cur = conn.execute(
            f"UPDATE {table} SET {fields} WHERE id=? AND {column} IS ?",
            list(safe_data.values()) + [record_id, expected],
        )
        changed = cur.rowcount == 1
    if not changed:
        logger.info("Guarded update on %s.%s lost: %s no longer %r", table, column, record_id, expected)
    return changed
