"""
SDR Agent - Data Access Layer
Provides CRUD operations for agent config, personas, conversations and the
AI decision log via a clean Python API.

Connections commit when their `with get_db_conn()` block exits cleanly, so
functions here never call commit() themselves.
"""

import json
from typing import Optional

from src.db.connection import get_db_conn, gen_id, utc_now, update_row, guarded_update
from src.db.init_db import DEFAULT_CONFIG_ID, EXPECTED_TABLES

__all__ = [
    "gen_id",
    "get_ai_config", "update_ai_config",
    "create_persona", "get_persona", "list_personas",
    "create_conversation", "get_conversation", "update_conversation",
    "ensure_conversation", "compare_and_set_stage",
    "insert_ai_log", "list_ai_logs", "get_table_counts",
]


# ─── AI CONFIG ──────────────────────────────────────────────────

CONFIG_FIELDS = {
    "is_active", "system_prompt", "video_url", "site_url", "payment_link",
    "auto_reply_delay_seconds", "default_persona_id",
}


def get_ai_config() -> Optional[dict]:
    """Return the active config row (the seeded default row when present)."""
    with get_db_conn() as conn:
        row = conn.execute(
            "SELECT * FROM ai_config ORDER BY (id = ?) DESC, created_at LIMIT 1",
            (DEFAULT_CONFIG_ID,)
        ).fetchone()
        return dict(row) if row else None


def update_ai_config(data: dict) -> Optional[dict]:
    current = get_ai_config()
    if current is None:
        with get_db_conn() as conn:
            conn.execute("INSERT OR IGNORE INTO ai_config (id) VALUES (?)", (DEFAULT_CONFIG_ID,))
        current = get_ai_config()
    return update_row("ai_config", current["id"], data, CONFIG_FIELDS)


# ─── PERSONAS ───────────────────────────────────────────────────

def create_persona(data: dict) -> dict:
    pid = data.get("id") or gen_id("per")
    now = utc_now()
    with get_db_conn() as conn:
        conn.execute("""
            INSERT INTO ai_personas (id, name, persona_name, description, system_prompt,
                offer_description, target_audience, tone, video_url, site_url,
                payment_link, is_active, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)
        """, (
            pid, data["name"], data.get("persona_name"), data.get("description"),
            data["system_prompt"], data.get("offer_description"),
            data.get("target_audience"), data.get("tone"),
            data.get("video_url"), data.get("site_url"), data.get("payment_link"),
            1 if data.get("is_active", True) else 0, now, now
        ))
        row = conn.execute("SELECT * FROM ai_personas WHERE id=?", (pid,)).fetchone()
        return dict(row)


def get_persona(persona_id: str) -> Optional[dict]:
    with get_db_conn() as conn:
        row = conn.execute("SELECT * FROM ai_personas WHERE id=?", (persona_id,)).fetchone()
        return dict(row) if row else None


def list_personas(active_only: bool = False) -> list:
    query = "SELECT * FROM ai_personas"
    if active_only:
        query += " WHERE is_active=1"
    query += " ORDER BY created_at DESC"
    with get_db_conn() as conn:
        return [dict(r) for r in conn.execute(query).fetchall()]


# ─── CONVERSATIONS ──────────────────────────────────────────────

CONVERSATION_FIELDS = {
    "name", "phone", "lead_name", "current_stage_id", "ai_paused",
    "ai_handoff_reason", "video_sent", "site_sent",
}


def create_conversation(data: dict) -> dict:
    cid = data.get("id") or gen_id("conv")
    now = utc_now()
    with get_db_conn() as conn:
        conn.execute("""
            INSERT INTO conversations (id, name, phone, lead_name, current_stage_id,
                ai_paused, ai_handoff_reason, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?,?)
        """, (
            cid, data.get("name"), data.get("phone"), data.get("lead_name"),
            data.get("current_stage_id"), 1 if data.get("ai_paused") else 0,
            data.get("ai_handoff_reason"), now, now
        ))
        row = conn.execute("SELECT * FROM conversations WHERE id=?", (cid,)).fetchone()
        return dict(row)


def get_conversation(conversation_id: str) -> Optional[dict]:
    with get_db_conn() as conn:
        row = conn.execute("SELECT * FROM conversations WHERE id=?", (conversation_id,)).fetchone()
        return dict(row) if row else None


def update_conversation(conversation_id: str, data: dict) -> Optional[dict]:
    return update_row("conversations", conversation_id, data, CONVERSATION_FIELDS)


def ensure_conversation(conversation_id: str, current_stage_id: str = None) -> dict:
    """Return the stored conversation, creating it seeded with current_stage_id.

    Once the row exists its stage is authoritative; the seed is ignored.
    """
    now = utc_now()
    with get_db_conn() as conn:
        conn.execute("""
            INSERT OR IGNORE INTO conversations (id, current_stage_id, created_at, updated_at)
            VALUES (?,?,?,?)
        """, (conversation_id, current_stage_id, now, now))
        row = conn.execute("SELECT * FROM conversations WHERE id=?", (conversation_id,)).fetchone()
        return dict(row)


def compare_and_set_stage(conversation_id: str, expected_stage_id: Optional[str],
                          new_stage_id: str, extra: dict = None) -> bool:
    """Move a conversation to new_stage_id only if it is still at expected_stage_id.

    Returns False when another writer changed the stage since it was read.
    """
    updates = dict(extra or {})
    updates["current_stage_id"] = new_stage_id
    return guarded_update("conversations", conversation_id, "current_stage_id",
                          expected_stage_id, updates, CONVERSATION_FIELDS)


# ─── AI LOGS (append-only) ──────────────────────────────────────

def insert_ai_log(entry: dict) -> int:
    with get_db_conn() as conn:
        cur = conn.execute("""
            INSERT INTO ai_logs (conversation_id, incoming_message, ai_response,
                detected_intent, applied_label_id, confidence_score, needs_human, bant_score)
            VALUES (?,?,?,?,?,?,?,?)
        """, (
            entry.get("conversation_id"), entry.get("incoming_message"),
            entry.get("ai_response"), entry.get("detected_intent"),
            entry.get("applied_label_id"), entry.get("confidence_score"),
            1 if entry.get("needs_human") else 0,
            json.dumps(entry["bant_score"]) if entry.get("bant_score") is not None else None,
        ))
        return cur.lastrowid


def list_ai_logs(conversation_id: str = None, limit: int = 50) -> list:
    query = "SELECT * FROM ai_logs"
    params = []
    if conversation_id:
        query += " WHERE conversation_id=?"
        params.append(conversation_id)
    query += " ORDER BY created_at DESC, id DESC LIMIT ?"
    params.append(limit)
    with get_db_conn() as conn:
        rows = conn.execute(query, params).fetchall()
    logs = []
    for r in rows:
        d = dict(r)
        d["needs_human"] = bool(d["needs_human"])
        d["bant_score"] = json.loads(d["bant_score"]) if d["bant_score"] else None
        logs.append(d)
    return logs


# ─── STATS ──────────────────────────────────────────────────────

def get_table_counts() -> dict:
    with get_db_conn() as conn:
        return {t: conn.execute(f"SELECT COUNT(*) FROM {t}").fetchone()[0] for t in EXPECTED_TABLES}
