"""
SDR Agent - Database Initialization
Creates all tables, indexes, and seeds the default agent configuration.
"""

import logging
import sqlite3

from src.db import connection

logger = logging.getLogger("sdr.db.init")

SCHEMA_SQL = """
-- Agent configuration (single active row)
CREATE TABLE IF NOT EXISTS ai_config (
    id TEXT PRIMARY KEY,
    is_active INTEGER DEFAULT 1,
    system_prompt TEXT DEFAULT '',
    video_url TEXT,
    site_url TEXT,
    payment_link TEXT,
    auto_reply_delay_seconds INTEGER DEFAULT 5,
    default_persona_id TEXT REFERENCES ai_personas(id),
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);

-- Personas (playbook + resource URLs per offer/tenant)
CREATE TABLE IF NOT EXISTS ai_personas (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    persona_name TEXT,
    description TEXT,
    system_prompt TEXT NOT NULL,
    offer_description TEXT,
    target_audience TEXT,
    tone TEXT,
    video_url TEXT,
    site_url TEXT,
    payment_link TEXT,
    is_active INTEGER DEFAULT 1,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);

-- Conversations (one per WhatsApp chat; current funnel stage lives here)
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    name TEXT,
    phone TEXT,
    lead_name TEXT,
    current_stage_id TEXT,
    ai_paused INTEGER DEFAULT 0,
    ai_handoff_reason TEXT,
    video_sent INTEGER DEFAULT 0,
    site_sent INTEGER DEFAULT 0,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);

-- AI decision audit log (append-only)
CREATE TABLE IF NOT EXISTS ai_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    conversation_id TEXT,
    incoming_message TEXT,
    ai_response TEXT,
    detected_intent TEXT,
    applied_label_id TEXT,
    confidence_score REAL,
    needs_human INTEGER DEFAULT 0,
    bant_score TEXT,
    created_at TEXT DEFAULT (datetime('now'))
);

-- Non-fatal agent errors (audit-write failures, oracle outages, stage conflicts)
CREATE TABLE IF NOT EXISTS agent_errors (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    conversation_id TEXT,
    phase TEXT NOT NULL,
    component TEXT,
    error_type TEXT,
    error_message TEXT,
    context TEXT DEFAULT '{}',
    severity TEXT DEFAULT 'warning',
    resolved INTEGER DEFAULT 0,
    created_at TEXT DEFAULT (datetime('now'))
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_conversations_stage ON conversations(current_stage_id);
CREATE INDEX IF NOT EXISTS idx_conversations_phone ON conversations(phone);
CREATE INDEX IF NOT EXISTS idx_ai_logs_conversation ON ai_logs(conversation_id, created_at);
CREATE INDEX IF NOT EXISTS idx_agent_errors_conversation ON agent_errors(conversation_id);
CREATE INDEX IF NOT EXISTS idx_agent_errors_severity ON agent_errors(severity, resolved);
"""

DEFAULT_CONFIG_ID = "default"

EXPECTED_TABLES = ("ai_config", "ai_personas", "conversations", "ai_logs", "agent_errors")


def init_db(db_path=None) -> list:
    """Create all tables and indexes and seed the default config row. Idempotent."""
    path = db_path or connection.DB_PATH
    conn = sqlite3.connect(path)
    try:
        conn.executescript(SCHEMA_SQL)
        conn.execute(
            "INSERT OR IGNORE INTO ai_config (id, is_active, system_prompt) VALUES (?, 1, '')",
            (DEFAULT_CONFIG_ID,)
        )
        conn.commit()
        tables = [row[0] for row in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ).fetchall()]
    finally:
        conn.close()

    logger.info("Database initialized at %s (%d tables)", path, len(tables))
    return tables


def verify_db(db_path=None) -> list:
    """Return the expected tables missing from the database (empty when the schema is complete)."""
    path = db_path or connection.DB_PATH
    conn = sqlite3.connect(path)
    try:
        actual = {row[0] for row in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()}
    finally:
        conn.close()
    return [t for t in EXPECTED_TABLES if t not in actual]


if __name__ == "__main__":
    from src.logging_config import setup_logging
    setup_logging()
    init_db()
    missing = verify_db()
    if missing:
        print(f"FAIL: Missing tables: {missing}")
        raise SystemExit(1)
    print(f"PASS: All {len(EXPECTED_TABLES)} tables present")
