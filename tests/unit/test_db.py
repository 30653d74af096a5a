"""Unit tests for the sqlite connection helpers and the conversation store."""

import sqlite3

import pytest

from src.db import connection, models
from src.db.connection import get_db_conn, guarded_update, update_row
from src.db.init_db import EXPECTED_TABLES, init_db, verify_db


# ═══════════════════════════════════════════════════════════════
# SCHEMA
# ═══════════════════════════════════════════════════════════════

def test_init_db_creates_every_table(test_db):
    assert verify_db(test_db) == []
    assert set(models.get_table_counts()) == set(EXPECTED_TABLES)


def test_init_db_is_idempotent(test_db):
    init_db(test_db)
    assert models.get_table_counts()["ai_config"] == 1


def test_verify_db_reports_missing_tables(tmp_path):
    path = str(tmp_path / "bare.db")
    sqlite3.connect(path).close()
    assert set(verify_db(path)) == set(EXPECTED_TABLES)


# ═══════════════════════════════════════════════════════════════
# UNIT OF WORK
# ═══════════════════════════════════════════════════════════════

def test_conn_commits_on_clean_exit(test_db):
    with get_db_conn() as conn:
        conn.execute("INSERT INTO conversations (id) VALUES ('conv_commit')")
    assert models.get_conversation("conv_commit") is not None


def test_conn_rolls_back_on_error(test_db):
    with pytest.raises(RuntimeError):
        with get_db_conn() as conn:
            conn.execute("INSERT INTO conversations (id) VALUES ('conv_rollback')")
            raise RuntimeError("abort")
    assert models.get_conversation("conv_rollback") is None


def test_busy_timeout_is_applied(test_db, monkeypatch):
    monkeypatch.setattr(connection, "DB_BUSY_TIMEOUT", 2.5)
    conn = connection.get_db()
    try:
        assert conn.execute("PRAGMA busy_timeout").fetchone()[0] == 2500
    finally:
        conn.close()


# ═══════════════════════════════════════════════════════════════
# ROW UPDATES
# ═══════════════════════════════════════════════════════════════

def test_update_row_ignores_unknown_fields(test_db):
    models.create_conversation({"id": "conv_1", "phone": "5511999999999"})
    row = update_row("conversations", "conv_1",
                     {"lead_name": "Ana", "id": "hijack", "created_at": "x"},
                     models.CONVERSATION_FIELDS)
    assert row["id"] == "conv_1"
    assert row["lead_name"] == "Ana"
    assert row["created_at"] != "x"


def test_update_row_without_allowed_fields_is_noop(test_db):
    models.create_conversation({"id": "conv_1"})
    assert update_row("conversations", "conv_1", {"bogus": 1}, models.CONVERSATION_FIELDS) is None


def test_guarded_update_matches_null_expected(test_db):
    models.ensure_conversation("conv_1")
    assert guarded_update("conversations", "conv_1", "current_stage_id", None,
                          {"current_stage_id": "16"}, models.CONVERSATION_FIELDS)
    assert models.get_conversation("conv_1")["current_stage_id"] == "16"


def test_guarded_update_loses_after_concurrent_write(test_db):
    models.ensure_conversation("conv_1", "16")
    assert models.compare_and_set_stage("conv_1", "16", "13")
    assert not models.compare_and_set_stage("conv_1", "16", "14", {"lead_name": "Ana"})

    conv = models.get_conversation("conv_1")
    assert conv["current_stage_id"] == "13"
    assert conv["lead_name"] is None


def test_compare_and_set_drops_non_conversation_fields(test_db):
    models.ensure_conversation("conv_1", "16")
    assert models.compare_and_set_stage("conv_1", "16", "13", {"ai_paused": 1, "bogus": "x"})
    assert models.get_conversation("conv_1")["ai_paused"] == 1
