"""Unit tests for non-fatal error capture."""

from src.agents.error_handler import log_agent_error, safe_execute, get_errors, resolve_error


def _boom(x):
    raise RuntimeError(f"bad {x}")


def test_safe_execute_returns_value(test_db):
    assert safe_execute(lambda a, b: a + b, args=(1, 2), phase="test") == 3
    assert get_errors() == []


def test_safe_execute_logs_and_returns_fallback(test_db):
    result = safe_execute(_boom, args=("input",), phase="audit", component="decision_emitter",
                          conversation_id="conv_1", fallback="fallback")
    assert result == "fallback"

    errors = get_errors(conversation_id="conv_1")
    assert len(errors) == 1
    assert errors[0]["error_type"] == "RuntimeError"
    assert errors[0]["error_message"] == "bad input"
    assert errors[0]["component"] == "decision_emitter"
    assert '"function": "_boom"' in errors[0]["context"]


def test_filters_and_resolve(test_db):
    log_agent_error(phase="classify", error_message="timeout", conversation_id="conv_1")
    log_agent_error(phase="stage_write", error_message="stale", conversation_id="conv_2",
                    severity="error")

    assert len(get_errors()) == 2
    errors = get_errors(severity="error")
    assert [e["conversation_id"] for e in errors] == ["conv_2"]

    resolve_error(errors[0]["id"])
    assert len(get_errors()) == 1
    assert len(get_errors(unresolved_only=False)) == 2


def test_missing_table_does_not_raise(tmp_path, monkeypatch):
    from src.db import connection
    monkeypatch.setattr(connection, "DB_PATH", str(tmp_path / "empty.db"))
    log_agent_error(phase="audit", error=ValueError("x"))


def test_resolve_unknown_error_returns_false(test_db):
    assert resolve_error(999) is False
