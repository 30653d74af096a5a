"""
Shared pytest fixtures for the SDR agent test suite.
"""

import pytest

from src.db import connection
from src.db.init_db import init_db, verify_db

from tests.fakes import FakeGateway, oracle_reply


@pytest.fixture
def test_db(tmp_path, monkeypatch):
    """Create a fresh test database with the full schema and default config."""
    db_path = str(tmp_path / "test.db")
    monkeypatch.setenv("SDR_DB_PATH", db_path)
    monkeypatch.setenv("SDR_JOURNAL_MODE", "DELETE")
    monkeypatch.setattr(connection, "DB_PATH", db_path)

    init_db(db_path)
    assert not verify_db(db_path)

    yield db_path


@pytest.fixture
def fake_gateway():
    return FakeGateway(oracle_reply())
