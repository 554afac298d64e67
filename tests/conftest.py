"""Shared fixtures for the how test suite.

- Every test gets its own application directory via HOW_HOME
- API keys from the real environment never leak into tests
- Store tests run against real SQLite files, no mocking
"""

import pytest

from how.db import MemoryStore


@pytest.fixture(autouse=True)
def app_home(tmp_path, monkeypatch):
    """Point HOW_HOME at a fresh temp directory and clear provider keys."""
    home = tmp_path / "how-home"
    monkeypatch.setenv("HOW_HOME", str(home))
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    return home


@pytest.fixture
def store(tmp_path):
    """Fresh memory store, closed after the test."""
    with MemoryStore.open(tmp_path / "memory") as s:
        yield s


@pytest.fixture
def backdate(store):
    """Rewrite created_at for a command so recency ordering is deterministic."""

    def _backdate(command, created_at):
        store._conn.execute(
            "UPDATE interactions SET created_at = ? WHERE command = ?",
            (created_at, command),
        )
        store._conn.commit()

    return _backdate
