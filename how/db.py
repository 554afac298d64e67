"""Command memory backed by SQLite and an FTS5 tag index."""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Union

from .keywords import extract_keywords

logger = logging.getLogger(__name__)

DB_FILENAME = "memory.db"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
DEFAULT_BUSY_TIMEOUT = 5.0

# Progress handler granularity, in SQLite VM instructions.
_PROGRESS_STEPS = 1000

SCHEMA = """
CREATE TABLE IF NOT EXISTS interactions (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    question    TEXT    NOT NULL,
    command     TEXT    NOT NULL,
    explanation TEXT    NOT NULL DEFAULT '',
    tags        TEXT    NOT NULL DEFAULT '',
    created_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    use_count   INTEGER NOT NULL DEFAULT 1
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_interactions_command ON interactions(command);
CREATE INDEX IF NOT EXISTS idx_interactions_created_at ON interactions(created_at);

CREATE VIRTUAL TABLE IF NOT EXISTS interactions_fts USING fts5(
    tags,
    content='interactions',
    content_rowid='id'
);

CREATE TRIGGER IF NOT EXISTS interactions_ai AFTER INSERT ON interactions BEGIN
    INSERT INTO interactions_fts(rowid, tags) VALUES (new.id, new.tags);
END;
CREATE TRIGGER IF NOT EXISTS interactions_ad AFTER DELETE ON interactions BEGIN
    INSERT INTO interactions_fts(interactions_fts, rowid, tags) VALUES ('delete', old.id, old.tags);
END;
CREATE TRIGGER IF NOT EXISTS interactions_au AFTER UPDATE ON interactions BEGIN
    INSERT INTO interactions_fts(interactions_fts, rowid, tags) VALUES ('delete', old.id, old.tags);
    INSERT INTO interactions_fts(rowid, tags) VALUES (new.id, new.tags);
END;
"""

_COLUMNS = "i.id, i.question, i.command, i.explanation, i.tags, i.created_at, i.use_count"


class StoreError(Exception):
    """Base class for command memory failures."""


class OpenError(StoreError):
    """The memory file, schema or index could not be opened or created."""


class SaveError(StoreError):
    pass


class SearchError(StoreError):
    pass


class ListError(StoreError):
    pass


class ClearError(StoreError):
    pass


def utcnow() -> str:
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def _parse_timestamp(value: str) -> datetime:
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparsable created_at %r", value)
        return datetime.fromtimestamp(0, timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Interaction:
    id: int
    question: str
    command: str
    explanation: str
    tags: str
    created_at: datetime
    use_count: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Interaction":
        return cls(
            id=row["id"],
            question=row["question"],
            command=row["command"],
            explanation=row["explanation"],
            tags=row["tags"],
            created_at=_parse_timestamp(row["created_at"]),
            use_count=row["use_count"],
        )


class MemoryStore:
    """Remembers question → command interactions and recalls them by keyword.

    One connection is held for the lifetime of the store. Use it as a context
    manager so the connection is released on every exit path::

        with MemoryStore.open(config.base_dir) as store:
            store.save(question, command, explanation)

    Every operation takes an optional ``timeout`` in seconds; a statement
    still running when it expires is interrupted and rolled back.
    """

    def __init__(self, conn: sqlite3.Connection, db_path: Path):
        self._conn = conn
        self.db_path = db_path
        self._closed = False

    @classmethod
    def open(
        cls,
        directory: Union[str, Path],
        *,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
    ) -> "MemoryStore":
        """Open (or create) the memory file under ``directory``."""
        db_path = Path(directory) / DB_FILENAME
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(db_path), timeout=busy_timeout)
        except (OSError, sqlite3.Error) as exc:
            raise OpenError(f"opening database {db_path}: {exc}") from exc

        conn.row_factory = sqlite3.Row
        try:
            _initialize(conn)
        except sqlite3.Error as exc:
            conn.close()
            raise OpenError(f"preparing database {db_path}: {exc}") from exc

        logger.debug("Opened command memory at %s", db_path)
        return cls(conn, db_path)

    def close(self) -> None:
        """Release the underlying connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._conn.close()
        logger.debug("Closed command memory at %s", self.db_path)

    def __enter__(self) -> "MemoryStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _deadline(self, timeout: Optional[float]) -> Iterator[None]:
        if timeout is None:
            yield
            return
        expires = time.monotonic() + timeout
        self._conn.set_progress_handler(
            lambda: 1 if time.monotonic() >= expires else 0, _PROGRESS_STEPS
        )
        try:
            yield
        finally:
            self._conn.set_progress_handler(None, 0)

    @contextmanager
    def _transaction(self, timeout: Optional[float]) -> Iterator[sqlite3.Cursor]:
        with self._deadline(timeout):
            cursor = self._conn.cursor()
            try:
                yield cursor
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            finally:
                cursor.close()

    def save(
        self,
        question: str,
        command: str,
        explanation: str = "",
        *,
        timeout: Optional[float] = None,
    ) -> None:
        """Record an interaction, bumping use_count if the command is known."""
        tags = " ".join(extract_keywords(question))
        try:
            with self._transaction(timeout) as cursor:
                cursor.execute(
                    """
                    INSERT INTO interactions (question, command, explanation, tags, created_at, use_count)
                    VALUES (?, ?, ?, ?, ?, 1)
                    ON CONFLICT(command) DO UPDATE SET
                        use_count = use_count + 1,
                        question = excluded.question,
                        tags = excluded.tags,
                        explanation = excluded.explanation
                    """,
                    (question, command, explanation, tags, utcnow()),
                )
        except sqlite3.Error as exc:
            raise SaveError(f"saving interaction: {exc}") from exc
        logger.debug("Saved %r with tags %r", command, tags)

    def search(
        self,
        question: str,
        limit: int = 10,
        *,
        timeout: Optional[float] = None,
    ) -> List[Interaction]:
        """
        Recall interactions whose tags share any keyword with ``question``.

        Results are ordered best match first (bm25 ascending), then by
        use_count and recency. A question with no keywords returns an empty
        list without querying.
        """
        keywords = extract_keywords(question)
        if not keywords or limit <= 0:
            return []

        # Quoted so every keyword is a plain token, never an FTS5 operator.
        match = " OR ".join(f'"{keyword}"' for keyword in keywords)
        try:
            with self._deadline(timeout):
                rows = self._conn.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM interactions_fts
                    JOIN interactions i ON i.id = interactions_fts.rowid
                    WHERE interactions_fts MATCH ?
                    ORDER BY bm25(interactions_fts) ASC, i.use_count DESC,
                             i.created_at DESC, i.id DESC
                    LIMIT ?
                    """,
                    (match, limit),
                ).fetchall()
        except sqlite3.Error as exc:
            raise SearchError(f"searching interactions: {exc}") from exc
        logger.debug("Search %r matched %d interaction(s)", match, len(rows))
        return [Interaction.from_row(row) for row in rows]

    def list(self, limit: int = 20, *, timeout: Optional[float] = None) -> List[Interaction]:
        """Most recently created interactions first."""
        if limit <= 0:
            return []
        try:
            with self._deadline(timeout):
                rows = self._conn.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM interactions i
                    ORDER BY i.created_at DESC, i.id DESC
                    LIMIT ?
                    """,
                    (limit,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise ListError(f"listing interactions: {exc}") from exc
        return [Interaction.from_row(row) for row in rows]

    def count(self, *, timeout: Optional[float] = None) -> int:
        """Number of remembered commands."""
        try:
            with self._deadline(timeout):
                row = self._conn.execute("SELECT COUNT(*) FROM interactions").fetchone()
        except sqlite3.Error as exc:
            raise ListError(f"counting interactions: {exc}") from exc
        return int(row[0])

    def clear(self, *, timeout: Optional[float] = None) -> None:
        """Delete every interaction; the delete trigger empties the index."""
        try:
            with self._transaction(timeout) as cursor:
                cursor.execute("DELETE FROM interactions")
                removed = cursor.rowcount
        except sqlite3.Error as exc:
            raise ClearError(f"clearing interactions: {exc}") from exc
        logger.info("Cleared %d remembered command(s)", removed)


def _initialize(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL")
    conn.executescript(SCHEMA)
    # Rebuilding on every open repairs an index that drifted from the table.
    conn.execute("INSERT INTO interactions_fts(interactions_fts) VALUES ('rebuild')")
    conn.execute("DROP INDEX IF EXISTS idx_interactions_tags")
    conn.commit()


__all__ = [
    "ClearError",
    "Interaction",
    "ListError",
    "MemoryStore",
    "OpenError",
    "SaveError",
    "SearchError",
    "StoreError",
]
