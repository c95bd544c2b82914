"""CortexChatStore — append-only aiosqlite log of cortex chat turns."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import aiosqlite

from src.config import settings
from src.cortex.models import CortexChatMessage, ThreadSummary, make_message_id

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS cortex_chat_messages (
        id TEXT PRIMARY KEY,
        thread_id TEXT NOT NULL,
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        channel_context TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_cortex_chat_thread
        ON cortex_chat_messages(thread_id, created_at)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_cortex_chat_created
        ON cortex_chat_messages(created_at)
    """,
)

_COLUMNS = "id, thread_id, role, content, channel_context, created_at"


class StorageError(Exception):
    """The chat store could not be read or written."""


def _now() -> str:
    return datetime.now(UTC).isoformat()


class CortexChatStore:
    """Persists cortex chat messages in SQLite.

    Rows are never updated or deleted. A thread exists as soon as one
    message carries its ID. Ordering is by ``created_at`` with ``rowid``
    breaking ties, so messages written within the same timestamp keep
    their insertion order.

    Singleton accessed via ``CortexChatStore.get()``.  Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: CortexChatStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @classmethod
    def get(cls) -> CortexChatStore:
        """Return the shared CortexChatStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            try:
                for statement in _SCHEMA:
                    await db.execute(statement)
                await db.commit()
            except Exception:
                await db.close()
                raise
            self._initialised = True
        return db

    # -- Writes ----------------------------------------------------------------

    async def save_message(
        self,
        thread_id: str,
        role: str,
        content: str,
        channel_context: str | None = None,
    ) -> str:
        """Append a message to *thread_id*. Returns the generated ID."""
        message_id = make_message_id()
        try:
            db = await self._connect()
            try:
                await db.execute(
                    f"INSERT INTO cortex_chat_messages ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                    (message_id, thread_id, role, content, channel_context, _now()),
                )
                await db.commit()
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as exc:
            msg = f"failed to save {role} message to thread {thread_id}: {exc}"
            raise StorageError(msg) from exc
        logger.debug("Saved %s message %s to thread %s", role, message_id, thread_id)
        return message_id

    # -- Reads -----------------------------------------------------------------

    async def load_history(self, thread_id: str, limit: int) -> list[CortexChatMessage]:
        """Return up to *limit* most recent messages in chronological order."""
        try:
            db = await self._connect()
            try:
                cursor = await db.execute(
                    f"""
                    SELECT {_COLUMNS} FROM cortex_chat_messages
                    WHERE thread_id = ?
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ?
                    """,
                    (thread_id, limit),
                )
                rows = await cursor.fetchall()
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as exc:
            msg = f"failed to load history for thread {thread_id}: {exc}"
            raise StorageError(msg) from exc

        messages = [CortexChatMessage.from_row(row) for row in rows]
        messages.reverse()
        return messages

    async def latest_thread_id(self) -> str | None:
        """Return the thread of the most recent message, or None if empty."""
        try:
            db = await self._connect()
            try:
                cursor = await db.execute(
                    """
                    SELECT thread_id FROM cortex_chat_messages
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT 1
                    """
                )
                row = await cursor.fetchone()
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as exc:
            msg = f"failed to look up latest thread: {exc}"
            raise StorageError(msg) from exc
        return row[0] if row else None

    async def list_threads(self, limit: int = 50) -> list[ThreadSummary]:
        """Return threads ordered by most recent activity."""
        try:
            db = await self._connect()
            try:
                cursor = await db.execute(
                    """
                    SELECT thread_id, COUNT(*), MAX(created_at)
                    FROM cortex_chat_messages
                    GROUP BY thread_id
                    ORDER BY MAX(created_at) DESC, MAX(rowid) DESC
                    LIMIT ?
                    """,
                    (limit,),
                )
                rows = await cursor.fetchall()
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as exc:
            msg = f"failed to list threads: {exc}"
            raise StorageError(msg) from exc
        return [
            ThreadSummary(thread_id=row[0], message_count=row[1], last_message_at=row[2])
            for row in rows
        ]
