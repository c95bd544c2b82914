"""Read access to channel timelines.

Channels, branches and workers write their own history into the shared
database. This module only reads it back as one merged, chronological
timeline per channel. The tables belong to those subsystems;
``ensure_schema()`` exists so a fresh database (or a test) can create
them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import aiosqlite

from src.config import settings

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS conversation_messages (
        id TEXT PRIMARY KEY,
        channel_id TEXT NOT NULL,
        role TEXT NOT NULL,
        sender_name TEXT,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS branch_runs (
        id TEXT PRIMARY KEY,
        channel_id TEXT NOT NULL,
        description TEXT NOT NULL,
        conclusion TEXT,
        started_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS worker_runs (
        id TEXT PRIMARY KEY,
        channel_id TEXT NOT NULL,
        task TEXT NOT NULL,
        result TEXT,
        started_at TEXT NOT NULL
    )
    """,
)

# Merged timeline, newest first. Columns: kind, id, ts, a, b, c
_TIMELINE_QUERY = """
SELECT * FROM (
    SELECT 'message' AS kind, id, created_at AS ts, role AS a, content AS b, sender_name AS c
    FROM conversation_messages WHERE channel_id = ?
    UNION ALL
    SELECT 'branch_run', id, started_at, description, conclusion, NULL
    FROM branch_runs WHERE channel_id = ?
    UNION ALL
    SELECT 'worker_run', id, started_at, task, result, NULL
    FROM worker_runs WHERE channel_id = ?
)
ORDER BY ts DESC, kind DESC, id DESC
LIMIT ?
"""


@dataclass(frozen=True)
class TimelineMessage:
    """A message posted in the channel."""

    id: str
    role: str
    content: str
    sender_name: str | None
    timestamp: str


@dataclass(frozen=True)
class BranchRun:
    """A branch forked from the channel. ``conclusion`` is None while running."""

    id: str
    description: str
    conclusion: str | None
    timestamp: str


@dataclass(frozen=True)
class WorkerRun:
    """A worker spawned from the channel. ``result`` is None while running."""

    id: str
    task: str
    result: str | None
    timestamp: str


TimelineItem = TimelineMessage | BranchRun | WorkerRun


class TimelineSource(Protocol):
    """Anything that can produce a channel timeline."""

    async def load_channel_timeline(self, channel_id: str, limit: int) -> list[TimelineItem]: ...


def _item_from_row(row: tuple) -> TimelineItem:
    kind, item_id, ts, a, b, c = row
    if kind == "message":
        return TimelineMessage(id=item_id, role=a, content=b, sender_name=c, timestamp=ts)
    if kind == "branch_run":
        return BranchRun(id=item_id, description=a, conclusion=b, timestamp=ts)
    if kind == "worker_run":
        return WorkerRun(id=item_id, task=a, result=b, timestamp=ts)
    msg = f"unknown timeline item kind: {kind!r}"
    raise ValueError(msg)


class ChannelHistory:
    """Reads channel timelines from the shared SQLite database."""

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path

    async def ensure_schema(self) -> None:
        """Create the timeline tables if they do not exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for statement in _SCHEMA:
                await db.execute(statement)
            await db.commit()

    async def load_channel_timeline(self, channel_id: str, limit: int) -> list[TimelineItem]:
        """Return up to *limit* most recent items for *channel_id*, oldest first."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                _TIMELINE_QUERY, (channel_id, channel_id, channel_id, limit)
            )
            rows = await cursor.fetchall()

        items = [_item_from_row(row) for row in rows]
        items.reverse()
        return items
