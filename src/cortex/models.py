"""CortexChatMessage data model."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class CortexChatMessage:
    """One persisted turn of the operator's conversation with the cortex.

    Attributes:
        id: Unique identifier (UUID4 string), generated at write time.
        thread_id: Conversation this turn belongs to.
        role: ``"user"`` or ``"assistant"``. Other values may exist in
            the table but are skipped when building model history.
        content: Message text.
        channel_context: Channel whose transcript was injected into the
            prompt for this turn, or None.
        created_at: UTC ISO 8601 timestamp.
    """

    id: str
    thread_id: str
    role: str
    content: str
    channel_context: str | None
    created_at: str

    @classmethod
    def from_row(cls, row: tuple) -> CortexChatMessage:
        """Deserialize from a ``cortex_chat_messages`` row tuple."""
        return cls(
            id=row[0],
            thread_id=row[1],
            role=row[2],
            content=row[3],
            channel_context=row[4],
            created_at=row[5],
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ThreadSummary:
    """Aggregate view of one thread, for listing conversations."""

    thread_id: str
    message_count: int
    last_message_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def make_message_id() -> str:
    """Generate a new message ID."""
    return str(uuid.uuid4())
