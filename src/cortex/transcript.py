"""Render a channel's recent timeline as prose for the cortex prompt."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, assert_never

from src.conversation.history import BranchRun, TimelineMessage, WorkerRun

if TYPE_CHECKING:
    from src.conversation.history import TimelineItem, TimelineSource

logger = logging.getLogger(__name__)

CHANNEL_TRANSCRIPT_LIMIT = 50


def _render_item(item: TimelineItem) -> str | None:
    """Render one timeline item, or None when it carries nothing useful yet."""
    match item:
        case TimelineMessage(role=role, content=content, sender_name=sender_name):
            return f"**{sender_name or role}**: {content}"
        case BranchRun(description=description, conclusion=conclusion):
            if conclusion is None:
                return None
            return f"*[Branch: {description}]*: {conclusion}"
        case WorkerRun(task=task, result=result):
            if result is None:
                return None
            return f"*[Worker: {task}]*: {result}"
        case _:
            assert_never(item)


def render_transcript(items: list[TimelineItem]) -> str | None:
    """Render *items* in order. Returns None when nothing renders."""
    lines = [line for item in items if (line := _render_item(item)) is not None]
    if not lines:
        return None
    return "\n\n".join(lines)


async def load_channel_transcript(
    history: TimelineSource,
    channel_id: str,
    limit: int = CHANNEL_TRANSCRIPT_LIMIT,
) -> str | None:
    """Load and render the last *limit* timeline items for *channel_id*.

    Best-effort: a history failure is logged and treated as no context.
    """
    try:
        items = await history.load_channel_timeline(channel_id, limit)
    except Exception:
        logger.warning(
            "Failed to load channel transcript for cortex chat (channel=%s)",
            channel_id,
            exc_info=True,
        )
        return None

    if not items:
        return None
    return render_transcript(items)
