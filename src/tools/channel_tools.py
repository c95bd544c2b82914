"""Tools for looking at channel timelines and past cortex conversations."""

import logging

from pydantic import Field

from src.conversation.history import ChannelHistory
from src.cortex.store import CortexChatStore
from src.cortex.transcript import render_transcript
from src.tools.base import ToolParams, ToolResult
from src.tools.registry import registry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# read_channel_history
# ---------------------------------------------------------------------------


class ReadChannelHistoryParams(ToolParams):
    channel_id: str = Field(description="Channel to read")
    limit: int = Field(default=50, ge=1, le=200, description="Max timeline items")


@registry.tool(
    name="read_channel_history",
    description=(
        "Read the recent timeline of a channel: messages plus finished branch "
        "and worker runs, rendered as a transcript."
    ),
    category="channels",
    params_model=ReadChannelHistoryParams,
)
async def read_channel_history(channel_id: str, limit: int = 50) -> ToolResult:
    items = await ChannelHistory().load_channel_timeline(channel_id, limit)
    transcript = render_transcript(items)
    return ToolResult(
        data={
            "channel_id": channel_id,
            "item_count": len(items),
            "transcript": transcript or "",
        }
    )


# ---------------------------------------------------------------------------
# list_cortex_threads / read_cortex_thread
# ---------------------------------------------------------------------------


class ListCortexThreadsParams(ToolParams):
    limit: int = Field(default=20, ge=1, le=100, description="Max threads to list")


@registry.tool(
    name="list_cortex_threads",
    description="List past conversations with the operator, most recent first.",
    category="cortex",
    params_model=ListCortexThreadsParams,
)
async def list_cortex_threads(limit: int = 20) -> ToolResult:
    threads = await CortexChatStore.get().list_threads(limit=limit)
    return ToolResult(data={"threads": [t.to_dict() for t in threads]})


class ReadCortexThreadParams(ToolParams):
    thread_id: str = Field(description="Thread to read")
    limit: int = Field(default=50, ge=1, le=200, description="Max messages")


@registry.tool(
    name="read_cortex_thread",
    description="Read messages from a past conversation with the operator.",
    category="cortex",
    params_model=ReadCortexThreadParams,
)
async def read_cortex_thread(thread_id: str, limit: int = 50) -> ToolResult:
    messages = await CortexChatStore.get().load_history(thread_id, limit)
    if not messages:
        return ToolResult(error=f"No messages in thread {thread_id}")
    return ToolResult(
        data={
            "thread_id": thread_id,
            "messages": [
                {"role": m.role, "content": m.content, "created_at": m.created_at}
                for m in messages
            ],
        }
    )
