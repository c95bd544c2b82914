"""Events emitted while the cortex works on one chat request.

These are never persisted. The HTTP layer forwards them to the client as
Server-Sent Events, in emission order, ending with exactly one ``done``
or ``error``.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field


class _Event(BaseModel):
    type: str

    @property
    def is_terminal(self) -> bool:
        return False

    def to_sse(self) -> str:
        """Serialize as one SSE frame: ``event: <type>`` plus a JSON data line."""
        return f"event: {self.type}\ndata: {self.model_dump_json()}\n\n"


class Thinking(_Event):
    """The cortex is processing, before any model output."""

    type: Literal["thinking"] = "thinking"


class ToolStarted(_Event):
    type: Literal["tool_started"] = "tool_started"
    tool: str


class ToolCompleted(_Event):
    type: Literal["tool_completed"] = "tool_completed"
    tool: str
    result_preview: str


class Done(_Event):
    """The full response is ready."""

    type: Literal["done"] = "done"
    full_text: str

    @property
    def is_terminal(self) -> bool:
        return True


class Error(_Event):
    type: Literal["error"] = "error"
    message: str

    @property
    def is_terminal(self) -> bool:
        return True


CortexChatEvent = Annotated[
    Thinking | ToolStarted | ToolCompleted | Done | Error,
    Field(discriminator="type"),
]


def preview(text: str, limit: int) -> str:
    """Truncate *text* to *limit* characters for a tool result preview."""
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "…"
