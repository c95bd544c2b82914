"""Async Claude client for the cortex: a bounded tool-calling loop."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import anthropic

from src.config import settings
from src.cortex.events import ToolCompleted, ToolStarted, preview

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from src.cortex.events import CortexChatEvent
    from src.tools.registry import ToolRegistry

    EventCallback = Callable[[CortexChatEvent], Awaitable[None]]

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None
_client_key: str | None = None


class CompletionError(Exception):
    """The completion engine could not produce a response."""


def _get_client(api_key: str | None = None) -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client, rebuilding it when the key changes."""
    global _client, _client_key  # noqa: PLW0603
    key = settings.anthropic_api_key if api_key is None else api_key
    if _client is None or key != _client_key:
        _client = anthropic.AsyncAnthropic(api_key=key)
        _client_key = key
    return _client


def _serialize_content(content: list[Any]) -> list[dict[str, Any]]:
    """Convert SDK content blocks to plain dicts for message history."""
    result: list[dict[str, Any]] = []
    for block in content:
        if block.type == "text":
            result.append({"type": "text", "text": block.text})
        elif block.type == "tool_use":
            result.append({
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": block.input,
            })
    return result


class CortexAgent:
    """One request's worth of completion engine.

    Bound to a model, a system prompt, a turn ceiling and a tool registry.
    Build a fresh one per request; it keeps no state between calls.
    """

    def __init__(
        self,
        model: str,
        preamble: str,
        tools: ToolRegistry,
        *,
        max_turns: int = 50,
        max_tokens: int | None = None,
        preview_chars: int | None = None,
        api_key: str | None = None,
    ) -> None:
        self.model = model
        self.preamble = preamble
        self.tools = tools
        self.max_turns = max_turns
        self.max_tokens = max_tokens or settings.max_tokens
        self.preview_chars = preview_chars or settings.tool_result_preview_chars
        self.api_key = api_key

    async def prompt(
        self,
        text: str,
        history: list[dict[str, Any]] | None = None,
        on_event: EventCallback | None = None,
    ) -> str:
        """Run *text* against the model with *history* as prior turns.

        Tool calls are executed through the registry and fed back until
        the model answers without tools or the turn ceiling is hit.

        Raises:
            CompletionError: Any failure to produce a response: API
                errors, the turn ceiling, or an unexpected error inside
                the loop.
        """
        try:
            return await self._run_loop(text, history or [], on_event)
        except CompletionError:
            raise
        except anthropic.APIError as exc:
            raise CompletionError(str(exc)) from exc
        except Exception as exc:
            logger.exception("Cortex completion loop failed on model %s", self.model)
            msg = f"{type(exc).__name__}: {exc}"
            raise CompletionError(msg) from exc

    async def _run_loop(
        self,
        text: str,
        history: list[dict[str, Any]],
        on_event: EventCallback | None,
    ) -> str:
        client = _get_client(self.api_key)
        tool_schemas = self.tools.get_schemas()
        loop_messages: list[dict[str, Any]] = [*history, {"role": "user", "content": text}]

        for turn in range(self.max_turns):
            kwargs: dict[str, Any] = {
                "model": self.model,
                "max_tokens": self.max_tokens,
                "system": self.preamble,
                "messages": loop_messages,
            }
            if tool_schemas:
                kwargs["tools"] = tool_schemas

            response = await client.messages.create(**kwargs)

            tool_use_blocks = [b for b in response.content if b.type == "tool_use"]
            if not tool_use_blocks:
                return "".join(b.text for b in response.content if b.type == "text")

            logger.info(
                "Turn %d: %d tool call(s): %s",
                turn + 1,
                len(tool_use_blocks),
                ", ".join(b.name for b in tool_use_blocks),
            )

            loop_messages.append({
                "role": "assistant",
                "content": _serialize_content(response.content),
            })

            tool_results: list[dict[str, Any]] = []
            for block in tool_use_blocks:
                if on_event:
                    await on_event(ToolStarted(tool=block.name))

                result = await self.tools.execute(block.name, block.input)
                content = result.to_content()

                if on_event:
                    await on_event(
                        ToolCompleted(
                            tool=block.name,
                            result_preview=preview(content, self.preview_chars),
                        )
                    )
                tool_results.append({
                    "type": "tool_result",
                    "tool_use_id": block.id,
                    "content": content,
                    "is_error": not result.success,
                })

            loop_messages.append({"role": "user", "content": tool_results})

        logger.warning("Hit max turns (%d) on model %s", self.max_turns, self.model)
        msg = f"reached the maximum of {self.max_turns} turns without a final response"
        raise CompletionError(msg)
