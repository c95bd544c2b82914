"""Cortex chat session: the operator's persistent conversation with the cortex.

One session per agent, alive for the agent's whole lifetime. Every
request saves the operator's message, builds a fresh system prompt
(optionally grounded in a channel transcript), replays the thread's
history into a new completion engine, and saves whatever comes back,
including failures, so the thread never has a hole in it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from src.cortex.prompt import build_system_prompt
from src.llm.client import CompletionError, CortexAgent
from src.llm.models import ProcessType, friendly

if TYPE_CHECKING:
    from src.conversation.history import TimelineSource
    from src.cortex.models import CortexChatMessage
    from src.cortex.store import CortexChatStore
    from src.llm.client import EventCallback
    from src.runtime_config import RuntimeConfig
    from src.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Cortex chat error: "


def to_turns(messages: list[CortexChatMessage]) -> list[dict[str, Any]]:
    """Convert stored messages to Claude turns, skipping unknown roles."""
    turns: list[dict[str, Any]] = []
    for message in messages:
        if message.role in ("user", "assistant"):
            turns.append({"role": message.role, "content": message.content})
    return turns


class CortexChatSession:
    """Serializes one agent's cortex chat requests.

    ``send_message`` holds ``_send_lock`` for the whole request, so a
    second caller waits until the first has saved its response (or
    error) before its own user message is written.
    """

    def __init__(
        self,
        runtime_config: RuntimeConfig,
        tools: ToolRegistry,
        store: CortexChatStore,
        history: TimelineSource,
    ) -> None:
        self.runtime_config = runtime_config
        self.tools = tools
        self.store = store
        self.history = history
        self._send_lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        """True while a request holds the send lock."""
        return self._send_lock.locked()

    async def send_message(
        self,
        thread_id: str,
        user_text: str,
        channel_context_id: str | None = None,
        on_event: EventCallback | None = None,
    ) -> str:
        """Send *user_text* on *thread_id* and return the cortex's reply.

        Raises:
            StorageError: The store failed. If this happens before the
                model is called, no model call is made.
            CompletionError: The model call failed. The error text has
                already been saved to the thread as an assistant turn.
            PromptRenderError: A prompt template is broken.
        """
        async with self._send_lock:
            await self.store.save_message(thread_id, "user", user_text, channel_context_id)

            system_prompt = await build_system_prompt(
                self.runtime_config, self.history, channel_context_id
            )

            settings = self.runtime_config.settings
            chat_messages = await self.store.load_history(thread_id, settings.cortex_history_limit)
            # The last message is the one just saved; it goes in as the prompt.
            history = to_turns(chat_messages[:-1])

            model = self.runtime_config.routing().resolve(ProcessType.BRANCH)
            agent = CortexAgent(
                model,
                system_prompt,
                self.tools,
                max_turns=settings.cortex_max_turns,
                max_tokens=settings.max_tokens,
                preview_chars=settings.tool_result_preview_chars,
                api_key=settings.anthropic_api_key,
            )
            logger.info(
                "Cortex chat request: thread=%s, model=%s, history=%d, channel=%s",
                thread_id,
                friendly(model),
                len(history),
                channel_context_id,
            )

            try:
                response = await self._run(agent, user_text, history, on_event)
            except CompletionError as exc:
                error_text = f"{ERROR_PREFIX}{exc}"
                logger.warning("Cortex chat failed on thread %s: %s", thread_id, exc)
                await self.store.save_message(
                    thread_id, "assistant", error_text, channel_context_id
                )
                raise CompletionError(error_text) from exc

            await self.store.save_message(thread_id, "assistant", response, channel_context_id)
            return response

    async def _run(
        self,
        agent: CortexAgent,
        user_text: str,
        history: list[dict[str, Any]],
        on_event: EventCallback | None,
    ) -> str:
        timeout = self.runtime_config.settings.cortex_request_timeout_seconds
        if timeout <= 0:
            return await agent.prompt(user_text, history=history, on_event=on_event)
        try:
            async with asyncio.timeout(timeout):
                return await agent.prompt(user_text, history=history, on_event=on_event)
        except TimeoutError as exc:
            msg = f"timed out after {timeout:g}s"
            raise CompletionError(msg) from exc
