"""System prompt assembly for cortex chat."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.cortex.transcript import load_channel_transcript

if TYPE_CHECKING:
    from src.conversation.history import TimelineSource
    from src.runtime_config import RuntimeConfig

logger = logging.getLogger(__name__)


def _empty_to_none(text: str) -> str | None:
    return text if text else None


async def build_system_prompt(
    runtime_config: RuntimeConfig,
    history: TimelineSource,
    channel_context_id: str | None = None,
) -> str:
    """Assemble the cortex chat system prompt from live configuration.

    Identity, memory bulletin and capability flags are read fresh on every
    call. The channel transcript is only loaded when *channel_context_id*
    is given.

    Raises:
        PromptRenderError: A template is broken. Not recoverable.
    """
    prompt_engine = runtime_config.prompts()

    identity_context = runtime_config.identity().render()
    memory_bulletin = runtime_config.memory_bulletin()

    worker_capabilities = prompt_engine.render_worker_capabilities(
        runtime_config.browser_enabled(),
        runtime_config.web_search_enabled(),
        runtime_config.opencode_enabled(),
    )

    channel_transcript = None
    if channel_context_id:
        channel_transcript = await load_channel_transcript(
            history,
            channel_context_id,
            limit=runtime_config.settings.channel_transcript_limit,
        )

    return prompt_engine.render_cortex_chat_prompt(
        identity_context=_empty_to_none(identity_context),
        memory_bulletin=_empty_to_none(memory_bulletin),
        channel_transcript=channel_transcript,
        worker_capabilities=worker_capabilities,
    )
