"""Cortex chat service entry point."""

import asyncio
import logging
import sys

from src.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def run() -> None:
    """Wire the session together and serve the API until cancelled."""
    from src.api.server import ApiServer
    from src.conversation.history import ChannelHistory
    from src.cortex.session import CortexChatSession
    from src.cortex.store import CortexChatStore
    from src.runtime_config import RuntimeConfig
    from src.tools import registry

    runtime_config = RuntimeConfig(settings)
    runtime_config.prompts().validate()

    session = CortexChatSession(
        runtime_config=runtime_config,
        tools=registry,
        store=CortexChatStore.get(),
        history=ChannelHistory(),
    )
    logger.info(
        "Cortex chat ready: %d tools, branch model %s",
        len(registry.tool_names),
        runtime_config.routing().branch,
    )

    server = ApiServer(session)
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def main() -> None:
    """Start the cortex chat service."""
    from src.llm.prompt import PromptRenderError

    try:
        asyncio.run(run())
    except PromptRenderError as exc:
        logger.critical("Prompt templates are broken, refusing to start: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
