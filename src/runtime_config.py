"""Live configuration snapshots read at call time.

Everything here is hot-swappable: the routing table, prompt engine and
memory bulletin are replaced wholesale (never mutated in place), and the
identity files are re-read from disk on every access. Callers must load
what they need when they need it instead of caching it on construction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.config import settings as default_settings
from src.llm.models import RoutingConfig
from src.llm.prompt import PromptEngine

if TYPE_CHECKING:
    from pathlib import Path

    from src.config import Settings

logger = logging.getLogger(__name__)

IDENTITY_FILES = ("SOUL.md", "IDENTITY.md", "USER.md")


def _read_config(config_dir: Path, filename: str) -> str:
    """Read a config markdown file, returning empty string if missing."""
    path = config_dir / filename
    if path.exists():
        return path.read_text(encoding="utf-8").strip()
    return ""


@dataclass(frozen=True)
class Identity:
    """The agent's identity documents."""

    soul: str = ""
    identity: str = ""
    user: str = ""

    @classmethod
    def load(cls, config_dir: Path) -> Identity:
        soul, identity, user = (_read_config(config_dir, name) for name in IDENTITY_FILES)
        return cls(soul=soul, identity=identity, user=user)

    def render(self) -> str:
        """Join the non-empty documents. Empty when no files exist."""
        sections = []
        if self.soul:
            sections.append(self.soul)
        if self.identity:
            sections.append(self.identity)
        if self.user:
            sections.append(f"# Operator Profile\n\n{self.user}")
        return "\n\n---\n\n".join(sections)


class RuntimeConfig:
    """Read-through accessor over the agent's live configuration."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or default_settings
        self._routing = RoutingConfig.from_settings(self._settings)
        self._prompts = PromptEngine(self._settings.prompts_dir)
        self._memory_bulletin = ""

    # -- Loads -----------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    def routing(self) -> RoutingConfig:
        return self._routing

    def prompts(self) -> PromptEngine:
        return self._prompts

    def identity(self) -> Identity:
        return Identity.load(self._settings.config_dir)

    def memory_bulletin(self) -> str:
        return self._memory_bulletin

    def browser_enabled(self) -> bool:
        return self._settings.browser_enabled

    def web_search_enabled(self) -> bool:
        return self._settings.web_search_enabled

    def opencode_enabled(self) -> bool:
        return self._settings.opencode_enabled

    # -- Swaps -----------------------------------------------------------------

    def set_memory_bulletin(self, bulletin: str) -> None:
        """Replace the rolling memory summary."""
        self._memory_bulletin = bulletin
        logger.debug("Memory bulletin updated (%d chars)", len(bulletin))

    def reload(self, settings: Settings) -> None:
        """Swap in new settings and rebuild the snapshots derived from them.

        The new templates are validated first. On PromptRenderError
        nothing is swapped and the current snapshots stay in place.
        """
        prompts = PromptEngine(settings.prompts_dir)
        prompts.validate()
        routing = RoutingConfig.from_settings(settings)

        self._settings = settings
        self._routing = routing
        self._prompts = prompts
        logger.info("Runtime config reloaded")
