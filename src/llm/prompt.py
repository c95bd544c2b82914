"""Prompt engine: renders named template slots into prompt text.

Templates live in ``src/prompts/`` (or ``settings.prompts_dir``) and use
Jinja2. Missing variables are errors, not empty strings, so a template
that references a slot nobody fills fails loudly.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import jinja2

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

CORTEX_CHAT_TEMPLATE = "cortex_chat.md.j2"
WORKER_CAPABILITIES_TEMPLATE = "worker_capabilities.md.j2"


class PromptRenderError(Exception):
    """A prompt template is missing or malformed.

    This is a deployment defect: no chat request can succeed until the
    templates are fixed, so callers must not catch and degrade.
    """


class PromptEngine:
    """Jinja2 environment bound to one prompts directory."""

    def __init__(self, prompts_dir: Path) -> None:
        self._prompts_dir = prompts_dir
        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(prompts_dir)),
            autoescape=False,  # plain text/markdown, never HTML
            undefined=jinja2.StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )

    @property
    def prompts_dir(self) -> Path:
        return self._prompts_dir

    def render(self, template_name: str, **slots: object) -> str:
        """Render *template_name* with the given slots."""
        try:
            return self._env.get_template(template_name).render(**slots).strip()
        except jinja2.TemplateError as exc:
            logger.critical("Failed to render prompt template %s: %s", template_name, exc)
            msg = f"failed to render {template_name}: {exc}"
            raise PromptRenderError(msg) from exc

    def validate(self) -> None:
        """Render every template once with all slots filled.

        Call at startup so a broken deployment fails before serving.
        """
        capabilities = self.render_worker_capabilities(True, True, True)
        self.render_cortex_chat_prompt("identity", "bulletin", "transcript", capabilities)

    def render_worker_capabilities(
        self,
        browser_enabled: bool,
        web_search_enabled: bool,
        opencode_enabled: bool,
    ) -> str:
        """Describe which optional worker capabilities are switched on."""
        return self.render(
            WORKER_CAPABILITIES_TEMPLATE,
            browser_enabled=browser_enabled,
            web_search_enabled=web_search_enabled,
            opencode_enabled=opencode_enabled,
        )

    def render_cortex_chat_prompt(
        self,
        identity_context: str | None,
        memory_bulletin: str | None,
        channel_transcript: str | None,
        worker_capabilities: str,
    ) -> str:
        """Render the cortex chat system prompt.

        ``None`` slots are absent sections; the template skips them.
        """
        return self.render(
            CORTEX_CHAT_TEMPLATE,
            identity_context=identity_context,
            memory_bulletin=memory_bulletin,
            channel_transcript=channel_transcript,
            worker_capabilities=worker_capabilities,
        )
