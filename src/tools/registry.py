"""Tool registry — the cortex's tool-access handle."""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from src.tools.base import ToolParams, ToolResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class ToolDef:
    """Internal representation of a registered tool."""

    name: str
    description: str
    category: str
    handler: Callable[..., Awaitable[ToolResult]]
    params_model: type[ToolParams] | None = None


class ToolRegistry:
    """Catalog of async tools the cortex may call.

    Register with the decorator::

        @registry.tool(
            name="my_tool",
            description="Does a thing",
            category="utility",
        )
        async def my_tool() -> ToolResult:
            return ToolResult(data={"ok": True})
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    def tool(
        self,
        *,
        name: str,
        description: str,
        category: str,
        params_model: type[ToolParams] | None = None,
    ) -> Callable:
        """Decorator to register an async function as a tool."""

        def decorator(fn: Callable[..., Awaitable[ToolResult]]) -> Callable:
            if not inspect.iscoroutinefunction(fn):
                msg = f"Tool handler '{name}' must be an async function"
                raise TypeError(msg)

            self._tools[name] = ToolDef(
                name=name,
                description=description,
                category=category,
                handler=fn,
                params_model=params_model,
            )
            return fn

        return decorator

    def get(self, name: str) -> ToolDef | None:
        """Look up a tool by name."""
        return self._tools.get(name)

    @property
    def tool_names(self) -> list[str]:
        """All registered tool names."""
        return list(self._tools.keys())

    def get_schemas(self) -> list[dict[str, Any]]:
        """Generate Claude-compatible tool schemas for all registered tools."""
        return [self._tool_schema(t) for t in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool by name with the given arguments.

        Validates arguments against the params_model if one is defined.
        Handler exceptions are logged and returned as error results so
        the model can see the failure and carry on.
        """
        tool_def = self._tools.get(name)
        if tool_def is None:
            return ToolResult(error=f"Unknown tool: {name}")

        logger.info("Tool '%s' called with %s", name, arguments)
        t0 = time.monotonic()

        try:
            if tool_def.params_model is not None:
                kwargs = tool_def.params_model(**arguments).model_dump()
            else:
                kwargs = dict(arguments)

            result = await tool_def.handler(**kwargs)
            elapsed = time.monotonic() - t0
            if result.success:
                logger.info("Tool '%s' succeeded in %.2fs", name, elapsed)
            else:
                logger.warning("Tool '%s' returned error in %.2fs: %s", name, elapsed, result.error)
            return result
        except Exception:
            elapsed = time.monotonic() - t0
            logger.exception("Tool '%s' failed in %.2fs", name, elapsed)
            return ToolResult(error=f"Tool '{name}' failed. Check logs for details.")

    @staticmethod
    def _tool_schema(tool_def: ToolDef) -> dict[str, Any]:
        """Build a single Claude tool schema dict."""
        if tool_def.params_model is not None:
            input_schema = tool_def.params_model.model_json_schema()
        else:
            input_schema = {"type": "object", "properties": {}}

        return {
            "name": tool_def.name,
            "description": tool_def.description,
            "input_schema": input_schema,
        }


registry = ToolRegistry()
