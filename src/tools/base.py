"""Base types for the cortex tool framework."""

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel


@dataclass
class ToolResult:
    """Result of a tool execution.

    The completion engine serializes it into a tool_result content block
    and shows a truncated preview to the operator.
    """

    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_content(self) -> str:
        """Serialize for the Claude tool_result content field."""
        if self.error:
            return json.dumps({"error": self.error})
        return json.dumps(self.data or {})


class ToolParams(BaseModel):
    """Base class for tool parameter models.

    Subclass with Field() definitions. The JSON schema is auto-generated
    via model_json_schema() for Claude's tool definitions.
    """
