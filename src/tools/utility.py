"""Built-in utility tools."""

from datetime import UTC, datetime

from src.tools.base import ToolResult
from src.tools.registry import registry


@registry.tool(
    name="get_current_datetime",
    description="Get the current date, time, and day of the week in UTC.",
    category="utility",
)
async def get_current_datetime() -> ToolResult:
    now = datetime.now(UTC)
    return ToolResult(
        data={
            "datetime": now.isoformat(),
            "date": now.strftime("%Y-%m-%d"),
            "time": now.strftime("%H:%M:%S"),
            "day_of_week": now.strftime("%A"),
            "timezone": "UTC",
        }
    )
