"""DM tools: the closed catalog the narrating agent can call."""

from dungeon_chronicle.dm.tools.base import DMTool, ToolArgs, ToolResult
from dungeon_chronicle.dm.tools.catalog import (
    TOOL_NAMES,
    DMToolbox,
    ToolArguments,
    parse_tool_arguments,
)

__all__ = [
    "DMTool",
    "ToolArgs",
    "ToolResult",
    "TOOL_NAMES",
    "DMToolbox",
    "ToolArguments",
    "parse_tool_arguments",
]
