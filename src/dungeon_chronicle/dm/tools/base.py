"""Base classes for DM tools.

Tools are defined by Python and called by the narrating agent. The agent
provides arguments, Python validates them against a closed argument model
and executes. A tool never receives arguments that did not validate.
"""

from __future__ import annotations

import json
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from dungeon_chronicle.core.logging import get_logger
from dungeon_chronicle.engine.results import RuleResult


logger = get_logger(__name__)


# =============================================================================
# Tool Base Classes
# =============================================================================


class ToolArgs(BaseModel):
    """Base for tool argument models.

    Every subclass declares ``tool: Literal["<name>"]`` so the catalog can
    be validated as one discriminated union.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    tool: str


class ToolResult(BaseModel):
    """Result of a tool execution.

    Attributes:
        tool_name: Catalog name of the tool.
        call_id: Identifier of the call that produced this result.
        success: Whether the call succeeded.
        result: One-line description for the agent.
        data: Structured payload.
        error_kind: Exception class name when the call failed.
        mutated: Whether world state or memory changed.
    """

    tool_name: str
    call_id: str = ""
    success: bool
    result: str
    data: dict[str, Any] = Field(default_factory=dict)
    error_kind: str | None = None
    mutated: bool = False

    @classmethod
    def from_rule(cls, tool_name: str, outcome: RuleResult, *, mutated: bool) -> ToolResult:
        return cls(
            tool_name=tool_name,
            success=True,
            result=outcome.describe(),
            data=outcome.model_dump(mode="json"),
            mutated=mutated,
        )

    @classmethod
    def failure(cls, tool_name: str, call_id: str, exc: BaseException) -> ToolResult:
        data = dict(getattr(exc, "details", None) or {})
        message = getattr(exc, "message", None) or str(exc)
        return cls(
            tool_name=tool_name,
            call_id=call_id,
            success=False,
            result=f"Error: {message}",
            data={k: v for k, v in data.items() if _is_json_value(v)},
            error_kind=type(exc).__name__,
        )

    def to_tool_output(self, max_chars: int) -> str:
        """Serialize for the agent, truncated to ``max_chars``."""
        payload: dict[str, Any] = {"success": self.success, "result": self.result}
        if self.error_kind:
            payload["error"] = self.error_kind
        if self.data:
            payload["data"] = self.data
        text = json.dumps(payload, default=str)
        if len(text) <= max_chars:
            return text
        return text[: max_chars - 3] + "..."


def _is_json_value(value: Any) -> bool:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return False
    return True


class DMTool:
    """A tool that the DM can invoke.

    Attributes:
        name: Catalog name, equal to the ``tool`` tag of ``args_model``.
        description: Description shown to the agent.
        args_model: Closed argument model.
        handler: Callable taking validated arguments.
        mutates: Whether the tool may change world state or memory.
    """

    def __init__(
        self,
        name: str,
        description: str,
        args_model: type[ToolArgs],
        handler: Callable[[Any], ToolResult],
        *,
        mutates: bool = False,
    ) -> None:
        self.name = name
        self.description = description
        self.args_model = args_model
        self.handler = handler
        self.mutates = mutates

    def parameters(self) -> dict[str, Any]:
        """JSON schema of the arguments, without the internal tag."""
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        schema.get("properties", {}).pop("tool", None)
        required = [name for name in schema.get("required", []) if name != "tool"]
        if required:
            schema["required"] = required
        else:
            schema.pop("required", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        return schema

    def to_openai_schema(self) -> dict[str, Any]:
        """Convert to OpenAI function schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters(),
            },
        }

    def execute(self, args: ToolArgs, *, call_id: str = "") -> ToolResult:
        """Execute the tool with validated arguments.

        Errors propagate to the caller, which owns rollback.
        """
        logger.info("Executing tool", tool=self.name, call_id=call_id)
        result = self.handler(args)
        return result.model_copy(update={"call_id": call_id})


__all__ = ["ToolArgs", "ToolResult", "DMTool"]
