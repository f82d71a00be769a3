"""
Base tool interface. Each tool exposes a JSON schema for the model
and an async `execute` method returning a ToolResult.
"""
from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel as PydanticModel, ConfigDict, Field

from streamforge.types import TextContent, ToolResult


class ToolContext(PydanticModel):
    """What a workspace/session offers to tools at resolution time."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    workspace_dir: Optional[str] = None
    root: Optional[str] = None  # defaults to workspace_dir
    bridge: Any = None          # FsBridge
    sandboxed: bool = False
    agent_id: Optional[str] = None
    session_key: Optional[str] = None
    config: dict[str, Any] = Field(default_factory=dict)

    @property
    def effective_root(self) -> Optional[str]:
        return self.root or self.workspace_dir

    def capabilities(self) -> set[str]:
        caps: set[str] = set()
        if self.bridge is not None and self.effective_root:
            caps.add("bridge")
        if self.workspace_dir:
            caps.add("workspace")
        if self.agent_id:
            caps.add("agent")
        if self.sandboxed:
            caps.add("sandbox")
        return caps


class Tool(ABC):
    name: str
    label: str = ""
    description: str
    parameters: dict  # JSON Schema object
    owner_only: bool = False
    requires: frozenset[str] = frozenset()  # ToolContext capabilities

    @abstractmethod
    async def execute(self, call_id: str, arguments: dict[str, Any]) -> ToolResult:
        """Run the tool. Failures are raised, not returned."""

    @property
    def display_label(self) -> str:
        return self.label or self.name

    def to_anthropic_schema(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


ToolFunction = Callable[[str, dict[str, Any]], Union[ToolResult, str, Awaitable[Union[ToolResult, str]]]]


class FunctionTool(Tool):
    """Wrap a plain (sync or async) function as a Tool. A `str` return becomes one text block."""

    def __init__(
        self,
        name: str,
        description: str,
        parameters: dict,
        fn: ToolFunction,
        label: str = "",
        owner_only: bool = False,
        requires: frozenset[str] = frozenset(),
    ):
        self.name = name
        self.description = description
        self.parameters = parameters
        self.label = label
        self.owner_only = owner_only
        self.requires = frozenset(requires)
        self._fn = fn

    async def execute(self, call_id: str, arguments: dict[str, Any]) -> ToolResult:
        result = self._fn(call_id, arguments)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, str):
            return ToolResult(content=[TextContent(text=result)])
        if not isinstance(result, ToolResult):
            raise TypeError(f"{self.name} returned {type(result).__name__}, expected ToolResult or str")
        return result


ToolFactory = Callable[[ToolContext], Union[Tool, list[Tool], None]]
