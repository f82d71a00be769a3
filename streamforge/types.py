"""
Canonical data model shared by connectors, tools and the agent loop.

Every connector speaks the same event vocabulary:
  start → (text_delta* text_end | toolcall_start toolcall_delta* toolcall_end)* → done | error
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# ── Stop classifications ─────────────────────────────────────────────────────

STOP = "stop"
TOOL_USE = "toolUse"
LENGTH = "length"
ERROR = "error"

StopReason = Literal["stop", "toolUse", "length", "error"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Content blocks ───────────────────────────────────────────────────────────

class TextContent(_Frozen):
    type: Literal["text"] = "text"
    text: str


class ImageContent(_Frozen):
    type: Literal["image"] = "image"
    data: str  # base64
    mime_type: str


class ToolCall(_Frozen):
    type: Literal["tool_call"] = "tool_call"
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


ResultBlock = Annotated[Union[TextContent, ImageContent], Field(discriminator="type")]
AssistantBlock = Annotated[Union[TextContent, ToolCall], Field(discriminator="type")]


# ── Messages ─────────────────────────────────────────────────────────────────

class UserMessage(_Frozen):
    role: Literal["user"] = "user"
    content: Union[str, list[ResultBlock]]

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "".join(b.text for b in self.content if isinstance(b, TextContent))


class AssistantMessage(_Frozen):
    role: Literal["assistant"] = "assistant"
    content: list[AssistantBlock] = Field(default_factory=list)
    stop_reason: Optional[str] = None

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextContent))

    @property
    def tool_calls(self) -> list[ToolCall]:
        return [b for b in self.content if isinstance(b, ToolCall)]


class ToolResultMessage(_Frozen):
    role: Literal["tool_result"] = "tool_result"
    tool_call_id: str
    tool_name: str
    content: list[ResultBlock] = Field(default_factory=list)
    is_error: bool = False
    details: Any = None

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.content if isinstance(b, TextContent))


Message = Annotated[
    Union[UserMessage, AssistantMessage, ToolResultMessage],
    Field(discriminator="role"),
]


# ── Tool execution boundary ──────────────────────────────────────────────────

class ToolResult(_Frozen):
    """What a tool's `execute` returns: ordered content blocks plus optional details."""
    content: list[ResultBlock] = Field(default_factory=list)
    details: Any = None


# ── Stream events ────────────────────────────────────────────────────────────

class Usage(_Frozen):
    input_tokens: int = 0
    output_tokens: int = 0


class StartEvent(_Frozen):
    type: Literal["start"] = "start"


class TextDeltaEvent(_Frozen):
    type: Literal["text_delta"] = "text_delta"
    delta: str


class TextEndEvent(_Frozen):
    type: Literal["text_end"] = "text_end"
    content: str


class ToolCallStartEvent(_Frozen):
    type: Literal["toolcall_start"] = "toolcall_start"
    index: int = 0
    id: Optional[str] = None


class ToolCallDeltaEvent(_Frozen):
    type: Literal["toolcall_delta"] = "toolcall_delta"
    index: int = 0
    delta: str


class ToolCallEndEvent(_Frozen):
    type: Literal["toolcall_end"] = "toolcall_end"
    index: int = 0
    tool_call: ToolCall


class DoneEvent(_Frozen):
    type: Literal["done"] = "done"
    stop_reason: str
    usage: Optional[Usage] = None


class ErrorEvent(_Frozen):
    type: Literal["error"] = "error"
    error: str


StreamEvent = Annotated[
    Union[
        StartEvent,
        TextDeltaEvent,
        TextEndEvent,
        ToolCallStartEvent,
        ToolCallDeltaEvent,
        ToolCallEndEvent,
        DoneEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

TERMINAL_EVENT_TYPES = frozenset({"done", "error"})


def is_terminal(event: Any) -> bool:
    return getattr(event, "type", None) in TERMINAL_EVENT_TYPES


# ── Model descriptor ─────────────────────────────────────────────────────────

class ModelDescriptor(_Frozen):
    id: str
    provider: str
    api: str
    name: Optional[str] = None
    base_url: Optional[str] = None
    context_window: Optional[int] = None
    max_tokens: Optional[int] = None
    reasoning: bool = False
    input: tuple[str, ...] = ("text",)
    headers: Optional[dict[str, str]] = None


def serialize_model(model: ModelDescriptor) -> dict[str, Any]:
    """Snake_case row for storage or REST payloads. Unset optional fields are omitted."""
    return model.model_dump(exclude_none=True, mode="json")


def deserialize_model(row: dict[str, Any]) -> ModelDescriptor:
    return ModelDescriptor.model_validate(row)
