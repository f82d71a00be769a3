"""
Tool-call fragment assembler.

Providers stream tool calls as index-addressed fragments:

    {"index": 0, "id": "call_1", "function": {"name": "echo", "arguments": ""}}
    {"index": 0, "function": {"arguments": "{\"messa"}}
    {"index": 0, "function": {"arguments": "ge\": \"ping\"}"}}

The assembler turns these into toolcall_start / toolcall_delta / toolcall_end
events. One instance lives for exactly one connector call.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

from streamforge.errors import MalformedToolArguments
from streamforge.types import (
    ToolCall,
    ToolCallDeltaEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
)


@dataclass
class ToolCallFragment:
    index: int
    id: str
    name: str = ""
    raw: str = ""


def parse_arguments(index: int, raw: str) -> dict:
    """Parse an accumulated argument buffer. Empty text means a zero-argument call."""
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedToolArguments(index, raw, str(e)) from e
    if not isinstance(value, dict):
        raise MalformedToolArguments(index, raw, f"expected a JSON object, got {type(value).__name__}")
    return value


class ToolCallAssembler:
    def __init__(self) -> None:
        self._fragments: dict[int, ToolCallFragment] = {}

    @property
    def open_indices(self) -> list[int]:
        return sorted(self._fragments)

    @property
    def has_open(self) -> bool:
        return bool(self._fragments)

    def observe(
        self,
        index: int,
        id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Optional[str] = None,
    ) -> list[ToolCallStartEvent | ToolCallDeltaEvent]:
        events: list[ToolCallStartEvent | ToolCallDeltaEvent] = []

        fragment = self._fragments.get(index)
        if fragment is None:
            fragment = ToolCallFragment(index=index, id=id or f"call_{index}")
            self._fragments[index] = fragment
            events.append(ToolCallStartEvent(index=index, id=fragment.id))

        # First non-empty name wins
        if name and not fragment.name:
            fragment.name = name

        if arguments:
            fragment.raw += arguments
            events.append(ToolCallDeltaEvent(index=index, delta=arguments))

        return events

    def finalize(self, index: int) -> ToolCallEndEvent:
        fragment = self._fragments.get(index)
        if fragment is None:
            raise KeyError(f"no open tool call at index {index}")
        # The fragment is discarded whether or not parsing succeeds
        del self._fragments[index]
        arguments = parse_arguments(index, fragment.raw)
        return ToolCallEndEvent(
            index=index,
            tool_call=ToolCall(id=fragment.id, name=fragment.name, arguments=arguments),
        )

    def finalize_all(self) -> list[ToolCallEndEvent]:
        """Close every open call in index order. Stops at the first malformed one."""
        return [self.finalize(i) for i in self.open_indices]

    def reset(self) -> None:
        self._fragments.clear()
