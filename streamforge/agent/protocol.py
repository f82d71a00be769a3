"""
Checks a connector's event sequence against the stream invariants.

    start → (text_delta* text_end | toolcall_start toolcall_delta* toolcall_end)* → done | error
"""
from __future__ import annotations

from typing import AsyncIterator

from streamforge.errors import ProtocolViolation
from streamforge.types import TOOL_USE, StreamEvent


class ProtocolValidator:
    """Feed events in order; any breach raises ProtocolViolation."""

    def __init__(self) -> None:
        self.started = False
        self.terminated = False
        self._text = ""
        self._open_calls: set[int] = set()
        self._ended_calls = 0

    @property
    def open_calls(self) -> list[int]:
        return sorted(self._open_calls)

    def feed(self, event: StreamEvent) -> None:
        kind = event.type

        if self.terminated:
            raise ProtocolViolation(f"'{kind}' event after the terminal event")
        if kind == "start":
            if self.started:
                raise ProtocolViolation("duplicate 'start' event")
            self.started = True
            return
        if not self.started:
            raise ProtocolViolation(f"'{kind}' event before 'start'")

        if kind == "text_delta":
            self._text += event.delta
        elif kind == "text_end":
            if event.content != self._text:
                raise ProtocolViolation("text_end content does not match the streamed deltas")
            self._text = ""
        elif kind == "toolcall_start":
            if event.index in self._open_calls:
                raise ProtocolViolation(f"tool call #{event.index} started twice")
            self._open_calls.add(event.index)
        elif kind == "toolcall_delta":
            if event.index not in self._open_calls:
                raise ProtocolViolation(f"toolcall_delta for tool call #{event.index} which is not open")
        elif kind == "toolcall_end":
            if event.index not in self._open_calls:
                raise ProtocolViolation(f"toolcall_end for tool call #{event.index} which is not open")
            self._open_calls.discard(event.index)
            self._ended_calls += 1
        elif kind == "done":
            if self._open_calls:
                raise ProtocolViolation(f"'done' with unfinished tool calls {self.open_calls}")
            if self._ended_calls and event.stop_reason != TOOL_USE:
                raise ProtocolViolation(
                    f"stream finished {self._ended_calls} tool call(s) but stopped with '{event.stop_reason}'"
                )
            self.terminated = True
        elif kind == "error":
            # Unfinished calls are allowed here: malformed arguments end the stream early.
            self.terminated = True
        else:
            raise ProtocolViolation(f"unknown event type '{kind}'")


async def validate_stream(events: AsyncIterator[StreamEvent]) -> AsyncIterator[StreamEvent]:
    """Pass events through unchanged, raising ProtocolViolation on the first bad one."""
    validator = ProtocolValidator()
    async for event in events:
        validator.feed(event)
        yield event
