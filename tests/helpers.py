"""Shared test doubles: a scripted connector and small event builders."""
from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator, Iterable

from streamforge.connectors.base import Connector, StreamContext, StreamOptions
from streamforge.tools.base import Tool
from streamforge.tools.results import text_result
from streamforge.types import (
    STOP,
    TOOL_USE,
    DoneEvent,
    ErrorEvent,
    ModelDescriptor,
    StartEvent,
    StreamEvent,
    TextDeltaEvent,
    TextEndEvent,
    ToolCall,
    ToolCallDeltaEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
    ToolResult,
)

SCRIPTED_MODEL = ModelDescriptor(id="scripted-1", provider="scripted", api="scripted")


def text_turn(text: str, stop_reason: str = STOP) -> list[StreamEvent]:
    events: list[StreamEvent] = [StartEvent()]
    for i, word in enumerate(text.split(" ")):
        events.append(TextDeltaEvent(delta=word if i == 0 else f" {word}"))
    events.append(TextEndEvent(content=text))
    events.append(DoneEvent(stop_reason=stop_reason))
    return events


def tool_turn(*calls: tuple[str, str, dict], text: str = "") -> list[StreamEvent]:
    """One turn requesting `calls`, each given as (id, name, arguments)."""
    events: list[StreamEvent] = [StartEvent()]
    if text:
        events += [TextDeltaEvent(delta=text), TextEndEvent(content=text)]
    for index, (call_id, name, arguments) in enumerate(calls):
        raw = json.dumps(arguments)
        events += [
            ToolCallStartEvent(index=index, id=call_id),
            ToolCallDeltaEvent(index=index, delta=raw),
            ToolCallEndEvent(
                index=index,
                tool_call=ToolCall(id=call_id, name=name, arguments=arguments),
            ),
        ]
    events.append(DoneEvent(stop_reason=TOOL_USE))
    return events


class ScriptedConnector(Connector):
    """Replays one prepared event list per call; the last one repeats if `repeat_last`."""

    def __init__(self, turns: Iterable[list[StreamEvent]], repeat_last: bool = False):
        self.id = "test/scripted"
        self.label = "Scripted"
        self.provider = "scripted"
        self.api = "scripted"
        self.env_vars = []
        self.models = [SCRIPTED_MODEL]
        self._turns = list(turns)
        self._repeat_last = repeat_last
        self.calls = 0
        self.contexts: list[StreamContext] = []
        self.options: list[StreamOptions] = []

    async def stream(
        self,
        model: ModelDescriptor,
        context: StreamContext,
        options: StreamOptions,
    ) -> AsyncIterator[StreamEvent]:
        self.contexts.append(context)
        self.options.append(options)
        if self.calls < len(self._turns):
            events = self._turns[self.calls]
        elif self._repeat_last and self._turns:
            events = self._turns[-1]
        else:
            events = [StartEvent(), ErrorEvent(error="script exhausted")]
        self.calls += 1

        for event in events:
            if options.cancelled:
                return
            yield event


class EchoTool(Tool):
    name = "echo"
    label = "Echo"
    description = "Echoes the input message back verbatim."
    parameters = {
        "type": "object",
        "properties": {"message": {"type": "string"}},
        "required": ["message"],
    }

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []

    async def execute(self, call_id: str, arguments: dict) -> ToolResult:
        self.calls.append((call_id, arguments))
        return text_result(str(arguments.get("message", "")), details={"echoed": arguments.get("message")})


class FailingTool(Tool):
    name = "explode"
    description = "Always fails."
    parameters = {"type": "object", "properties": {}}

    async def execute(self, call_id: str, arguments: dict) -> ToolResult:
        raise RuntimeError("kaboom: disk on fire")


class SlowTool(Tool):
    """Sleeps `delay` seconds, recording start/finish order."""

    parameters = {"type": "object", "properties": {}}

    def __init__(self, name: str, delay: float, log: list[str]):
        self.name = name
        self.description = f"sleeps {delay}s"
        self._delay = delay
        self._log = log

    async def execute(self, call_id: str, arguments: dict) -> ToolResult:
        self._log.append(f"start:{self.name}")
        await asyncio.sleep(self._delay)
        self._log.append(f"end:{self.name}")
        return text_result(self.name)
