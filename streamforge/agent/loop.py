"""
Agent execution loop.
Streams one connector call per turn, runs the requested tools and feeds their
results back until the model stops asking for tools.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from enum import Enum
from typing import Any, AsyncIterator, Literal, Optional

from pydantic import BaseModel, Field

from streamforge.agent.protocol import ProtocolValidator
from streamforge.config import get_config
from streamforge.connectors.base import Connector, StreamContext, StreamOptions
from streamforge.connectors.registry import resolve_auth
from streamforge.errors import ProtocolViolation, SchemaNormalizationError
from streamforge.tools.base import Tool
from streamforge.tools.registry import ToolRegistry
from streamforge.tools.schema import extract_tool_schema
from streamforge.types import (
    LENGTH,
    TOOL_USE,
    AssistantMessage,
    DoneEvent,
    ErrorEvent,
    Message,
    ModelDescriptor,
    TextContent,
    ToolCall,
    ToolResultMessage,
)

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    STREAMING = "streaming"
    AWAITING_TOOLS = "awaiting_tools"
    FINISHED = "finished"


FinishReason = Literal["stop", "length", "turn_cap", "error", "cancelled"]


class LoopResult(BaseModel):
    state: LoopState = LoopState.FINISHED
    finish_reason: FinishReason
    messages: list[Message] = Field(default_factory=list)
    turns: int = 0
    error: Optional[str] = None


class LoopEvent(BaseModel):
    """
    What the loop reports to its caller:
      turn_start  {n}
      stream      a StreamEvent from the connector, passed through
      assistant   the AssistantMessage appended at the end of a turn
      tool_result a ToolResultMessage appended after a tool ran
      finished    the LoopResult (always last)
    """
    type: Literal["turn_start", "stream", "assistant", "tool_result", "finished"]
    turn: int = 0
    data: Any = None


def _error_result(call: ToolCall, text: str) -> ToolResultMessage:
    return ToolResultMessage(
        tool_call_id=call.id,
        tool_name=call.name,
        content=[TextContent(text=text)],
        is_error=True,
    )


async def _run_tool(
    registry: ToolRegistry,
    tool_map: dict[str, Tool],
    call: ToolCall,
) -> ToolResultMessage:
    tool = tool_map.get(call.name)
    if tool is None:
        return _error_result(call, f"Error: tool '{call.name}' is not available")

    try:
        result = await registry.execute(tool, call.id, call.arguments)
        return ToolResultMessage(
            tool_call_id=call.id,
            tool_name=call.name,
            content=list(result.content),
            details=result.details,
        )
    except PermissionError as e:
        return _error_result(call, f"Permission denied: {e}")
    except Exception as e:
        logger.info("Tool %s failed: %s", call.name, e)
        return _error_result(call, f"Tool error: {e or type(e).__name__}")


async def _dispatch(
    registry: ToolRegistry,
    tool_map: dict[str, Tool],
    calls: list[ToolCall],
    parallel: bool,
) -> list[ToolResultMessage]:
    """Results come back in call order whichever way the tools ran."""
    if parallel:
        return list(await asyncio.gather(*(_run_tool(registry, tool_map, c) for c in calls)))
    return [await _run_tool(registry, tool_map, c) for c in calls]


def _advertise(tools: list[Tool], provider: str) -> tuple[dict[str, Tool], list[dict]]:
    """Map and schemas for the tools a model may call; unusable schemas drop the tool."""
    tool_map: dict[str, Tool] = {}
    schemas: list[dict] = []
    for tool in tools:
        try:
            schema = extract_tool_schema(tool, provider)
        except SchemaNormalizationError as e:
            logger.debug("Skipping tool %s: %s", tool.name, e)
            continue
        tool_map[tool.name] = tool
        schemas.append(schema)
    return tool_map, schemas


async def run_agent(
    messages: list[Message],
    connector: Connector,
    model: ModelDescriptor,
    tools: list[Tool] | None = None,
    system_prompt: str | None = None,
    options: StreamOptions | None = None,
    max_turns: int | None = None,
    parallel_tools: bool | None = None,
    registry: ToolRegistry | None = None,
) -> AsyncIterator[LoopEvent]:
    """
    Run the agent loop. Yields LoopEvents; the last one is always `finished`.

    Tool calls execute through `registry` (a bare ToolRegistry when omitted).
    """
    cfg = get_config()
    max_turns = cfg.agent.max_turns if max_turns is None else max_turns
    parallel = cfg.agent.parallel_tools if parallel_tools is None else parallel_tools
    registry = registry if registry is not None else ToolRegistry()

    tool_map, schemas = _advertise(tools or [], model.provider)
    schema_tools = schemas or None

    opts = options or StreamOptions()
    if opts.api_key is None:
        auth = resolve_auth(connector.provider, connector.env_vars)
        if auth is not None:
            logger.debug("Using %s credentials from %s", connector.provider, auth.source)
            opts = opts.model_copy(update={"api_key": auth.api_key})

    history: list[Message] = list(messages)
    turn = 0

    def finish(reason: FinishReason, error: str | None = None) -> LoopEvent:
        result = LoopResult(finish_reason=reason, messages=history, turns=turn, error=error)
        logger.info("Agent loop finished after %d turn(s): %s", turn, reason)
        return LoopEvent(type="finished", turn=turn, data=result)

    while True:
        if opts.cancelled:
            yield finish("cancelled")
            return
        if turn >= max_turns:
            yield finish("turn_cap", f"Max turns ({max_turns}) reached")
            return

        turn += 1
        state = LoopState.STREAMING
        logger.debug("Turn %d (%s) on %s", turn, state.value, model.id)
        yield LoopEvent(type="turn_start", turn=turn, data={"n": turn})

        context = StreamContext(system_prompt=system_prompt, messages=history, tools=schema_tools)
        validator = ProtocolValidator()
        assistant_text = ""
        tool_calls: list[ToolCall] = []
        terminal: DoneEvent | ErrorEvent | None = None

        try:
            async with aclosing(connector.stream(model, context, opts)) as events:
                async for event in events:
                    validator.feed(event)
                    yield LoopEvent(type="stream", turn=turn, data=event)

                    if event.type == "text_delta":
                        assistant_text += event.delta
                    elif event.type == "toolcall_end":
                        tool_calls.append(event.tool_call)
                    elif event.type in ("done", "error"):
                        terminal = event
        except ProtocolViolation as e:
            logger.warning("Connector %s broke the stream protocol: %s", connector.id, e)
            yield finish("error", f"Protocol violation: {e}")
            return

        if terminal is None:
            # Stream stopped without a terminal event: cancelled mid-call
            yield finish("cancelled")
            return
        if isinstance(terminal, ErrorEvent):
            yield finish("error", terminal.error)
            return

        content: list = [TextContent(text=assistant_text)] if assistant_text else []
        content.extend(tool_calls)
        assistant = AssistantMessage(content=content, stop_reason=terminal.stop_reason)
        history.append(assistant)
        yield LoopEvent(type="assistant", turn=turn, data=assistant)

        if terminal.stop_reason != TOOL_USE or not tool_calls:
            yield finish("length" if terminal.stop_reason == LENGTH else "stop")
            return

        state = LoopState.AWAITING_TOOLS
        logger.debug("Turn %d (%s): running %d tool call(s)", turn, state.value, len(tool_calls))
        for result in await _dispatch(registry, tool_map, tool_calls, parallel):
            history.append(result)
            yield LoopEvent(type="tool_result", turn=turn, data=result)


async def run_agent_to_completion(
    messages: list[Message],
    connector: Connector,
    model: ModelDescriptor,
    **kwargs: Any,
) -> LoopResult:
    """Drain run_agent and return its LoopResult."""
    result: LoopResult | None = None
    async for event in run_agent(messages, connector, model, **kwargs):
        if event.type == "finished":
            result = event.data
    assert result is not None
    return result
