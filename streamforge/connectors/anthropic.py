"""
Anthropic (Claude) connector.
Uses the official anthropic SDK raw Messages stream with tool use.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

import anthropic

from streamforge.connectors.assembler import ToolCallAssembler
from streamforge.connectors.base import Connector, StreamContext, StreamOptions, until_cancelled
from streamforge.errors import MalformedToolArguments
from streamforge.types import (
    LENGTH,
    STOP,
    TOOL_USE,
    AssistantMessage,
    DoneEvent,
    ErrorEvent,
    ImageContent,
    ModelDescriptor,
    StartEvent,
    StreamEvent,
    TextContent,
    TextDeltaEvent,
    TextEndEvent,
    ToolCall,
    ToolResultMessage,
    Usage,
    UserMessage,
)

logger = logging.getLogger(__name__)

API = "anthropic-messages"
DEFAULT_MAX_TOKENS = 8192

_STOP_REASONS: dict[str, str] = {
    "end_turn":      STOP,
    "stop_sequence": STOP,
    "tool_use":      TOOL_USE,
    "max_tokens":    LENGTH,
}


def _to_anthropic_blocks(blocks: list) -> list[dict]:
    result: list[dict] = []
    for block in blocks:
        if isinstance(block, TextContent):
            result.append({"type": "text", "text": block.text})
        elif isinstance(block, ImageContent):
            result.append({
                "type": "image",
                "source": {"type": "base64", "media_type": block.mime_type, "data": block.data},
            })
    return result


def to_anthropic_messages(messages: list) -> list[dict]:
    """Convert the canonical history to Anthropic API format."""
    result: list[dict] = []
    for msg in messages:
        if isinstance(msg, UserMessage):
            content = msg.content if isinstance(msg.content, str) else _to_anthropic_blocks(msg.content)
            result.append({"role": "user", "content": content})

        elif isinstance(msg, AssistantMessage):
            blocks: list[dict] = []
            for block in msg.content:
                if isinstance(block, TextContent) and block.text:
                    blocks.append({"type": "text", "text": block.text})
                elif isinstance(block, ToolCall):
                    blocks.append({
                        "type": "tool_use",
                        "id": block.id,
                        "name": block.name,
                        "input": block.arguments,
                    })
            if blocks:
                result.append({"role": "assistant", "content": blocks})

        elif isinstance(msg, ToolResultMessage):
            # Tool results become a user message of tool_result blocks.
            # Results of one turn must share a single user message.
            block = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": _to_anthropic_blocks(msg.content),
                "is_error": msg.is_error,
            }
            prev = result[-1] if result else None
            if (
                prev is not None
                and prev["role"] == "user"
                and isinstance(prev["content"], list)
                and prev["content"]
                and prev["content"][0].get("type") == "tool_result"
            ):
                prev["content"].append(block)
            else:
                result.append({"role": "user", "content": [block]})

    return result


def _error_message(exc: Exception) -> str:
    if isinstance(exc, anthropic.AuthenticationError):
        return "Invalid Anthropic API key"
    if isinstance(exc, anthropic.APIStatusError):
        body = exc.body
        if isinstance(body, dict) and body.get("message"):
            return f"HTTP {exc.status_code}: {body['message']}"
        return f"HTTP {exc.status_code}: {exc.message}"
    if isinstance(exc, anthropic.APIConnectionError):
        return f"Connection error: {exc}"
    return str(exc) or type(exc).__name__


class AnthropicConnector(Connector):
    def __init__(
        self,
        api_key: Optional[str] = None,
        models: Optional[list[ModelDescriptor]] = None,
        base_url: Optional[str] = None,
        env_vars: Optional[list[str]] = None,
        id: str = "builtin/anthropic",
        max_retries: int = 2,
    ):
        self.id = id
        self.label = "Anthropic"
        self.provider = "anthropic"
        self.api = API
        self.env_vars = list(env_vars or ["ANTHROPIC_API_KEY"])
        self.models = list(models or [])
        self._api_key = api_key
        self._base_url = base_url
        self._max_retries = max_retries

    async def stream(
        self,
        model: ModelDescriptor,
        context: StreamContext,
        options: StreamOptions,
    ) -> AsyncIterator[StreamEvent]:
        yield StartEvent()

        kwargs: dict[str, Any] = {
            "model": model.id,
            "max_tokens": options.max_tokens or model.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": to_anthropic_messages(context.messages),
            "stream": True,
        }
        if context.system_prompt:
            kwargs["system"] = context.system_prompt
        if context.tools:
            kwargs["tools"] = context.tools
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature

        try:
            client = anthropic.AsyncAnthropic(
                api_key=options.api_key or self._api_key,
                base_url=model.base_url or self._base_url,
                max_retries=self._max_retries,
                default_headers={**(model.headers or {}), **(options.headers or {})} or None,
            )
            stream = await client.messages.create(**kwargs)
        except Exception as e:
            logger.warning("Request to anthropic failed: %s", e)
            yield ErrorEvent(error=_error_message(e))
            return

        assembler = ToolCallAssembler()
        text_blocks: dict[int, str] = {}
        stop_reason: Optional[str] = None
        input_tokens = 0
        output_tokens = 0
        finished_calls = 0

        try:
            async for event in until_cancelled(stream, options.cancellation_token):
                if event.type == "message_start":
                    input_tokens = event.message.usage.input_tokens or 0

                elif event.type == "content_block_start":
                    block = event.content_block
                    if block.type == "tool_use":
                        for ev in assembler.observe(event.index, id=block.id, name=block.name):
                            yield ev
                    elif block.type == "text":
                        text_blocks[event.index] = ""

                elif event.type == "content_block_delta":
                    delta = event.delta
                    if delta.type == "text_delta":
                        text_blocks[event.index] = text_blocks.get(event.index, "") + delta.text
                        yield TextDeltaEvent(delta=delta.text)
                    elif delta.type == "input_json_delta":
                        for ev in assembler.observe(event.index, arguments=delta.partial_json):
                            yield ev

                elif event.type == "content_block_stop":
                    if event.index in text_blocks:
                        content = text_blocks.pop(event.index)
                        if content:
                            yield TextEndEvent(content=content)
                    elif event.index in assembler.open_indices:
                        try:
                            end = assembler.finalize(event.index)
                        except MalformedToolArguments as e:
                            yield ErrorEvent(error=str(e))
                            return
                        finished_calls += 1
                        yield end

                elif event.type == "message_delta":
                    stop_reason = event.delta.stop_reason or stop_reason
                    if event.usage is not None:
                        output_tokens = event.usage.output_tokens or 0

        except Exception as e:
            logger.warning("Stream from anthropic dropped: %s", e)
            yield ErrorEvent(error=_error_message(e))
            return
        finally:
            await stream.close()

        if options.cancelled:
            logger.debug("Stream from anthropic cancelled")
            return

        for index in sorted(text_blocks):
            if text_blocks[index]:
                yield TextEndEvent(content=text_blocks[index])
        try:
            for end in assembler.finalize_all():
                finished_calls += 1
                yield end
        except MalformedToolArguments as e:
            yield ErrorEvent(error=str(e))
            return

        reason = TOOL_USE if finished_calls else _STOP_REASONS.get(stop_reason or "", STOP)
        if reason == TOOL_USE and not finished_calls:
            reason = STOP
        yield DoneEvent(
            stop_reason=reason,
            usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens),
        )
