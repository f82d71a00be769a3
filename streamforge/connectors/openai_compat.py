"""
OpenAI-compatible connector.
Works with OpenAI, Ollama (http://localhost:11434/v1), Groq, OpenRouter and any
endpoint that speaks the Chat Completions wire format.
Compatible with openai SDK v1.x / v2.x.

Tool-call arguments arrive as index-addressed fragments in `delta.tool_calls`;
they are reassembled by ToolCallAssembler.
"""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

import openai
from openai import AsyncOpenAI

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

API = "openai-completions"

_FINISH_REASONS: dict[str, str] = {
    "stop":          STOP,
    "end_turn":      STOP,
    "tool_calls":    TOOL_USE,
    "function_call": TOOL_USE,
    "length":        LENGTH,
}


def map_finish_reason(reason: Optional[str]) -> str:
    return _FINISH_REASONS.get(reason or "", STOP)


def _convert_blocks_for_openai(blocks: list) -> str | list[dict]:
    """
    Convert canonical content blocks to Chat Completions content.

      text  → {"type": "text", "text": "..."}
      image → {"type": "image_url", "image_url": {"url": "data:mime;base64,..."}}
    """
    result: list[dict] = []
    for block in blocks:
        if isinstance(block, TextContent):
            result.append({"type": "text", "text": block.text})
        elif isinstance(block, ImageContent):
            result.append({
                "type": "image_url",
                "image_url": {"url": f"data:{block.mime_type};base64,{block.data}"},
            })

    if not result:
        return ""
    # If single plain-text block, return as string (better model compatibility)
    if len(result) == 1 and result[0]["type"] == "text":
        return result[0]["text"]
    return result


def _tool_result_text(msg: ToolResultMessage) -> str:
    # Tool messages only accept text; images are described inline
    parts: list[str] = []
    for block in msg.content:
        if isinstance(block, TextContent):
            parts.append(block.text)
        elif isinstance(block, ImageContent):
            parts.append(f"[image: {block.mime_type}]")
    return "\n".join(parts)


def to_openai_messages(context: StreamContext) -> list[dict]:
    """Convert the canonical history to Chat Completions messages."""
    result: list[dict] = []
    if context.system_prompt:
        result.append({"role": "system", "content": context.system_prompt})

    for msg in context.messages:
        if isinstance(msg, UserMessage):
            content = msg.content if isinstance(msg.content, str) else _convert_blocks_for_openai(msg.content)
            result.append({"role": "user", "content": content})

        elif isinstance(msg, AssistantMessage):
            entry: dict[str, Any] = {"role": "assistant", "content": msg.text or None}
            calls = [b for b in msg.content if isinstance(b, ToolCall)]
            if calls:
                entry["tool_calls"] = [
                    {
                        "id": c.id,
                        "type": "function",
                        "function": {"name": c.name, "arguments": json.dumps(c.arguments)},
                    }
                    for c in calls
                ]
            result.append(entry)

        elif isinstance(msg, ToolResultMessage):
            result.append({
                "role": "tool",
                "tool_call_id": msg.tool_call_id,
                "content": _tool_result_text(msg),
            })

    return result


def to_openai_tools(tools: Optional[list[dict]]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": t["name"],
                "description": t.get("description", ""),
                "parameters": t.get("input_schema") or {"type": "object", "properties": {}},
            },
        }
        for t in tools or []
    ]


def _error_message(exc: Exception) -> str:
    """Prefer the provider's own error text over the SDK's wrapper message."""
    if isinstance(exc, openai.APIStatusError):
        body = exc.body
        if isinstance(body, dict) and body.get("message"):
            return f"HTTP {exc.status_code}: {body['message']}"
        return f"HTTP {exc.status_code}: {exc.message}"
    return str(exc) or type(exc).__name__


class OpenAICompatConnector(Connector):
    def __init__(
        self,
        provider: str = "openai",
        base_url: str = "https://api.openai.com/v1",
        api_key: Optional[str] = None,
        models: Optional[list[ModelDescriptor]] = None,
        env_vars: Optional[list[str]] = None,
        id: Optional[str] = None,
        label: Optional[str] = None,
        streaming: bool = True,
        max_retries: int = 2,
        timeout: float = 600.0,
    ):
        self.id          = id or f"builtin/{provider}"
        self.label       = label or provider.replace("-", " ").title()
        self.provider    = provider
        self.api         = API
        self.models      = list(models or [])
        self.env_vars    = list(env_vars or [f"{provider.upper().replace('-', '_')}_API_KEY"])
        self._base_url   = base_url
        self._api_key    = api_key
        self._streaming  = streaming
        self._max_retries = max_retries
        self._timeout    = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def _client(self, model: ModelDescriptor, options: StreamOptions) -> AsyncOpenAI:
        return AsyncOpenAI(
            base_url=model.base_url or self._base_url,
            api_key=options.api_key or self._api_key or "no-key",
            max_retries=self._max_retries,
            timeout=self._timeout,
            default_headers={**(model.headers or {}), **(options.headers or {})} or None,
        )

    def _request(self, model: ModelDescriptor, context: StreamContext, options: StreamOptions) -> dict:
        kwargs: dict[str, Any] = {
            "model":    model.id,
            "messages": to_openai_messages(context),
            "stream":   self._streaming,
        }
        if context.tools:
            kwargs["tools"] = to_openai_tools(context.tools)
        max_tokens = options.max_tokens or model.max_tokens
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        return kwargs

    async def stream(
        self,
        model: ModelDescriptor,
        context: StreamContext,
        options: StreamOptions,
    ) -> AsyncIterator[StreamEvent]:
        yield StartEvent()

        client = self._client(model, options)
        kwargs = self._request(model, context, options)

        try:
            # If the model doesn't support tools, retry once without them
            try:
                response = await client.chat.completions.create(**kwargs)
            except openai.BadRequestError as e:
                if "does not support tools" in str(e).lower() and "tools" in kwargs:
                    logger.info("Model %s rejected tools, retrying without them", model.id)
                    kwargs.pop("tools")
                    response = await client.chat.completions.create(**kwargs)
                else:
                    raise
        except Exception as e:
            logger.warning("Request to %s failed: %s", self.provider, e)
            yield ErrorEvent(error=_error_message(e))
            return

        if not self._streaming:
            async for event in self._from_completion(response):
                yield event
            return

        assembler = ToolCallAssembler()
        text = ""
        finish_reason: Optional[str] = None
        usage: Optional[Usage] = None

        try:
            async for chunk in until_cancelled(response, options.cancellation_token):
                if getattr(chunk, "usage", None):
                    usage = Usage(
                        input_tokens=chunk.usage.prompt_tokens or 0,
                        output_tokens=chunk.usage.completion_tokens or 0,
                    )

                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta  = choice.delta

                if delta is not None and delta.content:
                    text += delta.content
                    yield TextDeltaEvent(delta=delta.content)

                if delta is not None and delta.tool_calls:
                    for tc_delta in delta.tool_calls:
                        fn = tc_delta.function
                        for event in assembler.observe(
                            tc_delta.index,
                            id=tc_delta.id,
                            name=fn.name if fn else None,
                            arguments=fn.arguments if fn else None,
                        ):
                            yield event

                if choice.finish_reason:
                    finish_reason = choice.finish_reason

        except Exception as e:
            logger.warning("Stream from %s dropped: %s", self.provider, e)
            yield ErrorEvent(error=_error_message(e))
            return
        finally:
            await response.close()

        if options.cancelled:
            logger.debug("Stream from %s cancelled", self.provider)
            return

        async for event in _close_turn(text, assembler, finish_reason, usage):
            yield event

    async def _from_completion(self, completion: Any) -> AsyncIterator[StreamEvent]:
        """Synthesize the event sequence from a single (non-streaming) JSON response."""
        if not completion.choices:
            yield ErrorEvent(error="Empty response from provider")
            return

        choice = completion.choices[0]
        message = choice.message
        text = message.content or ""
        if text:
            yield TextDeltaEvent(delta=text)

        assembler = ToolCallAssembler()
        for i, tc in enumerate(message.tool_calls or []):
            for event in assembler.observe(
                i, id=tc.id, name=tc.function.name, arguments=tc.function.arguments
            ):
                yield event

        usage = None
        if completion.usage:
            usage = Usage(
                input_tokens=completion.usage.prompt_tokens or 0,
                output_tokens=completion.usage.completion_tokens or 0,
            )

        async for event in _close_turn(text, assembler, choice.finish_reason, usage):
            yield event


async def _close_turn(
    text: str,
    assembler: ToolCallAssembler,
    finish_reason: Optional[str],
    usage: Optional[Usage],
) -> AsyncIterator[StreamEvent]:
    """Emit text_end, the finished tool calls and the terminal event."""
    if text:
        yield TextEndEvent(content=text)

    try:
        ends = assembler.finalize_all()
    except MalformedToolArguments as e:
        yield ErrorEvent(error=str(e))
        return

    for end in ends:
        yield end

    stop_reason = TOOL_USE if ends else map_finish_reason(finish_reason)
    if stop_reason == TOOL_USE and not ends:
        stop_reason = STOP
    yield DoneEvent(stop_reason=stop_reason, usage=usage)
