"""
Debug connector: deterministic models that never touch the network.

Useful for wiring tests and demos without API keys. Text is streamed in
word-size deltas, exactly like a real provider would.
"""
from __future__ import annotations

import math
from typing import AsyncIterator

from streamforge.connectors.base import Connector, StreamContext, StreamOptions
from streamforge.types import (
    STOP,
    DoneEvent,
    ModelDescriptor,
    StartEvent,
    StreamEvent,
    TextDeltaEvent,
    TextEndEvent,
    Usage,
    UserMessage,
)

DEBUG_PROVIDER_ID = "debug"
DEBUG_API = "debug"

CANNED_RESPONSES = (
    "I understand your request. Let me help you with that.",
    "That's a great question. Based on my analysis, here's what I think.",
    "I've processed your input and here's my response.",
    "Thank you for the information. Here's what I can tell you.",
    "I'm working on your request. Here are my findings.",
)


def _model(id: str, name: str) -> ModelDescriptor:
    return ModelDescriptor(
        id=id,
        name=name,
        provider=DEBUG_PROVIDER_ID,
        api=DEBUG_API,
        base_url="local://debug",
        context_window=100_000,
        max_tokens=16_000,
    )


DEBUG_MODELS: list[ModelDescriptor] = [
    _model("dummy-echo-1", "Dummy Echo"),
    _model("sys-echo-1", "System Prompt Mirror"),
    _model("parrot-1", "Parrot (Verbatim Echo)"),
    _model("silent-1", "Silent (No Reply)"),
    _model("upper-parrot-1", "Uppercase Parrot"),
    _model("tagged-parrot-1", "Tagged Parrot (Relay)"),
    _model("inspect-echo-1", "Inspect Echo"),
]


def last_user_text(context: StreamContext) -> str:
    for msg in reversed(context.messages):
        if isinstance(msg, UserMessage):
            return msg.text
    return "(no message)"


def _rough_tokens(context: StreamContext) -> int:
    """4 chars ≈ 1 token."""
    chars = len(context.system_prompt or "") + sum(
        len(m.model_dump_json()) for m in context.messages
    )
    return math.ceil(chars / 4)


def _stable_hash(text: str) -> int:
    h = 0
    for ch in text:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    return h


def respond(model_id: str, context: StreamContext) -> str:
    """The full reply text a debug model gives for `context`."""
    last = last_user_text(context)

    if model_id == "sys-echo-1":
        sys = (context.system_prompt or "").strip() or "(no system prompt)"
        tools = context.tools or []
        listing = (
            "\n".join(f"  • {t['name']} — {t.get('description', '')}" for t in tools)
            if tools else "(no tools assigned)"
        )
        return (
            f"[sys-echo] My system prompt is:\n\n{sys}"
            f"\n[sys-echo] My available tools ({len(tools)}):\n\n{listing}"
        )
    if model_id == "parrot-1":
        return last
    if model_id == "silent-1":
        return "(silent)"
    if model_id == "upper-parrot-1":
        return last.upper()
    if model_id == "tagged-parrot-1":
        return f"[relay] {last}"
    if model_id == "inspect-echo-1":
        names = ", ".join(t["name"] for t in context.tools) if context.tools else "(none)"
        return "\n".join([
            f"[inspect] messages: {len(context.messages)}",
            f"[inspect] last_user: {last}",
            f"[inspect] tools: {names}",
            f"[inspect] has_system_prompt: {'yes' if context.system_prompt else 'no'}",
        ])

    canned = CANNED_RESPONSES[_stable_hash(last) % len(CANNED_RESPONSES)]
    return f'{canned}\n\nYou said: "{last}"'


def _word_chunks(text: str) -> list[str]:
    words = text.split(" ")
    return [w if i == 0 else f" {w}" for i, w in enumerate(words)]


class DebugConnector(Connector):
    def __init__(self) -> None:
        self.id = f"builtin/{DEBUG_PROVIDER_ID}"
        self.label = "Debug Models"
        self.provider = DEBUG_PROVIDER_ID
        self.api = DEBUG_API
        self.env_vars = []
        self.models = list(DEBUG_MODELS)

    async def stream(
        self,
        model: ModelDescriptor,
        context: StreamContext,
        options: StreamOptions,
    ) -> AsyncIterator[StreamEvent]:
        text = respond(model.id, context)
        input_tokens = 0 if model.id == "silent-1" else _rough_tokens(context)

        yield StartEvent()
        for chunk in _word_chunks(text):
            if options.cancelled:
                return
            if chunk:
                yield TextDeltaEvent(delta=chunk)
        if text:
            yield TextEndEvent(content=text)
        yield DoneEvent(
            stop_reason=STOP,
            usage=Usage(input_tokens=input_tokens, output_tokens=math.ceil(len(text) / 4)),
        )
