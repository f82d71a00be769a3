"""
Abstract connector interface.
All connectors must implement `stream`.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterable, AsyncIterator, Optional, TypeVar

from pydantic import BaseModel as PydanticModel, ConfigDict, Field

from streamforge.types import Message, ModelDescriptor, StreamEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation signal for one connector call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


async def until_cancelled(
    source: AsyncIterable[T],
    token: Optional[CancellationToken],
) -> AsyncIterator[T]:
    """
    Iterate `source`, stopping as soon as `token` is cancelled, even while a
    read is still pending (a stalled upstream).
    """
    if token is None:
        async for item in source:
            yield item
        return

    iterator = source.__aiter__()
    cancelled = asyncio.ensure_future(token.wait())
    try:
        while True:
            read = asyncio.ensure_future(iterator.__anext__())
            await asyncio.wait({read, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            if cancelled.done():
                read.cancel()
                await asyncio.wait({read})
                if not read.cancelled() and read.exception() is not None:
                    logger.debug("Read interrupted by cancellation: %r", read.exception())
                return
            try:
                item = read.result()
            except StopAsyncIteration:
                return
            yield item
    finally:
        cancelled.cancel()


class StreamContext(PydanticModel):
    system_prompt: Optional[str] = None
    messages: list[Message] = Field(default_factory=list)
    tools: Optional[list[dict[str, Any]]] = None  # [{"name", "description", "input_schema"}]


class StreamOptions(PydanticModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    api_key: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    headers: Optional[dict[str, str]] = None
    cancellation_token: Optional[CancellationToken] = None

    @property
    def cancelled(self) -> bool:
        return self.cancellation_token is not None and self.cancellation_token.cancelled


class Connector(ABC):
    """Unified interface for all LLM providers."""

    id: str
    label: str
    provider: str
    api: str
    env_vars: list[str] = []
    models: list[ModelDescriptor] = []

    @abstractmethod
    def stream(
        self,
        model: ModelDescriptor,
        context: StreamContext,
        options: StreamOptions,
    ) -> AsyncIterator[StreamEvent]:
        """
        Yield canonical StreamEvents:
          - start
          - text_delta {delta} ... text_end {content}
          - toolcall_start {index, id} / toolcall_delta {index, delta} / toolcall_end {tool_call}
          - done {stop_reason} | error {error}   (exactly one, last)

        Transport failures become an `error` event, never an exception.
        On cancellation the stream just stops, without a terminal event.
        """

    def get_model(self, model_id: str) -> Optional[ModelDescriptor]:
        for m in self.models:
            if m.id == model_id:
                return m
        return None
