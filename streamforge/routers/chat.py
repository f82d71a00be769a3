"""
Chat API router.
POST /chat — run the agent loop on a conversation (returns an SSE stream)

Each SSE `data:` line carries one LoopEvent as JSON; the stream ends with
`data: [DONE]`.
"""
from __future__ import annotations

from typing import AsyncIterator, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from streamforge.agent.loop import run_agent
from streamforge.config import get_config
from streamforge.connectors.base import CancellationToken, StreamOptions
from streamforge.connectors.registry import resolve_model
from streamforge.tools.base import ToolContext
from streamforge.tools.bridge import LocalFsBridge
from streamforge.types import Message, UserMessage

router = APIRouter(tags=["chat"])


class ChatRequest(BaseModel):
    content: Optional[str] = None          # shorthand for one user message
    messages: Optional[list[Message]] = None
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    profile: str = "full"
    max_turns: Optional[int] = None


def _tool_context() -> ToolContext:
    cfg = get_config()
    if not cfg.tools.filesystem.enabled:
        return ToolContext()
    root = cfg.resolve_tool_root()
    return ToolContext(workspace_dir=str(root), bridge=LocalFsBridge(root))


@router.post("/chat")
async def chat(body: ChatRequest, request: Request):
    cfg = get_config()

    messages: list[Message] = list(body.messages or [])
    if body.content:
        messages.append(UserMessage(content=body.content))
    if not messages:
        raise HTTPException(status_code=400, detail="content or messages required")

    try:
        connector, model = resolve_model(body.model, request.app.state.connectors, cfg)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))

    registry = request.app.state.tools
    tools = registry.resolve_by_profile(body.profile, _tool_context())
    token = CancellationToken()

    async def event_stream() -> AsyncIterator[str]:
        try:
            async for event in run_agent(
                messages,
                connector,
                model,
                tools=tools,
                system_prompt=body.system_prompt or cfg.agent.system_prompt,
                options=StreamOptions(cancellation_token=token),
                max_turns=body.max_turns,
                registry=registry,
            ):
                yield f"data: {event.model_dump_json()}\n\n"
        finally:
            # Client went away or the loop ended: stop any in-flight connector call
            token.cancel()

        yield "data: [DONE]\n\n"

    return StreamingResponse(event_stream(), media_type="text/event-stream")
