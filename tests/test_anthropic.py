import json

import httpx
import pytest
import respx

from streamforge.agent.protocol import ProtocolValidator
from streamforge.connectors.anthropic import API, AnthropicConnector, to_anthropic_messages
from streamforge.connectors.base import CancellationToken, StreamContext, StreamOptions
from streamforge.types import (
    AssistantMessage,
    ModelDescriptor,
    TextContent,
    ToolCall,
    ToolResultMessage,
    UserMessage,
)

BASE_URL = "http://anthropic.test"
MESSAGES = f"{BASE_URL}/v1/messages"

MESSAGE_START = {
    "type": "message_start",
    "message": {
        "id": "msg_1",
        "type": "message",
        "role": "assistant",
        "model": "claude-test",
        "content": [],
        "stop_reason": None,
        "stop_sequence": None,
        "usage": {"input_tokens": 25, "output_tokens": 1},
    },
}


def _sse(events) -> httpx.Response:
    body = "".join(f"event: {e['type']}\ndata: {json.dumps(e)}\n\n" for e in events)
    return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body.encode())


def _message_end(stop_reason, output_tokens=7):
    return [
        {
            "type": "message_delta",
            "delta": {"stop_reason": stop_reason, "stop_sequence": None},
            "usage": {"output_tokens": output_tokens},
        },
        {"type": "message_stop"},
    ]


@pytest.fixture
def connector():
    return AnthropicConnector(api_key="sk-ant-test", base_url=BASE_URL, max_retries=0)


@pytest.fixture
def model():
    return ModelDescriptor(id="claude-test", provider="anthropic", api=API)


@pytest.fixture
def context():
    return StreamContext(system_prompt="sys", messages=[UserMessage(content="hi")])


async def _collect(connector, model, context, options=None):
    return [e async for e in connector.stream(model, context, options or StreamOptions())]


def _assert_well_formed(events, terminated=True):
    validator = ProtocolValidator()
    for event in events:
        validator.feed(event)
    assert validator.terminated is terminated


@pytest.mark.asyncio
@respx.mock
async def test_text_stream(connector, model, context):
    route = respx.post(MESSAGES).mock(return_value=_sse([
        MESSAGE_START,
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "hello"}},
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": " world"}},
        {"type": "content_block_stop", "index": 0},
        *_message_end("end_turn"),
    ]))

    events = await _collect(connector, model, context)

    assert [e.type for e in events] == ["start", "text_delta", "text_delta", "text_end", "done"]
    assert events[3].content == "hello world"
    assert events[-1].stop_reason == "stop"
    assert events[-1].usage.input_tokens == 25
    assert events[-1].usage.output_tokens == 7

    sent = json.loads(route.calls[0].request.content)
    assert sent["system"] == "sys"
    assert sent["stream"] is True


@pytest.mark.asyncio
@respx.mock
async def test_tool_use_stream(connector, model, context):
    respx.post(MESSAGES).mock(return_value=_sse([
        MESSAGE_START,
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Let me echo."}},
        {"type": "content_block_stop", "index": 0},
        {
            "type": "content_block_start",
            "index": 1,
            "content_block": {"type": "tool_use", "id": "toolu_1", "name": "echo", "input": {}},
        },
        {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": '{"mess'}},
        {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": 'age": "ping"}'}},
        {"type": "content_block_stop", "index": 1},
        *_message_end("tool_use"),
    ]))

    events = await _collect(connector, model, context)

    validator = ProtocolValidator()
    for event in events:
        validator.feed(event)

    end = next(e for e in events if e.type == "toolcall_end")
    assert end.tool_call.id == "toolu_1"
    assert end.tool_call.arguments == {"message": "ping"}
    assert events[-1].stop_reason == "toolUse"


@pytest.mark.asyncio
@respx.mock
async def test_overloaded_yields_error(connector, model, context):
    respx.post(MESSAGES).mock(return_value=httpx.Response(
        529, json={"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}
    ))

    events = await _collect(connector, model, context)

    assert [e.type for e in events] == ["start", "error"]
    assert "Overloaded" in events[-1].error


@pytest.mark.asyncio
@respx.mock
async def test_bad_key_yields_error(connector, model, context):
    respx.post(MESSAGES).mock(return_value=httpx.Response(
        401, json={"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}}
    ))

    events = await _collect(connector, model, context)

    assert events[-1].type == "error"
    assert events[-1].error == "Invalid Anthropic API key"


def test_tool_results_share_one_user_message():
    history = [
        UserMessage(content="go"),
        AssistantMessage(content=[
            ToolCall(id="a", name="echo", arguments={"message": "1"}),
            ToolCall(id="b", name="echo", arguments={"message": "2"}),
        ]),
        ToolResultMessage(tool_call_id="a", tool_name="echo", content=[TextContent(text="1")]),
        ToolResultMessage(tool_call_id="b", tool_name="echo", content=[TextContent(text="2")], is_error=True),
    ]

    out = to_anthropic_messages(history)

    assert len(out) == 3
    assert [b["tool_use_id"] for b in out[2]["content"]] == ["a", "b"]
    assert out[2]["content"][1]["is_error"] is True
    assert out[1]["content"][0] == {"type": "tool_use", "id": "a", "name": "echo", "input": {"message": "1"}}


class DroppedStream(httpx.AsyncByteStream):
    def __init__(self, body: bytes):
        self._body = body

    async def __aiter__(self):
        yield self._body
        raise httpx.ReadError("connection reset by peer")


TOOL_BLOCK_START = {
    "type": "content_block_start",
    "index": 0,
    "content_block": {"type": "tool_use", "id": "toolu_1", "name": "echo", "input": {}},
}


@pytest.mark.asyncio
@respx.mock
async def test_mid_stream_drop_ends_in_error(connector, model, context):
    body = _sse([
        MESSAGE_START,
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "half a"}},
    ]).content
    respx.post(MESSAGES).mock(return_value=httpx.Response(
        200, headers={"content-type": "text/event-stream"}, stream=DroppedStream(body)
    ))

    events = await _collect(connector, model, context)

    assert [e.type for e in events] == ["start", "text_delta", "error"]
    assert "connection reset" in events[-1].error
    _assert_well_formed(events)


@pytest.mark.asyncio
@respx.mock
async def test_truncated_tool_arguments_end_in_error(connector, model, context):
    respx.post(MESSAGES).mock(return_value=_sse([
        MESSAGE_START,
        TOOL_BLOCK_START,
        {"type": "content_block_delta", "index": 0, "delta": {"type": "input_json_delta", "partial_json": '{"message": "pi'}},
        {"type": "content_block_stop", "index": 0},
        *_message_end("tool_use"),
    ]))

    events = await _collect(connector, model, context)

    assert [e.type for e in events] == ["start", "toolcall_start", "toolcall_delta", "error"]
    assert "Malformed" in events[-1].error
    _assert_well_formed(events)


@pytest.mark.asyncio
@respx.mock
async def test_cancellation_stops_without_terminal(connector, model, context):
    respx.post(MESSAGES).mock(return_value=_sse([
        MESSAGE_START,
        TOOL_BLOCK_START,
        {"type": "content_block_stop", "index": 0},
        *_message_end("tool_use"),
    ]))
    token = CancellationToken()
    token.cancel()

    events = await _collect(connector, model, context, StreamOptions(cancellation_token=token))

    assert [e.type for e in events] == ["start"]
    _assert_well_formed(events, terminated=False)
