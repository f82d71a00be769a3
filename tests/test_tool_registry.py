import logging

import pytest

from streamforge.tools.base import FunctionTool, ToolContext
from streamforge.tools.registry import ToolMeta, ToolRegistry
from streamforge.types import TextContent
from tests.helpers import EchoTool, FailingTool


def _bridge_tool(name="bridged"):
    return FunctionTool(
        name=name,
        description="needs a filesystem bridge",
        parameters={"type": "object", "properties": {}},
        fn=lambda call_id, args: "ok",
        requires=frozenset({"bridge"}),
    )


def test_register_normalizes_schema_once():
    registry = ToolRegistry()
    tool = FunctionTool(
        name="pick",
        description="union params",
        parameters={"oneOf": [
            {"type": "object", "properties": {"a": {"type": "string"}}, "required": ["a"]},
            {"type": "object", "properties": {"b": {"type": "string"}}, "required": ["b"]},
        ]},
        fn=lambda call_id, args: "picked",
    )
    registry.register(tool)

    (resolved,) = registry.resolve_all()
    assert resolved.parameters["type"] == "object"
    assert set(resolved.parameters["properties"]) == {"a", "b"}
    assert "oneOf" not in resolved.parameters


def test_last_registration_wins():
    registry = ToolRegistry()
    first = EchoTool()
    second = EchoTool()
    registry.register(first)
    registry.register(second)

    assert len(registry) == 1
    assert registry.resolve("echo") is second


def test_tool_needing_bridge_skipped_without_one():
    registry = ToolRegistry()
    registry.register(EchoTool())
    registry.register(_bridge_tool())

    names = [t.name for t in registry.resolve_all(ToolContext())]
    assert names == ["echo"]

    ctx = ToolContext(workspace_dir="/tmp/ws", bridge=object())
    assert [t.name for t in registry.resolve_all(ctx)] == ["echo", "bridged"]


def test_bad_schema_excluded_not_fatal(caplog):
    caplog.set_level(logging.DEBUG, logger="streamforge.tools.registry")
    registry = ToolRegistry()
    registry.register(EchoTool())
    registry.register(FunctionTool(
        name="broken",
        description="allOf root",
        parameters={"allOf": [{"type": "object"}]},
        fn=lambda call_id, args: "",
    ))

    assert registry.has("broken")
    assert [t.name for t in registry.resolve_all()] == ["echo"]
    skipped = [r for r in caplog.records if "broken" in r.getMessage()]
    assert skipped and all(r.levelno == logging.DEBUG for r in skipped)


def test_factory_errors_are_skipped_and_reported():
    registry = ToolRegistry()
    seen = []

    def boom(ctx):
        raise RuntimeError("factory down")

    registry.register_factory(boom, ToolMeta(id="boom", label="Boom"))
    registry.register_factory(lambda ctx: None, ToolMeta(id="nothing", label="Nothing"))
    registry.register_factory(lambda ctx: [EchoTool()], ToolMeta(id="echo", label="Echo"))

    tools = registry.resolve_all(on_error=lambda meta, e: seen.append((meta.id, str(e))))

    assert [t.name for t in tools] == ["echo"]
    assert seen == [("boom", "factory down")]


def test_resolution_is_idempotent():
    registry = ToolRegistry()
    registry.register(EchoTool())
    registry.register_factory(lambda ctx: _bridge_tool(), ToolMeta(id="bridged", label="B"))
    ctx = ToolContext(root="/srv", bridge=object())

    first = [(t.name, t.parameters) for t in registry.resolve_all(ctx)]
    second = [(t.name, t.parameters) for t in registry.resolve_all(ctx)]
    assert first == second


def test_profiles():
    registry = ToolRegistry()
    registry.register(EchoTool(), profiles=["minimal"])
    registry.register(FailingTool(), profiles=["coding"])

    assert [t.name for t in registry.resolve_by_profile("minimal")] == ["echo"]
    assert len(registry.resolve_by_profile("full")) == 2


def test_sections_listing():
    registry = ToolRegistry()
    registry.register_section("fs", "Files")
    registry.register(EchoTool(), section="fs")
    registry.register(FailingTool())

    sections = registry.list_by_section()
    assert [(s["id"], s["label"]) for s in sections] == [("fs", "Files"), ("custom", "custom")]


def test_unregister_and_clear():
    registry = ToolRegistry()
    registry.register(EchoTool())
    assert registry.unregister("echo")
    assert not registry.unregister("echo")
    registry.register(EchoTool())
    registry.clear()
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_execute_returns_result():
    registry = ToolRegistry()
    tool = EchoTool()
    registry.register(tool)

    result = await registry.execute(tool, "call_1", {"message": "ping"})

    assert result.content == [TextContent(text="ping")]
    assert result.details == {"echoed": "ping"}
    assert tool.calls == [("call_1", {"message": "ping"})]


@pytest.mark.asyncio
async def test_execute_propagates_failures():
    registry = ToolRegistry()
    tool = FailingTool()
    registry.register(tool)

    with pytest.raises(RuntimeError, match="kaboom"):
        await registry.execute(tool, "call_1", {})


@pytest.mark.asyncio
async def test_function_tool_accepts_sync_and_async():
    async def shout(call_id, args):
        return args["text"].upper()

    sync_tool = FunctionTool("a", "sync", {}, fn=lambda call_id, args: "plain")
    async_tool = FunctionTool("b", "async", {}, fn=shout)

    assert (await sync_tool.execute("1", {})).content == [TextContent(text="plain")]
    assert (await async_tool.execute("2", {"text": "hey"})).content == [TextContent(text="HEY")]


@pytest.mark.asyncio
async def test_function_tool_rejects_other_return_types():
    tool = FunctionTool("noop", "returns nothing", {}, fn=lambda call_id, args: None)

    with pytest.raises(TypeError, match="noop returned NoneType"):
        await tool.execute("1", {})
