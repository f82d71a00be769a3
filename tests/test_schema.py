import pytest

from streamforge.errors import SchemaNormalizationError
from streamforge.tools.schema import (
    clean_schema_for_provider,
    extract_tool_schema,
    extract_tool_schemas,
    normalize_schema,
)
from tests.helpers import EchoTool, FailingTool

UNION_SCHEMA = {
    "anyOf": [
        {
            "type": "object",
            "properties": {"action": {"type": "string"}, "path": {"type": "string"}},
            "required": ["action", "path"],
        },
        {
            "type": "object",
            "properties": {"action": {"type": "string"}, "url": {"type": "string", "format": "uri"}},
            "required": ["action"],
        },
    ],
}


def test_missing_schema_becomes_empty_object():
    assert normalize_schema(None) == {"type": "object", "properties": {}}


def test_union_is_flattened():
    schema = normalize_schema(UNION_SCHEMA)

    assert schema["type"] == "object"
    assert set(schema["properties"]) == {"action", "path", "url"}
    assert schema["required"] == ["action"]
    assert "anyOf" not in schema


def test_normalize_is_idempotent():
    once = normalize_schema(UNION_SCHEMA)
    assert normalize_schema(once) == once


def test_normalize_does_not_mutate_input():
    original = {"oneOf": [{"type": "object", "properties": {"a": {"type": "string"}}}]}
    normalize_schema(original)
    assert "oneOf" in original


def test_root_type_forced_to_object():
    assert normalize_schema({"type": "string"})["type"] == "object"


@pytest.mark.parametrize("bad", [
    "not a schema",
    {"allOf": [{"type": "object"}]},
    {"anyOf": [{"type": "string"}]},
    {"type": "object", "properties": []},
    {"type": "object", "required": "path"},
])
def test_irreducible_shapes_raise(bad):
    with pytest.raises(SchemaNormalizationError):
        normalize_schema(bad)


def test_gemini_keywords_scrubbed_recursively():
    schema = normalize_schema(UNION_SCHEMA)
    cleaned = clean_schema_for_provider(schema, "google")

    assert "format" not in cleaned["properties"]["url"]
    assert "format" in schema["properties"]["url"]
    assert clean_schema_for_provider(cleaned, "google") == cleaned


def test_unknown_provider_passes_through():
    schema = {"type": "object", "properties": {"n": {"type": "integer", "minimum": 0}}}
    assert clean_schema_for_provider(schema, "openai") == schema


def test_extract_tool_schema():
    extracted = extract_tool_schema(EchoTool(), "anthropic")
    assert extracted["name"] == "echo"
    assert extracted["input_schema"]["required"] == ["message"]


def test_extract_tool_schemas_keeps_order():
    schemas = extract_tool_schemas([EchoTool(), FailingTool()])
    assert [s["name"] for s in schemas] == ["echo", "explode"]
