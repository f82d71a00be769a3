"""
JSON Schema utilities for tool parameter definitions.

Several providers reject `anyOf` / `oneOf` at the root of a tool schema, so
union-shaped schemas are flattened into a single object schema instead of
being refused.
"""
from __future__ import annotations

import copy
from typing import Any, Optional

from streamforge.errors import SchemaNormalizationError

_UNION_KEYS = ("anyOf", "oneOf")

# Keywords Google Gemini does not accept in tool schemas
GEMINI_UNSUPPORTED_KEYWORDS = frozenset({
    "patternProperties",
    "additionalProperties",
    "$schema",
    "$id",
    "$ref",
    "$defs",
    "definitions",
    "examples",
    "minLength",
    "maxLength",
    "minimum",
    "maximum",
    "multipleOf",
    "pattern",
    "format",
    "minItems",
    "maxItems",
    "uniqueItems",
    "minProperties",
    "maxProperties",
})

_PROVIDER_BANNED_KEYWORDS: dict[str, frozenset[str]] = {
    "google": GEMINI_UNSUPPORTED_KEYWORDS,
    "google-generative-ai": GEMINI_UNSUPPORTED_KEYWORDS,
    "google-vertex": GEMINI_UNSUPPORTED_KEYWORDS,
    "gemini": GEMINI_UNSUPPORTED_KEYWORDS,
}


def _flatten_union(schema: dict[str, Any]) -> dict[str, Any]:
    """Merge alternative object branches: union of properties, intersection of required."""
    branches: list[dict] = []
    for key in _UNION_KEYS:
        branches.extend(schema.get(key) or [])

    properties: dict[str, Any] = dict(schema.get("properties") or {})
    required: Optional[set[str]] = None
    for branch in branches:
        if not isinstance(branch, dict):
            raise SchemaNormalizationError(f"union branch is not a schema: {branch!r}")
        if branch.get("type", "object") != "object" or any(k in branch for k in _UNION_KEYS):
            raise SchemaNormalizationError("union branches must be flat object schemas")
        for name, prop in (branch.get("properties") or {}).items():
            properties.setdefault(name, prop)
        branch_required = set(branch.get("required") or [])
        required = branch_required if required is None else required & branch_required

    merged = {k: v for k, v in schema.items() if k not in _UNION_KEYS}
    merged["type"] = "object"
    merged["properties"] = properties
    base_required = list(schema.get("required") or [])
    extra = sorted((required or set()) - set(base_required))
    if base_required or extra:
        merged["required"] = base_required + extra
    return merged


def normalize_schema(schema: Any) -> dict[str, Any]:
    """
    Reduce a parameter schema to a single top-level object schema.

    - missing / non-dict → empty object schema
    - `anyOf` / `oneOf` of object branches → one object with merged properties
    - any other root type is coerced to `type: "object"`

    Idempotent: normalizing a normalized schema returns an equal schema.
    Raises SchemaNormalizationError for shapes that cannot be reduced.
    """
    if schema is None:
        return {"type": "object", "properties": {}}
    if not isinstance(schema, dict):
        raise SchemaNormalizationError(f"schema must be an object, got {type(schema).__name__}")

    s = copy.deepcopy(schema)
    if any(k in s for k in _UNION_KEYS):
        s = _flatten_union(s)

    if "allOf" in s:
        raise SchemaNormalizationError("allOf at the schema root is not supported")

    if s.get("type") != "object":
        s["type"] = "object"
    props = s.get("properties")
    if props is None:
        s["properties"] = {}
    elif not isinstance(props, dict):
        raise SchemaNormalizationError("properties must be a mapping")
    required = s.get("required")
    if required is not None and not (
        isinstance(required, list) and all(isinstance(r, str) for r in required)
    ):
        raise SchemaNormalizationError("required must be a list of names")
    return s


def _deep_clean(value: Any, banned: frozenset[str]) -> Any:
    if isinstance(value, dict):
        cleaned = {}
        for k, v in value.items():
            if k in banned:
                continue
            if k == "properties" and isinstance(v, dict):
                # keys here are property names, not keywords
                cleaned[k] = {name: _deep_clean(prop, banned) for name, prop in v.items()}
            else:
                cleaned[k] = _deep_clean(v, banned)
        return cleaned
    if isinstance(value, list):
        return [_deep_clean(v, banned) for v in value]
    return value


def clean_schema_for_provider(schema: dict[str, Any], provider: Optional[str]) -> dict[str, Any]:
    """Strip keywords `provider` rejects. Pure and idempotent; unknown providers pass through."""
    banned = _PROVIDER_BANNED_KEYWORDS.get(provider or "")
    if not banned:
        return schema
    return _deep_clean(schema, banned)


def extract_tool_schema(tool: Any, provider: Optional[str] = None) -> dict[str, Any]:
    """`{name, description, input_schema}` ready for a connector's StreamContext."""
    return {
        "name": tool.name,
        "description": tool.description,
        "input_schema": clean_schema_for_provider(normalize_schema(tool.parameters), provider),
    }


def extract_tool_schemas(tools: list, provider: Optional[str] = None) -> list[dict[str, Any]]:
    return [extract_tool_schema(t, provider) for t in tools]
