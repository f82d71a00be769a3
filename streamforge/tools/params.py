"""
Safe extraction of tool-call arguments.

Models are inconsistent about key casing, so every reader accepts both the
camelCase name and its snake_case form (`filePath` / `file_path`).
"""
from __future__ import annotations

import math
import re
from typing import Any, Optional

from streamforge.errors import ToolInputError

_MISSING = object()


def to_snake_case(key: str) -> str:
    key = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", key)
    key = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key)
    return key.lower()


def _read_raw(params: dict[str, Any], key: str) -> Any:
    if key in params:
        return params[key]
    snake = to_snake_case(key)
    if snake != key and snake in params:
        return params[snake]
    return _MISSING


def read_string_param(
    params: dict[str, Any],
    key: str,
    required: bool = False,
    trim: bool = True,
    label: Optional[str] = None,
    allow_empty: bool = False,
) -> Optional[str]:
    label = label or key
    raw = _read_raw(params, key)

    # Coerce numbers to strings
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw)

    if not isinstance(raw, str):
        if required:
            raise ToolInputError(f"{label} required")
        return None

    value = raw.strip() if trim else raw
    if not value and not allow_empty:
        if required:
            raise ToolInputError(f"{label} required")
        return None
    return value


def read_number_param(
    params: dict[str, Any],
    key: str,
    required: bool = False,
    integer: bool = False,
    label: Optional[str] = None,
) -> Optional[float | int]:
    label = label or key
    raw = _read_raw(params, key)

    if raw is _MISSING or raw is None:
        if required:
            raise ToolInputError(f"{label} required")
        return None

    if isinstance(raw, bool):
        raise ToolInputError(f"{label} must be a number")
    if isinstance(raw, (int, float)):
        num = float(raw)
    elif isinstance(raw, str):
        try:
            num = float(raw.strip())
        except ValueError:
            raise ToolInputError(f"{label} must be a number") from None
    else:
        raise ToolInputError(f"{label} must be a number")

    if math.isnan(num):
        raise ToolInputError(f"{label} must be a number")
    if integer:
        return math.floor(num)
    return int(num) if isinstance(raw, int) else num


def read_boolean_param(
    params: dict[str, Any],
    key: str,
    default: bool = False,
    required: bool = False,
    label: Optional[str] = None,
) -> bool:
    label = label or key
    raw = _read_raw(params, key)

    if raw is _MISSING or raw is None:
        if required:
            raise ToolInputError(f"{label} required")
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.lower() == "true" or raw == "1"
    return bool(raw)


def read_string_array_param(
    params: dict[str, Any],
    key: str,
    required: bool = False,
    label: Optional[str] = None,
) -> Optional[list[str]]:
    """Auto-wraps a single string into a one-element list."""
    label = label or key
    raw = _read_raw(params, key)

    if raw is _MISSING or raw is None:
        if required:
            raise ToolInputError(f"{label} required")
        return None
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, list):
        return [str(v) for v in raw]
    raise ToolInputError(f"{label} must be a string or string array")


def assert_required_params(params: dict[str, Any], required: list[str]) -> None:
    for key in required:
        value = _read_raw(params, key)
        if value is _MISSING or value is None or value == "":
            raise ToolInputError(f"{key} required")
