"""
Tool result helpers.
"""
from __future__ import annotations

import json
from typing import Any, Optional

from streamforge.types import ImageContent, TextContent, ToolResult


def text_result(text: str, details: Any = None) -> ToolResult:
    return ToolResult(content=[TextContent(text=text)], details=details)


def json_result(payload: Any) -> ToolResult:
    """Pretty-printed JSON text, with the payload kept as details."""
    return ToolResult(
        content=[TextContent(text=json.dumps(payload, indent=2, default=str))],
        details=payload,
    )


def error_result(tool_name: str, error: str) -> ToolResult:
    """
    An error the tool chose to report instead of raising.

    Encoded as `{"status": "error", ...}` so the model can tell it apart
    from a normal result.
    """
    payload = {"status": "error", "tool": tool_name, "error": error}
    return ToolResult(content=[TextContent(text=json.dumps(payload))], details=payload)


def image_result(
    label: str,
    base64: str,
    mime_type: str,
    path: Optional[str] = None,
    extra_text: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> ToolResult:
    content: list = []
    if path:
        content.append(TextContent(text=f"MEDIA:{path}"))
    if extra_text:
        content.append(TextContent(text=extra_text))
    content.append(ImageContent(data=base64, mime_type=mime_type))
    return ToolResult(content=content, details=details or {"label": label, "path": path})
