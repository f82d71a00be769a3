"""
Filesystem tools: read, write, edit, list.
All access goes through the FsBridge from the ToolContext; without one these
tools are not offered.
"""
from __future__ import annotations

from typing import Any

from streamforge.errors import ToolInputError
from streamforge.tools.base import Tool, ToolContext
from streamforge.tools.bridge import FsBridge
from streamforge.tools.params import read_boolean_param, read_number_param, read_string_param
from streamforge.tools.registry import ToolMeta, ToolRegistry
from streamforge.tools.results import text_result
from streamforge.types import ToolResult

FS_SECTION = "fs"


class _BridgeTool(Tool):
    requires = frozenset({"bridge"})

    def __init__(self, bridge: FsBridge, root: str, max_file_size_mb: int = 10):
        self._bridge = bridge
        self._root = root
        self._max_bytes = max_file_size_mb * 1024 * 1024


class ReadFileTool(_BridgeTool):
    name = "read"
    label = "Read File"
    description = "Read the contents of a file. Returns the text content."
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Path to the file, relative to the workspace root"},
            "offset": {"type": "integer", "description": "First line to return, 1-based (default: 1)"},
            "limit": {"type": "integer", "description": "Maximum number of lines to return"},
        },
        "required": ["path"],
    }

    async def execute(self, call_id: str, arguments: dict[str, Any]) -> ToolResult:
        path = read_string_param(arguments, "path", required=True)
        offset = read_number_param(arguments, "offset", integer=True) or 1
        limit = read_number_param(arguments, "limit", integer=True)

        stat = await self._bridge.stat(path, cwd=self._root)
        if stat is None:
            raise FileNotFoundError(f"file not found: {path}")
        if stat.type != "file":
            raise ToolInputError(f"not a file: {path}")
        if stat.size > self._max_bytes:
            raise ToolInputError(f"file too large (max {self._max_bytes // (1024 * 1024)} MB)")

        data = await self._bridge.read_file(path, cwd=self._root)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            raise ToolInputError(f"cannot decode {path} as utf-8. It may be a binary file.") from None

        lines = text.splitlines(keepends=True)
        start = max(offset, 1) - 1
        selected = lines[start:start + limit] if limit else lines[start:]
        return text_result("".join(selected), details={"path": path, "lines": len(selected)})


class WriteFileTool(_BridgeTool):
    name = "write"
    label = "Write File"
    description = "Write content to a file. Creates the file (and parent directories) if needed."
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Path to the file, relative to the workspace root"},
            "content": {"type": "string", "description": "Content to write"},
            "append": {"type": "boolean", "description": "Append instead of overwriting (default: false)"},
        },
        "required": ["path", "content"],
    }

    async def execute(self, call_id: str, arguments: dict[str, Any]) -> ToolResult:
        path = read_string_param(arguments, "path", required=True)
        content = read_string_param(arguments, "content", required=True, trim=False, allow_empty=True)
        append = read_boolean_param(arguments, "append")

        data = content
        if append and await self._bridge.stat(path, cwd=self._root) is not None:
            existing = await self._bridge.read_file(path, cwd=self._root)
            data = existing.decode("utf-8") + content
        await self._bridge.write_file(path, data, cwd=self._root)

        action = "appended to" if append else "written to"
        return text_result(f"Success: {len(content)} characters {action} {path}")


class EditFileTool(_BridgeTool):
    name = "edit"
    label = "Edit File"
    description = (
        "Replace an exact snippet of text in a file. The snippet must occur exactly once "
        "unless replace_all is set."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Path to the file, relative to the workspace root"},
            "old_string": {"type": "string", "description": "Exact text to replace"},
            "new_string": {"type": "string", "description": "Replacement text"},
            "replace_all": {"type": "boolean", "description": "Replace every occurrence (default: false)"},
        },
        "required": ["path", "old_string", "new_string"],
    }

    async def execute(self, call_id: str, arguments: dict[str, Any]) -> ToolResult:
        path = read_string_param(arguments, "path", required=True)
        old = read_string_param(arguments, "oldString", required=True, trim=False)
        new = read_string_param(arguments, "newString", required=True, trim=False, allow_empty=True)
        replace_all = read_boolean_param(arguments, "replaceAll")

        if await self._bridge.stat(path, cwd=self._root) is None:
            raise FileNotFoundError(f"file not found: {path}")
        text = (await self._bridge.read_file(path, cwd=self._root)).decode("utf-8")

        count = text.count(old)
        if count == 0:
            raise ToolInputError(f"text to replace not found in {path}")
        if count > 1 and not replace_all:
            raise ToolInputError(f"text to replace occurs {count} times in {path}; pass replace_all")

        updated = text.replace(old, new) if replace_all else text.replace(old, new, 1)
        await self._bridge.write_file(path, updated, cwd=self._root)
        replaced = count if replace_all else 1
        return text_result(f"Success: {replaced} replacement(s) in {path}", details={"replacements": replaced})


class ListDirectoryTool(_BridgeTool):
    name = "ls"
    label = "List Directory"
    description = "List the contents of a directory with file sizes and types."
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Directory, relative to the workspace root (default: root)"},
            "show_hidden": {"type": "boolean", "description": "Show hidden files (default: false)"},
        },
    }

    async def execute(self, call_id: str, arguments: dict[str, Any]) -> ToolResult:
        path = read_string_param(arguments, "path") or "."
        show_hidden = read_boolean_param(arguments, "showHidden")

        stat = await self._bridge.stat(path, cwd=self._root)
        if stat is None:
            raise FileNotFoundError(f"directory not found: {path}")
        if stat.type != "directory":
            raise ToolInputError(f"not a directory: {path}")

        entries = []
        for name, entry in await self._bridge.list_dir(path, cwd=self._root):
            if not show_hidden and name.startswith("."):
                continue
            if entry.type == "directory":
                entries.append(f"[DIR]  {name}/")
            else:
                size = entry.size
                size_str = f"{size:,} bytes" if size < 1024 else f"{size/1024:.1f} KB"
                entries.append(f"[FILE] {name} ({size_str})")

        if not entries:
            return text_result(f"Empty directory: {path}")
        return text_result(f"Contents of {path}:\n" + "\n".join(entries))


FS_TOOL_CLASSES: list[type[_BridgeTool]] = [
    ReadFileTool,
    WriteFileTool,
    EditFileTool,
    ListDirectoryTool,
]


def register_core_tools(registry: ToolRegistry, max_file_size_mb: int = 10) -> None:
    registry.register_section(FS_SECTION, "Files")
    for cls in FS_TOOL_CLASSES:
        registry.register_factory(
            lambda ctx, cls=cls: _single(ctx, cls, max_file_size_mb),
            ToolMeta(
                id=cls.name,
                label=cls.label,
                description=cls.description,
                section=FS_SECTION,
                profiles=["coding"] if cls.name != "read" else ["minimal", "coding"],
            ),
        )


def _single(ctx: ToolContext, cls: type[_BridgeTool], max_file_size_mb: int) -> Tool | None:
    """Factory body: one fs tool bound to the context's bridge, or nothing."""
    if ctx.bridge is None or not ctx.effective_root:
        return None
    return cls(ctx.bridge, ctx.effective_root, max_file_size_mb)
