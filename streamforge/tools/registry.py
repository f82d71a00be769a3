"""
Tool registry, the catalog tools are registered into and resolved from.

Two kinds of sources:
  1. Direct tools: Tool instances, schema normalized once at registration.
  2. Tool factories: callables creating tools from a ToolContext on demand.

Resolution silently skips anything a context cannot support: tools requiring a
missing capability (e.g. a filesystem bridge), tools whose schema could not be
normalized, and factories that raise or return nothing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from streamforge.errors import SchemaNormalizationError
from streamforge.tools.base import Tool, ToolContext, ToolFactory
from streamforge.tools.schema import normalize_schema
from streamforge.types import ToolResult

logger = logging.getLogger(__name__)

PROFILES = ("minimal", "coding", "messaging", "full")


@dataclass
class ToolMeta:
    id: str
    label: str
    description: str = ""
    section: str = "custom"
    profiles: list[str] = field(default_factory=lambda: ["full"])
    source: str = "core"  # "core" | "plugin"
    plugin_id: Optional[str] = None


@dataclass
class _Entry:
    meta: ToolMeta
    source: Union[Tool, ToolFactory]
    schema_error: Optional[str] = None


ErrorCallback = Callable[[ToolMeta, Exception], None]


class ToolRegistry:
    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._sections: dict[str, str] = {}

    # ── Registration ─────────────────────────────────────────────────────────

    def register_section(self, id: str, label: str) -> None:
        self._sections[id] = label

    def register(
        self,
        tool: Tool,
        section: str = "custom",
        profiles: Optional[list[str]] = None,
        source: str = "core",
        plugin_id: Optional[str] = None,
    ) -> None:
        """Insert or replace by name (last write wins)."""
        meta = ToolMeta(
            id=tool.name,
            label=tool.display_label,
            description=tool.description,
            section=section,
            profiles=list(profiles or ["full"]),
            source=source,
            plugin_id=plugin_id,
        )
        entry = _Entry(meta=meta, source=tool)
        try:
            tool.parameters = normalize_schema(tool.parameters)
        except SchemaNormalizationError as e:
            logger.debug("Tool %s has an unusable parameter schema: %s", tool.name, e)
            entry.schema_error = str(e)
        self._entries[meta.id] = entry

    def register_factory(self, factory: ToolFactory, meta: ToolMeta) -> None:
        self._entries[meta.id] = _Entry(meta=meta, source=factory)

    # ── Resolution ───────────────────────────────────────────────────────────

    def resolve_all(
        self,
        context: Optional[ToolContext] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> list[Tool]:
        ctx = context or ToolContext()
        tools: list[Tool] = []
        for entry in self._entries.values():
            tools.extend(self._resolve_entry(entry, ctx, on_error))
        return tools

    def resolve_by_profile(
        self,
        profile: str,
        context: Optional[ToolContext] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> list[Tool]:
        ctx = context or ToolContext()
        tools: list[Tool] = []
        for entry in self._entries.values():
            if profile == "full" or profile in entry.meta.profiles:
                tools.extend(self._resolve_entry(entry, ctx, on_error))
        return tools

    def resolve(self, name: str, context: Optional[ToolContext] = None) -> Optional[Tool]:
        entry = self._entries.get(name)
        if entry is None:
            return None
        resolved = self._resolve_entry(entry, context or ToolContext(), None)
        return resolved[0] if resolved else None

    async def execute(self, tool: Tool, call_id: str, arguments: dict[str, Any]) -> ToolResult:
        """Run `tool`. Failures propagate unchanged; presenting them is the caller's job."""
        return await tool.execute(call_id, arguments)

    # ── Catalog ──────────────────────────────────────────────────────────────

    def list(self) -> list[ToolMeta]:
        return [e.meta for e in self._entries.values()]

    def list_by_section(self) -> list[dict[str, Any]]:
        sections: dict[str, list[ToolMeta]] = {}
        for entry in self._entries.values():
            sections.setdefault(entry.meta.section, []).append(entry.meta)
        return [
            {"id": sid, "label": self._sections.get(sid, sid), "tools": metas}
            for sid, metas in sections.items()
        ]

    def has(self, name: str) -> bool:
        return name in self._entries

    def unregister(self, name: str) -> bool:
        return self._entries.pop(name, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    # ── Internal ─────────────────────────────────────────────────────────────

    def _resolve_entry(
        self,
        entry: _Entry,
        ctx: ToolContext,
        on_error: Optional[ErrorCallback],
    ) -> list[Tool]:
        source = entry.source

        if isinstance(source, Tool):
            if entry.schema_error is not None:
                return []
            return [source] if _eligible(source, ctx) else []

        try:
            produced = source(ctx)
        except Exception as e:
            logger.debug("Tool factory %s failed: %s", entry.meta.id, e)
            if on_error is not None:
                on_error(entry.meta, e)
            return []

        if produced is None:
            return []
        candidates = produced if isinstance(produced, list) else [produced]

        tools: list[Tool] = []
        for tool in candidates:
            try:
                tool.parameters = normalize_schema(tool.parameters)
            except SchemaNormalizationError as e:
                logger.debug("Skipping tool %s: %s", tool.name, e)
                if on_error is not None:
                    on_error(entry.meta, e)
                continue
            if _eligible(tool, ctx):
                tools.append(tool)
        return tools


def _eligible(tool: Tool, ctx: ToolContext) -> bool:
    missing = set(tool.requires) - ctx.capabilities()
    if missing:
        logger.debug("Skipping tool %s: context lacks %s", tool.name, sorted(missing))
        return False
    return True
