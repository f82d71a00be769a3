"""
Plugin loading.

A plugin is any object (usually a module) exposing `register(api)` or
`activate(api)`, or a bare callable taking the api. Through the PluginApi it
adds tools, tool factories and connectors to the shared registries:

    # my_plugin.py
    def register(api):
        api.register_tool(EchoTool())
        api.register_connector(EchoConnector())

Plugins are named in streamforge.json as dotted module paths:

    {"plugins": ["my_plugin"]}
"""
from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from streamforge.connectors.base import Connector
from streamforge.connectors.registry import ConnectorRegistry
from streamforge.tools.base import Tool, ToolFactory
from streamforge.tools.registry import ToolMeta, ToolRegistry

logger = logging.getLogger(__name__)

PLUGIN_SECTION = "plugins"

RegisterFunction = Callable[["PluginApi"], Any]


@dataclass
class LoadedPlugin:
    id: str
    name: str
    source: str = ""
    tools: list[str] = field(default_factory=list)
    connectors: list[str] = field(default_factory=list)


class PluginApi:
    """What a plugin's register hook receives."""

    def __init__(
        self,
        plugin_id: str,
        tools: ToolRegistry,
        connectors: ConnectorRegistry,
        name: Optional[str] = None,
        config: Optional[dict[str, Any]] = None,
    ):
        self.id = plugin_id
        self.name = name or plugin_id
        self.config = config or {}
        self.logger = logging.getLogger(f"{__name__}.{plugin_id}")
        self._tools = tools
        self._connectors = connectors
        self.registered_tools: list[str] = []
        self.registered_connectors: list[str] = []

    def register_tool(
        self,
        tool: Tool | ToolFactory,
        name: Optional[str] = None,
        profiles: Optional[list[str]] = None,
    ) -> None:
        """Register a Tool, or a factory (then `name` identifies it in the catalog)."""
        if isinstance(tool, Tool):
            self._tools.register(
                tool,
                section=PLUGIN_SECTION,
                profiles=profiles,
                source="plugin",
                plugin_id=self.id,
            )
            self.registered_tools.append(tool.name)
        else:
            self.register_tool_factory(tool, name or f"{self.id}:factory{len(self.registered_tools)}", profiles)

    def register_tool_factory(
        self,
        factory: ToolFactory,
        name: str,
        profiles: Optional[list[str]] = None,
        description: str = "",
    ) -> None:
        meta = ToolMeta(
            id=name,
            label=name,
            description=description,
            section=PLUGIN_SECTION,
            profiles=list(profiles or ["full"]),
            source="plugin",
            plugin_id=self.id,
        )
        self._tools.register_factory(factory, meta)
        self.registered_tools.append(name)

    def register_connector(self, connector: Connector) -> None:
        self._connectors.register(connector)
        self.registered_connectors.append(connector.id)

    def register_hook(self, *args: Any, **kwargs: Any) -> None:
        """Accepted for compatibility; hooks are not supported."""
        self.logger.debug("Ignoring hook registration from plugin %s", self.id)


def resolve_register_function(definition: Any) -> Optional[RegisterFunction]:
    for attr in ("register", "activate"):
        fn = getattr(definition, attr, None)
        if callable(fn):
            return fn
    if callable(definition):
        return definition
    return None


def load_plugin(
    definition: Any,
    tools: ToolRegistry,
    connectors: ConnectorRegistry,
    plugin_id: Optional[str] = None,
    source: str = "",
    config: Optional[dict[str, Any]] = None,
) -> Optional[LoadedPlugin]:
    """
    Run `definition`'s register hook against the registries.

    Returns None when the definition has no hook. Exceptions raised by the
    hook propagate.
    """
    register = resolve_register_function(definition)
    if register is None:
        return None

    pid = plugin_id or getattr(definition, "id", None) or getattr(definition, "__name__", "plugin")
    api = PluginApi(pid, tools, connectors, name=getattr(definition, "name", None), config=config)
    register(api)

    logger.info(
        "Loaded plugin: %s (%d tools, %d connectors)",
        pid, len(api.registered_tools), len(api.registered_connectors),
    )
    return LoadedPlugin(
        id=pid,
        name=api.name,
        source=source,
        tools=api.registered_tools,
        connectors=api.registered_connectors,
    )


def load_plugins_from_modules(
    module_names: list[str],
    tools: ToolRegistry,
    connectors: ConnectorRegistry,
    disabled: Optional[list[str]] = None,
) -> list[LoadedPlugin]:
    """
    Import each dotted module path and load the plugin it defines: its
    `plugin` attribute if present, the module itself otherwise.

    A plugin that fails to import or register is logged and skipped.
    """
    disabled_set = set(disabled or [])
    loaded: list[LoadedPlugin] = []

    for module_name in module_names:
        if module_name in disabled_set:
            logger.info("Plugin %s is disabled, skipping.", module_name)
            continue
        try:
            module = importlib.import_module(module_name)
            definition = getattr(module, "plugin", module)
            plugin_id = getattr(definition, "id", None) or getattr(module, "PLUGIN_ID", None) or module_name
            plugin = load_plugin(definition, tools, connectors, plugin_id=plugin_id, source=module_name)
        except Exception as e:
            logger.error("Failed to load plugin from %s: %s", module_name, e)
            continue
        if plugin is None:
            logger.warning("Module %s has no register/activate hook", module_name)
            continue
        loaded.append(plugin)

    return loaded
