"""
Connector registry: catalog of connectors plus the factory that builds the
configured ones.

Supported providers:
  anthropic  → AnthropicConnector (Claude models)
  debug      → DebugConnector (deterministic, offline)
  ollama     → OpenAICompatConnector (local, no key needed)
  openai     → OpenAICompatConnector (api.openai.com)
  groq       → OpenAICompatConnector (api.groq.com/openai/v1)
  openrouter → OpenAICompatConnector (openrouter.ai/api/v1)
  together   → OpenAICompatConnector (api.together.xyz/v1)
  <any>      → OpenAICompatConnector if base_url is set in config

Models not listed in streamforge.json or in a connector's static model list
fall back to Ollama.
"""
from __future__ import annotations

import logging
import os
from typing import Iterator, Optional

from pydantic import BaseModel

from streamforge.config import ModelConfig, StreamForgeConfig, get_config
from streamforge.connectors.base import Connector
from streamforge.types import ModelDescriptor

logger = logging.getLogger(__name__)

# Well-known base URLs for providers that don't require base_url in config
_PROVIDER_DEFAULTS: dict[str, str] = {
    "openai":      "https://api.openai.com/v1",
    "groq":        "https://api.groq.com/openai/v1",
    "openrouter":  "https://openrouter.ai/api/v1",
    "together":    "https://api.together.xyz/v1",
    "mistral":     "https://api.mistral.ai/v1",
    "deepseek":    "https://api.deepseek.com/v1",
}

OLLAMA_DEFAULT_URL = "http://localhost:11434/v1"


class ConnectorRegistry:
    """
    Connectors keyed by id, with secondary lookups by provider and API transport.

    Registering an existing id replaces that connector in place. When several
    connectors share a provider, `get_by_provider` returns the first one
    registered.
    """

    def __init__(self) -> None:
        self._connectors: dict[str, Connector] = {}

    def register(self, connector: Connector) -> None:
        if connector.id in self._connectors:
            logger.debug("Replacing connector %s", connector.id)
        self._connectors[connector.id] = connector

    def get(self, id: str) -> Optional[Connector]:
        return self._connectors.get(id)

    def get_by_provider(self, provider: str) -> Optional[Connector]:
        for connector in self._connectors.values():
            if connector.provider == provider:
                return connector
        return None

    def get_by_api(self, api: str) -> list[Connector]:
        return [c for c in self._connectors.values() if c.api == api]

    def list(self) -> list[Connector]:
        return list(self._connectors.values())

    def list_providers(self) -> list[str]:
        return list(dict.fromkeys(c.provider for c in self._connectors.values()))

    def has(self, id: str) -> bool:
        return id in self._connectors

    def unregister(self, id: str) -> bool:
        return self._connectors.pop(id, None) is not None

    def clear(self) -> None:
        self._connectors.clear()

    def __len__(self) -> int:
        return len(self._connectors)

    def __iter__(self) -> Iterator[Connector]:
        return iter(list(self._connectors.values()))


# ── Credentials ──────────────────────────────────────────────────────────────

class ResolvedAuth(BaseModel):
    api_key: str
    source: str
    mode: str = "api-key"


def resolve_auth(
    provider: str,
    env_vars: Optional[list[str]] = None,
    explicit_key: Optional[str] = None,
) -> Optional[ResolvedAuth]:
    """
    Find an API key for `provider`.

    Order: explicit key, then each of `env_vars`, then the conventional
    <PROVIDER>_API_KEY variable.
    """
    if explicit_key:
        return ResolvedAuth(api_key=explicit_key, source="explicit")

    for var in env_vars or []:
        value = os.environ.get(var)
        if value:
            return ResolvedAuth(api_key=value, source=f"env:{var}")

    conventional = f"{provider.upper().replace('-', '_')}_API_KEY"
    value = os.environ.get(conventional)
    if value:
        return ResolvedAuth(api_key=value, source=f"env:{conventional}")

    return None


# ── Factory ──────────────────────────────────────────────────────────────────

def _get_ollama_base_url(cfg: StreamForgeConfig) -> str:
    """Return the base_url of the first Ollama model in config, or default."""
    for m in cfg.models:
        if m.provider == "ollama" and m.base_url:
            return m.base_url
    return OLLAMA_DEFAULT_URL


def to_descriptor(model_cfg: ModelConfig, api: str) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_cfg.name,
        name=model_cfg.display_name or model_cfg.name,
        provider=model_cfg.provider,
        api=api,
        base_url=model_cfg.base_url,
        context_window=model_cfg.context_window,
        max_tokens=model_cfg.max_tokens,
    )


def create_registry(config: StreamForgeConfig | None = None) -> ConnectorRegistry:
    """Build a registry holding the built-in connectors plus every configured provider."""
    from streamforge.connectors.anthropic import API as ANTHROPIC_API, AnthropicConnector
    from streamforge.connectors.debug import DebugConnector
    from streamforge.connectors.openai_compat import API as OPENAI_API, OpenAICompatConnector

    cfg = config or get_config()
    registry = ConnectorRegistry()
    registry.register(DebugConnector())

    by_provider: dict[str, list[ModelConfig]] = {}
    for m in cfg.models:
        by_provider.setdefault(m.provider, []).append(m)

    anthropic_models = by_provider.pop("anthropic", [])
    registry.register(AnthropicConnector(
        models=[to_descriptor(m, ANTHROPIC_API) for m in anthropic_models],
        env_vars=[m.api_key_env for m in anthropic_models if m.api_key_env] or None,
    ))
    by_provider.pop("debug", None)
    by_provider.setdefault("openai", [])
    by_provider.setdefault("ollama", [])

    for provider, models in by_provider.items():
        # Resolve base_url: explicit config > known provider defaults > Ollama fallback
        base_url = (
            next((m.base_url for m in models if m.base_url), None)
            or _PROVIDER_DEFAULTS.get(provider)
            or _get_ollama_base_url(cfg)
        )
        env_vars = [m.api_key_env for m in models if m.api_key_env]
        registry.register(OpenAICompatConnector(
            provider=provider,
            base_url=base_url,
            # Ollama doesn't need a real key
            api_key="ollama" if provider == "ollama" else None,
            models=[to_descriptor(m, OPENAI_API) for m in models],
            env_vars=env_vars or None,
        ))

    return registry


def resolve_model(
    name: str | None = None,
    registry: ConnectorRegistry | None = None,
    config: StreamForgeConfig | None = None,
) -> tuple[Connector, ModelDescriptor]:
    """Find the connector and descriptor for a model name."""
    cfg = config or get_config()
    reg = registry or create_registry(cfg)
    name = name or cfg.default_model

    # ── Model explicitly configured in streamforge.json ──────────────────────
    model_cfg = cfg.get_model(name)
    if model_cfg is not None:
        connector = reg.get_by_provider(model_cfg.provider)
        if connector is None:
            raise LookupError(f"No connector registered for provider '{model_cfg.provider}'")
        return connector, connector.get_model(name) or to_descriptor(model_cfg, connector.api)

    # ── Static model lists ───────────────────────────────────────────────────
    for connector in reg:
        descriptor = connector.get_model(name)
        if descriptor is not None:
            return connector, descriptor

    # ── Not configured anywhere → assume it's an Ollama model discovered at runtime
    connector = reg.get_by_provider("ollama")
    if connector is None:
        raise LookupError(f"Unknown model '{name}'")
    return connector, ModelDescriptor(id=name, provider="ollama", api=connector.api)
