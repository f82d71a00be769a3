"""
Config and catalog API router.
GET  /config      — current config (without secret keys)
PUT  /config      — update tools + agent settings
GET  /connectors  — registered connectors and their static models
GET  /tools       — tool catalog, grouped by section
GET  /models      — selectable models (auto-discovers Ollama models)
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from fastapi import APIRouter, Request
from pydantic import BaseModel

from streamforge.config import AgentConfig, ToolsConfig, get_config, save_config
from streamforge.connectors.openai_compat import OpenAICompatConnector
from streamforge.connectors.registry import OLLAMA_DEFAULT_URL, ConnectorRegistry, resolve_auth
from streamforge.tools.registry import ToolRegistry
from streamforge.types import serialize_model

logger = logging.getLogger(__name__)

router = APIRouter(tags=["config"])


class UpdateConfigRequest(BaseModel):
    tools: Optional[dict[str, Any]] = None
    agent: Optional[dict[str, Any]] = None
    default_model: Optional[str] = None


async def _discover_ollama_models(base_url: str) -> list[dict]:
    """Query Ollama's /api/tags to get installed models."""
    # base_url is like http://localhost:11434/v1 → strip /v1
    ollama_root = base_url.rstrip("/")
    if ollama_root.endswith("/v1"):
        ollama_root = ollama_root[:-3]

    try:
        async with httpx.AsyncClient(timeout=2.0) as client:
            resp = await client.get(f"{ollama_root}/api/tags")
            resp.raise_for_status()
            data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.debug("Ollama discovery at %s failed: %s", ollama_root, e)
        return []

    models = []
    for m in data.get("models", []):
        name = m.get("name", "")
        size = m.get("details", {}).get("parameter_size", "")
        models.append({
            "name": name,
            "display_name": f"{name} ({size})" if size else name,
            "provider": "ollama",
            "available": True,
            "base_url": base_url,
        })
    return models


@router.get("/config")
async def read_config():
    cfg = get_config()
    safe_models = [
        {
            "name": m.name,
            "display_name": m.display_name,
            "provider": m.provider,
            "has_api_key": bool(cfg.get_model_api_key(m)),
            "base_url": m.base_url,
        }
        for m in cfg.models
    ]
    return {
        "version": cfg.version,
        "default_model": cfg.default_model,
        "models": safe_models,
        "tools": cfg.tools.model_dump(),
        "agent": cfg.agent.model_dump(),
        "plugins": cfg.plugins,
    }


@router.put("/config")
async def update_config(body: UpdateConfigRequest):
    cfg = get_config()

    if body.tools is not None:
        current = cfg.tools.model_dump()
        for section, values in body.tools.items():
            if section in current and isinstance(values, dict):
                current[section].update(values)
            else:
                current[section] = values
        cfg.tools = ToolsConfig(**current)

    if body.agent is not None:
        current = cfg.agent.model_dump()
        current.update(body.agent)
        cfg.agent = AgentConfig(**current)

    if body.default_model is not None:
        cfg.default_model = body.default_model

    save_config(cfg)
    return {"ok": True}


@router.get("/connectors")
async def list_connectors(request: Request):
    registry: ConnectorRegistry = request.app.state.connectors
    return {
        "connectors": [
            {
                "id": c.id,
                "label": c.label,
                "provider": c.provider,
                "api": c.api,
                "env_vars": list(c.env_vars),
                "has_credentials": c.provider in ("debug", "ollama")
                or resolve_auth(c.provider, c.env_vars) is not None,
                "models": [serialize_model(m) for m in c.models],
            }
            for c in registry
        ],
    }


@router.get("/tools")
async def list_tools(request: Request):
    registry: ToolRegistry = request.app.state.tools
    return {
        "sections": [
            {
                "id": section["id"],
                "label": section["label"],
                "tools": [
                    {
                        "id": meta.id,
                        "label": meta.label,
                        "description": meta.description,
                        "profiles": meta.profiles,
                        "source": meta.source,
                        "plugin_id": meta.plugin_id,
                    }
                    for meta in section["tools"]
                ],
            }
            for section in registry.list_by_section()
        ],
    }


@router.get("/models")
async def list_models(request: Request):
    cfg = get_config()
    registry: ConnectorRegistry = request.app.state.connectors

    ollama = registry.get_by_provider("ollama")
    ollama_base_url = ollama.base_url if isinstance(ollama, OpenAICompatConnector) else OLLAMA_DEFAULT_URL
    ollama_models = await _discover_ollama_models(ollama_base_url)
    seen = {m["name"] for m in ollama_models}

    other_models = []
    for connector in registry:
        if connector.provider == "ollama":
            continue
        available = connector.provider == "debug" or resolve_auth(connector.provider, connector.env_vars) is not None
        for m in connector.models:
            if m.id in seen:
                continue
            seen.add(m.id)
            other_models.append({
                "name": m.id,
                "display_name": m.name or m.id,
                "provider": m.provider,
                "available": available,
                "base_url": m.base_url,
            })

    all_models = ollama_models + other_models

    # Priority: config default_model → first available
    default = cfg.default_model
    available_names = {m["name"] for m in all_models if m["available"]}
    if default not in available_names and available_names:
        default = next(m["name"] for m in all_models if m["available"])

    return {"models": all_models, "default_model": default}
