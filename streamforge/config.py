"""
Configuration system — reads streamforge.json + .env
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


# ── JSON schema models ───────────────────────────────────────────────────────

class ModelConfig(BaseModel):
    name: str
    display_name: str = ""
    provider: str  # "anthropic" | "openai" | "ollama" | "groq" | "debug" | ...
    api_key_env: Optional[str] = None
    base_url: Optional[str] = None
    context_window: Optional[int] = None
    max_tokens: Optional[int] = None


class FilesystemToolConfig(BaseModel):
    enabled: bool = True
    root: Optional[str] = None  # defaults to the current working directory
    max_file_size_mb: int = 10


class ToolsConfig(BaseModel):
    filesystem: FilesystemToolConfig = Field(default_factory=FilesystemToolConfig)


class AgentConfig(BaseModel):
    max_turns: int = 20
    parallel_tools: bool = False
    system_prompt: str = (
        "You are a helpful assistant with access to tools. Use them when they "
        "help answer the request, and report tool errors plainly."
    )


class StreamForgeConfig(BaseModel):
    version: str = "1.0"
    default_model: str = "dummy-echo-1"
    models: list[ModelConfig] = Field(default_factory=list)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    plugins: list[str] = Field(default_factory=list)  # dotted module paths

    def get_model(self, name: str) -> Optional[ModelConfig]:
        for m in self.models:
            if m.name == name:
                return m
        return None

    def get_model_api_key(self, model: ModelConfig) -> Optional[str]:
        if model.api_key_env:
            return os.environ.get(model.api_key_env)
        return None

    def resolve_tool_root(self) -> Path:
        root = self.tools.filesystem.root or os.getcwd()
        return Path(root).expanduser().resolve()


# ── App settings (from .env) ─────────────────────────────────────────────────

class AppSettings(BaseSettings):
    host: str = "127.0.0.1"
    port: int = 8000
    config_path: str = "./streamforge.json"
    log_level: str = "INFO"

    model_config = {"env_prefix": "STREAMFORGE_", "env_file": ".env", "extra": "ignore"}


# ── Singleton loaders ─────────────────────────────────────────────────────────

_config: Optional[StreamForgeConfig] = None
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def load_config(path: Optional[str] = None) -> StreamForgeConfig:
    global _config
    config_file = Path(path or get_settings().config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            data = json.load(f)
        _config = StreamForgeConfig(**data)
    else:
        _config = StreamForgeConfig()

    return _config


def get_config() -> StreamForgeConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def save_config(config: StreamForgeConfig, path: Optional[str] = None) -> None:
    config_file = Path(path or get_settings().config_path)
    with open(config_file, "w", encoding="utf-8") as f:
        json.dump(config.model_dump(), f, indent=2)
    global _config
    _config = config
