from pathlib import Path

import pytest

from streamforge import config as config_module
from streamforge.config import AppSettings, StreamForgeConfig

_CREDENTIAL_VARS = (
    "API_KEY",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GROQ_API_KEY",
    "OLLAMA_API_KEY",
    "SCRIPTED_API_KEY",
)


@pytest.fixture(autouse=True)
def hermetic_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Autouse: each test runs in its own tmp cwd with no provider credentials
    and fresh config singletons.
    """
    monkeypatch.chdir(tmp_path)
    for var in _CREDENTIAL_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(
        config_module, "_settings", AppSettings(config_path=str(tmp_path / "streamforge.json"))
    )
    monkeypatch.setattr(config_module, "_config", StreamForgeConfig())
    return tmp_path


@pytest.fixture
def config() -> StreamForgeConfig:
    return config_module.get_config()
