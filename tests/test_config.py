import json

from streamforge import config as config_module
from streamforge.config import ModelConfig, StreamForgeConfig, get_config, load_config, save_config


def test_defaults_without_file():
    cfg = load_config("does-not-exist.json")

    assert cfg.default_model == "dummy-echo-1"
    assert cfg.agent.max_turns == 20
    assert cfg.agent.parallel_tools is False
    assert cfg.tools.filesystem.enabled


def test_load_from_json(tmp_path):
    path = tmp_path / "custom.json"
    path.write_text(json.dumps({
        "default_model": "gpt-4o",
        "models": [{"name": "gpt-4o", "provider": "openai", "api_key_env": "OPENAI_API_KEY"}],
        "agent": {"max_turns": 5, "parallel_tools": True},
        "plugins": ["my_plugin"],
    }), encoding="utf-8")

    cfg = load_config(str(path))

    assert cfg.get_model("gpt-4o").provider == "openai"
    assert cfg.get_model("nope") is None
    assert cfg.agent.max_turns == 5
    assert cfg.plugins == ["my_plugin"]
    assert get_config() is cfg


def test_save_round_trip(tmp_path):
    path = tmp_path / "saved.json"
    cfg = StreamForgeConfig(default_model="parrot-1")

    save_config(cfg, str(path))

    assert json.loads(path.read_text(encoding="utf-8"))["default_model"] == "parrot-1"
    assert load_config(str(path)).default_model == "parrot-1"


def test_model_api_key_from_env(monkeypatch):
    cfg = StreamForgeConfig()
    model = ModelConfig(name="m", provider="groq", api_key_env="GROQ_API_KEY")
    assert cfg.get_model_api_key(model) is None

    monkeypatch.setenv("GROQ_API_KEY", "gsk")
    assert cfg.get_model_api_key(model) == "gsk"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("STREAMFORGE_PORT", "9100")
    monkeypatch.setattr(config_module, "_settings", None)

    assert config_module.get_settings().port == 9100


def test_tool_root_defaults_to_cwd(hermetic_env):
    cfg = StreamForgeConfig()
    assert cfg.resolve_tool_root() == hermetic_env.resolve()
