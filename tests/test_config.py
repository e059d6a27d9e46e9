from __future__ import annotations

import json

import pytest

from text2deck import config
from text2deck.config import AppConfig, load_config, save_config
from text2deck.models import PromptStyle


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (config.ENV_PROVIDER, config.ENV_MODEL, config.ENV_API_KEY, config.ENV_BASE_URL, config.ENV_CONFIG):
        monkeypatch.delenv(name, raising=False)


def test_missing_file_gives_local_ollama_defaults(tmp_path) -> None:
    cfg = load_config(tmp_path / "absent.json")
    assert cfg.ai.provider == "ollama"
    assert cfg.ai.base_url == "http://localhost:11434/v1"
    assert cfg.ai.model == "llama3"
    assert cfg.ai.api_key == ""
    assert cfg.custom_styles == []


def test_file_values_and_custom_styles_are_loaded(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "ai": {"provider": "openai", "model": "gpt-4o-mini", "api_key": "sk-file", "base_url": ""},
                "custom_styles": [
                    {"id": "pitch", "name": "Pitch", "outline_prompt": "O", "slide_prompt": "S"},
                ],
            }
        ),
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.ai.provider == "openai"
    assert cfg.ai.api_key == "sk-file"
    assert cfg.custom_styles[0].id == "pitch"
    assert cfg.custom_styles[0].is_builtin is False


def test_env_overrides_file(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"ai": {"provider": "openai", "model": "gpt-4o-mini"}}), encoding="utf-8")
    monkeypatch.setenv(config.ENV_MODEL, "gpt-4.1")
    monkeypatch.setenv(config.ENV_API_KEY, "  sk-env  ")
    monkeypatch.setenv(config.ENV_PROVIDER, "")

    cfg = load_config(path)
    assert cfg.ai.provider == "openai"
    assert cfg.ai.model == "gpt-4.1"
    assert cfg.ai.api_key == "sk-env"


def test_config_path_env_variable(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "custom.json"
    path.write_text(json.dumps({"ai": {"model": "qwen2"}}), encoding="utf-8")
    monkeypatch.setenv(config.ENV_CONFIG, str(path))
    assert load_config().ai.model == "qwen2"


def test_save_then_load(tmp_path) -> None:
    cfg = AppConfig(custom_styles=[PromptStyle(id="x", name="X", outline_prompt="o", slide_prompt="s")])
    path = save_config(cfg, tmp_path / "nested" / "config.json")
    assert path.exists()
    assert load_config(path) == cfg
