"""Backend configuration: JSON config file plus environment overrides."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import PromptStyle

DEFAULT_CONFIG_PATH = Path("config.json")

ENV_PROVIDER = "TEXT2DECK_PROVIDER"
ENV_MODEL = "TEXT2DECK_MODEL"
ENV_API_KEY = "TEXT2DECK_API_KEY"
ENV_BASE_URL = "TEXT2DECK_BASE_URL"
ENV_CONFIG = "TEXT2DECK_CONFIG"


class AIConfig(BaseModel):
    provider: str = "ollama"
    api_key: str = ""
    base_url: str = "http://localhost:11434/v1"
    model: str = "llama3"


class AppConfig(BaseModel):
    ai: AIConfig = Field(default_factory=AIConfig)
    custom_styles: List[PromptStyle] = Field(default_factory=list)


def config_path(path: Optional[Path] = None) -> Path:
    if path is not None:
        return Path(path).expanduser()
    env = os.environ.get(ENV_CONFIG, "")
    return Path(env).expanduser() if env else DEFAULT_CONFIG_PATH


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Read the config file (defaults when absent) and apply env overrides."""
    p = config_path(path)
    if p.exists():
        cfg = AppConfig.model_validate(json.loads(p.read_text(encoding="utf-8")))
    else:
        cfg = AppConfig()
    return apply_env_overrides(cfg)


def apply_env_overrides(cfg: AppConfig) -> AppConfig:
    updates = {}
    for env_name, key in (
        (ENV_PROVIDER, "provider"),
        (ENV_MODEL, "model"),
        (ENV_API_KEY, "api_key"),
        (ENV_BASE_URL, "base_url"),
    ):
        value = os.environ.get(env_name, "").strip()
        if value:
            updates[key] = value
    if not updates:
        return cfg
    return cfg.model_copy(update={"ai": cfg.ai.model_copy(update=updates)})


def save_config(cfg: AppConfig, path: Optional[Path] = None) -> Path:
    p = config_path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(cfg.model_dump(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return p
