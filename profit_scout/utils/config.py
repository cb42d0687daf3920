"""
Project configuration.

Values come from three layers, later layers winning:

1. defaults declared on the pydantic models below
2. ``config.yaml`` at the project root (or the path in ``PROFIT_SCOUT_CONFIG``)
3. environment variables (``.env`` is loaded first via python-dotenv)

Usage
-----
    from profit_scout.utils.config import get_config

    cfg = get_config()
    cfg.summarizer.max_chars      # 1000
"""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config.yaml"
_DEFAULT_DB = Path(__file__).resolve().parents[2] / "data" / "conversations.db"


class LLMConfig(BaseModel):
    model: str = "gpt-4.1-mini"
    temperature: float = 0.3
    request_timeout: float = 60.0


class AnswerConfig(BaseModel):
    temperature: float = 0.2
    max_tool_iterations: int = Field(default=6, ge=1)
    tools_enabled: bool = True


class SummarizerConfig(BaseModel):
    temperature: float = 0.1
    max_chars: int = 1000
    hard_cap_chars: int = 2000
    # room for hard_cap_chars of text plus the JSON wrapper
    max_tokens: int = 700


class StoreConfig(BaseModel):
    db_path: Path = _DEFAULT_DB


class SchedulerConfig(BaseModel):
    max_workers: int = Field(default=4, ge=1)


class GuardsConfig(BaseModel):
    max_question_chars: int = 4000


class AppConfig(BaseModel):
    llm: LLMConfig = Field(default_factory=LLMConfig)
    answer: AnswerConfig = Field(default_factory=AnswerConfig)
    summarizer: SummarizerConfig = Field(default_factory=SummarizerConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    guards: GuardsConfig = Field(default_factory=GuardsConfig)


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load the project-level config.yaml and return it as a dict (empty dict if missing)."""
    if path.exists():
        with open(path, "r") as f:
            return yaml.safe_load(f) or {}
    return {}


def _apply_env(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay the environment variables that the deployment sets."""
    model = os.getenv("OPENAI_MODEL")
    if model:
        raw.setdefault("llm", {})["model"] = model
    db_path = os.getenv("PROFIT_SCOUT_DB")
    if db_path:
        raw.setdefault("store", {})["db_path"] = db_path
    return raw


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Build an :class:`AppConfig` from *path* (or the default config.yaml) plus env."""
    config_path = Path(path or os.getenv("PROFIT_SCOUT_CONFIG") or _DEFAULT_CONFIG_PATH)
    raw = _apply_env(_load_yaml(config_path))
    config = AppConfig.model_validate(raw)
    # relative db paths are anchored at the config file, not the cwd
    if not config.store.db_path.is_absolute():
        config.store.db_path = config_path.parent / config.store.db_path
    return config


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Return the process-wide configuration (cached)."""
    return load_config()


def reload_config() -> AppConfig:
    """Drop the cached configuration and read it again."""
    get_config.cache_clear()
    return get_config()
