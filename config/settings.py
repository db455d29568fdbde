"""
Configuration loader for Trailkit.
Reads settings from YAML file with environment variable substitution.

Resolution order (later wins):
  1. dataclass defaults
  2. YAML file at ``config_path`` / $TRAILKIT_CONFIG / config/settings.yaml
  3. $TRAILKIT_DEBUG and $TRAILKIT_MAX_LLM_CALLS
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class LLMConfig:
    provider: str = "openai"                 # openai | anthropic
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 1024
    api_key: str = ""
    base_url: str = ""


@dataclass
class InteractiveConfig:
    prompt: str = "> "
    default: str = ""


@dataclass
class Settings:
    app_name: str = "Trailkit"
    debug: bool = False                      # enables the LLM call-count governor
    max_llm_calls: int = 100
    print_messages: bool = False             # default Session.print for Agent.execute()
    llm: LLMConfig = field(default_factory=LLMConfig)
    interactive: InteractiveConfig = field(default_factory=InteractiveConfig)


_settings: Optional[Settings] = None

_TRUTHY = {"1", "true", "yes", "on"}


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} and ${VAR_NAME:default} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)(?::([^}]*))?\}')
    def replacer(match):
        var_name, default = match.group(1), match.group(2)
        return os.environ.get(var_name, match.group(0) if default is None else default)
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def _apply_env_overrides(settings: Settings) -> None:
    debug = os.environ.get("TRAILKIT_DEBUG")
    if debug is not None:
        settings.debug = _as_bool(debug)

    max_calls = os.environ.get("TRAILKIT_MAX_LLM_CALLS")
    if max_calls:
        try:
            settings.max_llm_calls = int(max_calls)
        except ValueError:
            raise ValueError(f"TRAILKIT_MAX_LLM_CALLS must be an integer, got {max_calls!r}")


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "TRAILKIT_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = _as_bool(raw.get("debug", settings.debug))
        settings.max_llm_calls = int(raw.get("max_llm_calls", settings.max_llm_calls))
        settings.print_messages = _as_bool(raw.get("print_messages", settings.print_messages))

        if "llm" in raw:
            llm = raw["llm"]
            settings.llm = LLMConfig(
                provider=llm.get("provider", "openai"),
                model=llm.get("model", "gpt-4o-mini"),
                temperature=llm.get("temperature", 0.7),
                max_tokens=llm.get("max_tokens", 1024),
                api_key=llm.get("api_key", ""),
                base_url=llm.get("base_url", ""),
            )

        if "interactive" in raw:
            it = raw["interactive"]
            settings.interactive = InteractiveConfig(
                prompt=it.get("prompt", "> "),
                default=it.get("default", ""),
            )

    _apply_env_overrides(settings)

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads them."""
    global _settings
    _settings = None
