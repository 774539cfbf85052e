"""
YAML settings loader for the workflow optimizer.
Provides cached access to base.yaml settings.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


_settings_cache: Optional[Dict[str, Any]] = None


def get_config_path() -> Path:
    """Return path to base.yaml config file."""
    # Check environment variable first, then default to project config
    env_path = os.getenv("WFO_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return Path(__file__).parent / "base.yaml"


def load_settings(force_reload: bool = False) -> Dict[str, Any]:
    """Load and cache settings from base.yaml."""
    global _settings_cache
    if _settings_cache is not None and not force_reload:
        return _settings_cache

    config_path = get_config_path()
    if not config_path.exists():
        _settings_cache = {}
        return _settings_cache

    with open(config_path, "r", encoding="utf-8") as f:
        _settings_cache = yaml.safe_load(f) or {}
    return _settings_cache


def get_setting(path: str, default: Any = None) -> Any:
    """
    Get a nested setting by dot-notation path.
    Example: get_setting("optimizer.rounds", 15)
    """
    settings = load_settings()
    keys = path.split(".")
    value = settings
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


# Section accessors

def get_search_config() -> Dict[str, Any]:
    """Tree search configuration."""
    return {
        "mode": str(get_setting("search.mode", "catalog")),
        "simulations": int(get_setting("search.simulations", 20)),
        "exploration": float(get_setting("search.exploration", 1.414)),
        "terminal_visits": int(get_setting("search.terminal_visits", 10)),
        "neutral_score": float(get_setting("search.neutral_score", 0.5)),
        "simulation_horizon": int(get_setting("search.simulation_horizon", 10)),
    }


def get_optimizer_config() -> Dict[str, Any]:
    """Round loop and acceptance configuration."""
    return {
        "rounds": int(get_setting("optimizer.rounds", 15)),
        "improvement_threshold": float(get_setting("optimizer.improvement_threshold", 0.02)),
        "temperature": float(get_setting("optimizer.temperature", 0.1)),
    }


def get_backtest_config() -> Dict[str, Any]:
    """Walk-forward evaluator configuration."""
    return {
        "lookback": int(get_setting("backtest.lookback", 30)),
        "horizon": int(get_setting("backtest.horizon", 30)),
        "trade_tail": int(get_setting("backtest.trade_tail", 10)),
        "insufficient_data_score": float(get_setting("backtest.insufficient_data_score", 0.0)),
        "error_score": float(get_setting("backtest.error_score", 0.5)),
    }


def get_max_concurrent() -> int:
    """Instruments optimized concurrently per batch."""
    return int(get_setting("scheduler.max_concurrent", 2))


def get_generation_config() -> Dict[str, Any]:
    """Candidate generation configuration."""
    return {
        "enabled": bool(get_setting("generation.enabled", False)),
        "timeout_seconds": float(get_setting("generation.timeout_seconds", 20.0)),
        "preferences": dict(get_setting("generation.preferences", {}) or {}),
    }


def get_preferences(instrument: str) -> List[str]:
    """Ranked fallback variant names for an instrument."""
    prefs = get_generation_config()["preferences"]
    ranked = prefs.get(instrument.upper()) or prefs.get("default") or []
    return [str(name) for name in ranked]


def get_data_config() -> Dict[str, Any]:
    """Price data configuration."""
    return {
        "period": str(get_setting("data.period", "1y")),
        "request_timeout": float(get_setting("data.request_timeout", 10.0)),
        "synthetic_seed": int(get_setting("data.synthetic_seed", 7)),
        "fallback_ttl_seconds": float(get_setting("data.fallback_ttl_seconds", 300)),
    }


def get_cache_config() -> Dict[str, Any]:
    """TTL cache configuration."""
    return {
        "ttl_seconds": float(get_setting("cache.ttl_seconds", 3600)),
        "dir": get_setting("cache.dir", None),
    }


def get_storage_config() -> Dict[str, Any]:
    """Result persistence configuration."""
    return {
        "root": str(get_setting("storage.root", "storage")),
        "persist": bool(get_setting("storage.persist", True)),
    }


def get_llm_config() -> Dict[str, Any]:
    """Text generation provider configuration."""
    return {
        "temperature": float(os.getenv("LLM_TEMPERATURE", get_setting("llm.temperature", 0.3))),
        "max_tokens": int(get_setting("llm.max_tokens", 1000)),
        "timeout": float(get_setting("llm.timeout", 30.0)),
        "providers": list(get_setting("llm.providers", ["openai", "anthropic"])),
    }
