"""Shared nodeflow configuration utilities.

Centralises reading of ~/.nodeflow/configuration.json so the engine, the
built-in nodes and the integration handlers share one implementation.
Environment variables override the file for individual engine settings.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

NODEFLOW_CONFIG_FILE = Path.home() / ".nodeflow" / "configuration.json"

DEFAULT_MAX_LOOP_DEPTH = 5
DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_RECOVERY_TIMEOUT = 30.0
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_DISCORD_RATE_LIMIT_INTERVAL = 2.5
DEFAULT_MAX_SUBWORKFLOW_DEPTH = 10


def get_nodeflow_config() -> dict[str, Any]:
    """Load nodeflow configuration from ~/.nodeflow/configuration.json."""
    if not NODEFLOW_CONFIG_FILE.exists():
        return {}
    try:
        with open(NODEFLOW_CONFIG_FILE, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _engine_setting(key: str, env_var: str, default: Any, cast: type) -> Any:
    """Resolve one engine setting: environment, then config file, then default."""
    raw = os.environ.get(env_var)
    if raw is None:
        raw = get_nodeflow_config().get("engine", {}).get(key)
    if raw is None:
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError):
        return default


def get_max_loop_depth() -> int:
    return _engine_setting("max_loop_depth", "NODEFLOW_MAX_LOOP_DEPTH", DEFAULT_MAX_LOOP_DEPTH, int)


def get_failure_threshold() -> int:
    return _engine_setting(
        "failure_threshold", "NODEFLOW_FAILURE_THRESHOLD", DEFAULT_FAILURE_THRESHOLD, int
    )


def get_recovery_timeout() -> float:
    return _engine_setting(
        "recovery_timeout", "NODEFLOW_RECOVERY_TIMEOUT", DEFAULT_RECOVERY_TIMEOUT, float
    )


def get_http_timeout() -> float:
    return _engine_setting("http_timeout", "NODEFLOW_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT, float)


def get_model_defaults() -> dict[str, str]:
    """Default chat model per AI provider (e.g. {'openai': 'gpt-4.1-mini'})."""
    models = {
        "openai": os.environ.get("OPENAI_DEFAULT_MODEL", "gpt-4.1-mini"),
        "anthropic": "claude-haiku-4-5-20251001",
        "gemini": os.environ.get("GEMINI_MODEL", "gemini-2.5-flash"),
    }
    models.update(get_nodeflow_config().get("models", {}))
    return models


# ---------------------------------------------------------------------------
# EngineConfig – shared by the engine and every handler pack
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Workflow engine configuration loaded from ~/.nodeflow/configuration.json."""

    max_loop_depth: int = field(default_factory=get_max_loop_depth)
    failure_threshold: int = field(default_factory=get_failure_threshold)
    recovery_timeout: float = field(default_factory=get_recovery_timeout)
    http_timeout: float = field(default_factory=get_http_timeout)
    discord_rate_limit_interval: float = DEFAULT_DISCORD_RATE_LIMIT_INTERVAL
    max_subworkflow_depth: int = DEFAULT_MAX_SUBWORKFLOW_DEPTH
    trigger_marker: str = "trigger"
    error_handler_type: str = "error_handler"
    models: dict[str, str] = field(default_factory=get_model_defaults)
