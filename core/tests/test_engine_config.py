"""Tests for EngineConfig resolution: environment, config file, defaults."""

import json

import pytest

from nodeflow import config as config_module
from nodeflow.config import EngineConfig, get_model_defaults, get_nodeflow_config

ENV_VARS = (
    "NODEFLOW_MAX_LOOP_DEPTH",
    "NODEFLOW_FAILURE_THRESHOLD",
    "NODEFLOW_RECOVERY_TIMEOUT",
    "NODEFLOW_HTTP_TIMEOUT",
    "OPENAI_DEFAULT_MODEL",
    "GEMINI_MODEL",
)


@pytest.fixture
def config_file(monkeypatch, tmp_path):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    path = tmp_path / "configuration.json"
    monkeypatch.setattr(config_module, "NODEFLOW_CONFIG_FILE", path)
    return path


def test_defaults_without_file(config_file):
    cfg = EngineConfig()
    assert cfg.max_loop_depth == 5
    assert cfg.failure_threshold == 5
    assert cfg.recovery_timeout == 30.0
    assert cfg.http_timeout == 30.0
    assert cfg.discord_rate_limit_interval == 2.5
    assert cfg.error_handler_type == "error_handler"
    assert get_nodeflow_config() == {}


def test_file_values(config_file):
    config_file.write_text(
        json.dumps(
            {
                "engine": {"max_loop_depth": 3, "recovery_timeout": 10},
                "models": {"openai": "gpt-4o"},
            }
        )
    )
    cfg = EngineConfig()
    assert cfg.max_loop_depth == 3
    assert cfg.recovery_timeout == 10.0
    assert cfg.failure_threshold == 5
    assert cfg.models["openai"] == "gpt-4o"
    assert "gemini" in cfg.models


def test_environment_overrides_file(config_file, monkeypatch):
    config_file.write_text(json.dumps({"engine": {"failure_threshold": 2}}))
    monkeypatch.setenv("NODEFLOW_FAILURE_THRESHOLD", "9")
    assert EngineConfig().failure_threshold == 9


def test_invalid_value_falls_back_to_default(config_file, monkeypatch):
    monkeypatch.setenv("NODEFLOW_MAX_LOOP_DEPTH", "deep")
    assert EngineConfig().max_loop_depth == 5


def test_corrupt_file_is_ignored(config_file):
    config_file.write_text("{not json")
    assert get_nodeflow_config() == {}
    assert EngineConfig().http_timeout == 30.0


def test_model_env_overrides(config_file, monkeypatch):
    monkeypatch.setenv("GEMINI_MODEL", "gemini-pro")
    assert get_model_defaults()["gemini"] == "gemini-pro"
