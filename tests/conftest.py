"""Shared test fixtures."""

from __future__ import annotations

import pytest

from agent_runner.config import AppConfig, LoggingConfig, RunnerConfig, ServerConfig, ShellConfig, StorageConfig


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config, logs and sessions out of the real home directory."""
    import agent_runner.config as cfg_module

    config_dir = tmp_path / "home"
    monkeypatch.setattr(cfg_module, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(cfg_module, "CONFIG_FILE", config_dir / "config.toml")
    monkeypatch.setenv("AGENT_RUNNER_SESSIONS_DIR", str(tmp_path / "cli-sessions"))
    monkeypatch.setenv("AGENT_RUNNER_LOG_FILE", str(tmp_path / "cli.log"))
    monkeypatch.delenv("USER_DATA_PATH", raising=False)
    return config_dir


@pytest.fixture
def app_config(tmp_path):
    """Create a test configuration."""
    return AppConfig(
        server=ServerConfig(host="127.0.0.1", port=3999),
        shell=ShellConfig(timeout=5, enabled=True),
        runner=RunnerConfig(max_output=0),
        storage=StorageConfig(sessions_dir=str(tmp_path / "sessions"), seed_examples=False),
        logging=LoggingConfig(level="DEBUG", file=str(tmp_path / "test.log")),
    )
