"""Configuration management using TOML + environment variables."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]

import tomli_w

CONFIG_DIR = Path.home() / ".ai-agent-runner"
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOG_FILE = CONFIG_DIR / "server.log"

SESSIONS_DIRNAME = "ai-agent-runner-sessions-history"


def default_sessions_dir() -> str:
    # USER_DATA_PATH is set by the desktop shell when it launches the server
    user_data = os.environ.get("USER_DATA_PATH")
    if user_data:
        return str(Path(user_data) / SESSIONS_DIRNAME)
    return str(CONFIG_DIR / SESSIONS_DIRNAME)


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 3000


@dataclass
class ShellConfig:
    timeout: int = 30
    enabled: bool = True
    executable: str = ""


@dataclass
class RunnerConfig:
    max_output: int = 0


@dataclass
class StorageConfig:
    sessions_dir: str = field(default_factory=default_sessions_dir)
    seed_examples: bool = True


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    file: str = str(LOG_FILE)


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    shell: ShellConfig = field(default_factory=ShellConfig)
    runner: RunnerConfig = field(default_factory=RunnerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def ensure_config_dir() -> None:
    """Create config directory with secure permissions."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    os.chmod(CONFIG_DIR, 0o700)


def load_config() -> AppConfig:
    """Load configuration from TOML file with env var overrides."""
    config = AppConfig()

    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "rb") as f:
            data = tomllib.load(f)

        server = data.get("server", {})
        config.server.host = server.get("host", config.server.host)
        config.server.port = server.get("port", config.server.port)

        shell = data.get("shell", {})
        config.shell.timeout = shell.get("timeout", config.shell.timeout)
        config.shell.enabled = shell.get("enabled", config.shell.enabled)
        config.shell.executable = shell.get("executable", config.shell.executable)

        runner = data.get("runner", {})
        config.runner.max_output = runner.get("max_output", config.runner.max_output)

        storage = data.get("storage", {})
        config.storage.sessions_dir = storage.get("sessions_dir", config.storage.sessions_dir)
        config.storage.seed_examples = storage.get("seed_examples", config.storage.seed_examples)

        logging_cfg = data.get("logging", {})
        config.logging.level = logging_cfg.get("level", config.logging.level)
        config.logging.file = logging_cfg.get("file", config.logging.file)

    # Environment variable overrides
    if env_host := os.environ.get("AGENT_RUNNER_HOST"):
        config.server.host = env_host
    if env_port := os.environ.get("AGENT_RUNNER_PORT"):
        config.server.port = int(env_port)
    if env_shell_timeout := os.environ.get("AGENT_RUNNER_SHELL_TIMEOUT"):
        config.shell.timeout = int(env_shell_timeout)
    if env_shell_enabled := os.environ.get("AGENT_RUNNER_SHELL_ENABLED"):
        config.shell.enabled = env_shell_enabled.lower() in ("true", "1", "yes")
    if env_shell := os.environ.get("AGENT_RUNNER_SHELL"):
        config.shell.executable = env_shell
    if env_max_output := os.environ.get("AGENT_RUNNER_MAX_OUTPUT"):
        config.runner.max_output = int(env_max_output)
    if env_sessions := os.environ.get("AGENT_RUNNER_SESSIONS_DIR"):
        config.storage.sessions_dir = env_sessions
    if env_log_level := os.environ.get("AGENT_RUNNER_LOG_LEVEL"):
        config.logging.level = env_log_level
    if env_log_file := os.environ.get("AGENT_RUNNER_LOG_FILE"):
        config.logging.file = env_log_file

    return config


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML file."""
    ensure_config_dir()

    data = {
        "server": {
            "host": config.server.host,
            "port": config.server.port,
        },
        "shell": {
            "timeout": config.shell.timeout,
            "enabled": config.shell.enabled,
            "executable": config.shell.executable,
        },
        "runner": {
            "max_output": config.runner.max_output,
        },
        "storage": {
            "sessions_dir": config.storage.sessions_dir,
            "seed_examples": config.storage.seed_examples,
        },
        "logging": {
            "level": config.logging.level,
            "file": config.logging.file,
        },
    }

    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(data, f)

    os.chmod(CONFIG_FILE, 0o600)

