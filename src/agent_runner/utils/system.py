"""System utility checks and child process environment."""

from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path

EXTRA_PATH_DIRS = (
    "/usr/local/bin",
    "/opt/homebrew/bin",
    "/usr/bin",
    "/bin",
    "~/.local/bin",
    "~/bin",
)


def spawn_env() -> dict[str, str]:
    """Environment for child processes, with common CLI install dirs on PATH.

    GUI launchers often start us with a minimal PATH, so agent CLIs
    installed by npm or Homebrew would otherwise not be found.
    """
    env = dict(os.environ)
    parts = [env.get("PATH", "")]
    parts.extend(str(Path(d).expanduser()) for d in EXTRA_PATH_DIRS)
    env["PATH"] = os.pathsep.join(p for p in parts if p)
    return env


def default_shell() -> str | None:
    """Shell used for unrestricted commands. None means the platform default."""
    if sys.platform == "darwin":
        return "/bin/zsh"
    return None


def check_executable(name: str) -> tuple[bool, str]:
    """Check if an executable is reachable with the spawn PATH."""
    found = shutil.which(name, path=spawn_env()["PATH"])
    if not found:
        return False, f"{name} not found on PATH"
    return True, found
