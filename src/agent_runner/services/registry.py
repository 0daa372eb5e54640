"""Whitelisted command table and argument construction."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

logger = logging.getLogger(__name__)

USER_MESSAGE_PLACEHOLDER = "{{USER_MESSAGE}}"


class UnknownCommandError(KeyError):
    """Raised when a command id is not in the registry."""

    def __init__(self, command_id: str) -> None:
        super().__init__(command_id)
        self.command_id = command_id

    def __str__(self) -> str:
        return f"Unknown command: {self.command_id}"


@dataclass(frozen=True)
class CommandSpec:
    """A whitelisted command: executable, argument template and flags."""

    id: str
    executable: str
    args: tuple[str, ...] = ()
    description: str = ""
    requires_input: bool = False
    is_agent: bool = False
    is_api_request: bool = False
    is_custom: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "description": self.description or f"Execute {self.executable} {' '.join(self.args)}".strip(),
            "isCustom": self.is_custom,
            "isAgent": self.is_agent,
            "isApiRequest": self.is_api_request,
            "requiresInput": self.requires_input,
        }


DEFAULT_COMMANDS: tuple[CommandSpec, ...] = (
    CommandSpec(
        "gemini",
        "gemini",
        ("-p", USER_MESSAGE_PLACEHOLDER),
        "Use Gemini agent with your prompt",
        requires_input=True,
        is_agent=True,
    ),
    CommandSpec(
        "claude",
        "claude",
        ("-p", USER_MESSAGE_PLACEHOLDER),
        "Use Claude CLI with your prompt",
        requires_input=True,
        is_agent=True,
    ),
    CommandSpec(
        "chatgpt",
        "codex",
        (USER_MESSAGE_PLACEHOLDER,),
        "Use ChatGPT Codex CLI with your prompt",
        requires_input=True,
        is_agent=True,
    ),
    CommandSpec("api-request", "curl", (), "Basic API request", requires_input=True, is_api_request=True),
    CommandSpec("raw-terminal", "custom", (), "Execute raw terminal command", requires_input=True, is_custom=True),
    CommandSpec("ls", "ls", ("-la",), "List files in current folder"),
    CommandSpec("whoami", "whoami", (), "Show current computer user"),
    CommandSpec("node-version", "node", ("--version",), "Show installed version of Node.js"),
    CommandSpec("echo-test", "echo", ("Hello from AI Agent Tester!",), "Echo a test message"),
)


def substitute(args: Iterable[str], user_message: str | None) -> list[str]:
    """Replace every placeholder element with the user's text.

    The text always becomes exactly one argument; it is never split.
    Templates without a placeholder are returned unchanged.
    """
    if user_message is None:
        return list(args)
    return [user_message if arg == USER_MESSAGE_PLACEHOLDER else arg for arg in args]


def build_api_request_args(
    url: str,
    method: str | None = None,
    token: str | None = None,
    body: str | None = None,
) -> list[str]:
    """Build curl arguments for an ad-hoc HTTP request."""
    if not url:
        raise ValueError("API URL is required for api-request command")

    method = (method or "GET").upper()
    args = ["-X", method]
    if token:
        args.extend(["-H", f"Authorization: Bearer {token}"])
    if method == "POST" and body:
        args.extend(["-H", "Content-Type: application/json", "-d", body])
    args.extend([url, "-i"])
    return args


def format_command_line(executable: str, args: Iterable[str]) -> str:
    """Display form of an argument vector (not for execution)."""
    return " ".join([executable, *args])


class CommandRegistry:
    """Immutable lookup table of whitelisted commands."""

    def __init__(self, commands: Iterable[CommandSpec] = DEFAULT_COMMANDS) -> None:
        self._commands: dict[str, CommandSpec] = {}
        for spec in commands:
            if spec.id in self._commands:
                raise ValueError(f"Duplicate command id: {spec.id}")
            self._commands[spec.id] = spec

    def __contains__(self, command_id: object) -> bool:
        return command_id in self._commands

    def __len__(self) -> int:
        return len(self._commands)

    def get(self, command_id: str) -> CommandSpec | None:
        return self._commands.get(command_id)

    def resolve(self, command_id: str) -> CommandSpec:
        spec = self._commands.get(command_id)
        if spec is None:
            logger.debug("Rejected unknown command id: %s", command_id)
            raise UnknownCommandError(command_id)
        return spec

    def list(self) -> list[CommandSpec]:
        return list(self._commands.values())

    def ids(self) -> list[str]:
        return list(self._commands)
