"""Data models for ai-agent-runner."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

DEFAULT_PREVIEW = "New session - no messages yet"
PREVIEW_LENGTH = 100


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def make_preview(content: str) -> str:
    """Truncate message content for a session preview."""
    if len(content) > PREVIEW_LENGTH:
        return content[:PREVIEW_LENGTH] + "..."
    return content


@dataclass
class ExecutionResult:
    """Result from a command execution (restricted or shell)."""

    succeeded: bool = False
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    command_line: str = ""
    is_agent: bool = False
    error: str | None = None
    execution_time_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.succeeded,
            "exitCode": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "command": self.command_line,
            "isAgent": self.is_agent,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class Message:
    """A single entry in a session's message log."""

    role: str
    content: str
    timestamp: str = field(default_factory=utc_now_iso)
    command: str | None = None
    command_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(
            role=data["role"],
            content=data["content"],
            timestamp=data.get("timestamp") or utc_now_iso(),
            command=data.get("command"),
            command_id=data.get("commandId"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.command is not None:
            data["command"] = self.command
        if self.command_id is not None:
            data["commandId"] = self.command_id
        return data


@dataclass
class Session:
    """A conversation thread and its ordered messages."""

    id: int
    title: str
    preview: str = DEFAULT_PREVIEW
    timestamp: str = field(default_factory=utc_now_iso)
    unread: bool = False
    messages: list[Message] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            id=data["id"],
            title=data["title"],
            preview=data.get("preview") or DEFAULT_PREVIEW,
            timestamp=data.get("timestamp") or utc_now_iso(),
            unread=bool(data.get("unread", False)),
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "preview": self.preview,
            "timestamp": self.timestamp,
            "unread": self.unread,
            "messages": [m.to_dict() for m in self.messages],
        }

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "preview": self.preview,
            "timestamp": self.timestamp,
            "unread": self.unread,
        }

    def add_message(self, message: Message) -> None:
        self.messages.append(message)
        self.preview = make_preview(message.content)
        self.timestamp = message.timestamp
