"""Date-partitioned JSON file storage for conversation sessions.

Each calendar day with activity gets one ``YYYY-MM-DD.json`` file holding a
JSON array of full sessions. A session lives in the file named after the
date of its *creation* timestamp; appending messages later rewrites that
same file even when the new message belongs to another day.

Writes are plain read-modify-write with no locking, so two concurrent
updates to the same partition can lose one of them. The store is meant for
a single local user.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

from agent_runner.storage.models import Message, Session

logger = logging.getLogger(__name__)

# fromisoformat before 3.11 only takes 3 or 6 fractional digits
_FRACTION = re.compile(r"\.(\d+)")

T = TypeVar("T")

STARTER_SESSIONS: list[dict[str, Any]] = [
    {
        "id": 1,
        "title": "Test Command Execution",
        "preview": "Testing basic shell commands...",
        "timestamp": "2024-01-15T10:30:00Z",
        "unread": True,
        "messages": [
            {"role": "user", "content": "Run ls command", "timestamp": "2024-01-15T10:30:00Z"},
            {"role": "assistant", "content": "Executing ls -la...", "timestamp": "2024-01-15T10:30:05Z"},
            {
                "role": "system",
                "content": "Command output:\ntotal 24\n"
                "drwxr-xr-x  5 user  staff  160 Jan 15 10:30 .\n"
                "drwxr-xr-x  8 user  staff  256 Jan 15 10:29 ..",
                "timestamp": "2024-01-15T10:30:06Z",
            },
        ],
    },
    {
        "id": 2,
        "title": "Git Operations",
        "preview": "Running git status and branch commands",
        "timestamp": "2024-01-15T09:15:00Z",
        "unread": False,
        "messages": [
            {"role": "user", "content": "Check git status", "timestamp": "2024-01-15T09:15:00Z"},
            {"role": "assistant", "content": "Running git status...", "timestamp": "2024-01-15T09:15:02Z"},
            {
                "role": "system",
                "content": "On branch main\nYour branch is up to date with origin/main",
                "timestamp": "2024-01-15T09:15:03Z",
            },
        ],
    },
    {
        "id": 3,
        "title": "Node.js Version Check",
        "preview": "Checking Node and npm versions",
        "timestamp": "2024-01-14T16:45:00Z",
        "unread": False,
        "messages": [
            {"role": "user", "content": "What version of Node.js is installed?", "timestamp": "2024-01-14T16:45:00Z"},
            {"role": "assistant", "content": "Checking Node.js version...", "timestamp": "2024-01-14T16:45:01Z"},
            {"role": "system", "content": "v20.10.0", "timestamp": "2024-01-14T16:45:02Z"},
        ],
    },
    {
        "id": 4,
        "title": "File System Operations",
        "preview": "Listing directories and files",
        "timestamp": "2024-01-14T14:20:00Z",
        "unread": False,
        "messages": [
            {"role": "user", "content": "List all files in current directory", "timestamp": "2024-01-14T14:20:00Z"},
            {"role": "assistant", "content": "Listing files...", "timestamp": "2024-01-14T14:20:01Z"},
        ],
    },
    {
        "id": 5,
        "title": "Custom Script Execution",
        "preview": "Running custom bash scripts",
        "timestamp": "2024-01-13T11:00:00Z",
        "unread": False,
        "messages": [
            {"role": "user", "content": "Run my custom script", "timestamp": "2024-01-13T11:00:00Z"},
            {"role": "assistant", "content": "Executing script...", "timestamp": "2024-01-13T11:00:02Z"},
        ],
    },
]


class SessionStoreError(Exception):
    """A partition file could not be read, parsed or written."""


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.replace("Z", "+00:00"), count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def partition_name(timestamp: str) -> str:
    """Partition filename for a session timestamp (its UTC calendar date)."""
    day = parse_timestamp(timestamp).astimezone(timezone.utc).date()
    return f"{day.isoformat()}.json"


class SessionStore:
    """File-backed session store, one JSON array per creation date."""

    def __init__(self, directory: str | Path, seed_examples: bool = True) -> None:
        self.directory = Path(directory).expanduser()
        self.seed_examples = seed_examples

    # --- Public async API ---

    async def initialize(self) -> None:
        await asyncio.to_thread(self._initialize)

    async def list_summaries(self) -> list[dict[str, Any]]:
        """Summaries of every session, most recent partition first."""
        return await asyncio.to_thread(self._list_summaries)

    async def get(self, session_id: int) -> Session | None:
        return await asyncio.to_thread(self._get, session_id)

    async def save(self, session: Session) -> None:
        """Insert or replace a session in its creation-date partition."""
        await asyncio.to_thread(self._save, session)

    async def append_message(self, session_id: int, message: Message) -> bool:
        """Append a message to an existing session. False if it does not exist."""
        return await asyncio.to_thread(self._append_message, session_id, message)

    async def delete(self, session_id: int) -> bool:
        return await asyncio.to_thread(self._delete, session_id)

    # --- Partition files ---

    def _initialize(self) -> None:
        if self.directory.is_dir():
            return

        logger.info("Creating session directory: %s", self.directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SessionStoreError(f"Cannot create {self.directory}: {e}") from e

        if not self.seed_examples:
            return

        by_partition: dict[str, list[Session]] = {}
        for data in STARTER_SESSIONS:
            session = Session.from_dict(data)
            by_partition.setdefault(partition_name(session.timestamp), []).append(session)

        for filename, sessions in by_partition.items():
            self._write(self.directory / filename, sessions)
            logger.info("Created starter file %s with %d session(s)", filename, len(sessions))

    def _partitions(self) -> list[Path]:
        return sorted(self.directory.glob("*.json"), reverse=True)

    def _read(self, path: Path) -> list[Session]:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return [Session.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.exception("Failed to read session file %s", path)
            raise SessionStoreError(f"Failed to read {path.name}: {e}") from e

    def _write(self, path: Path, sessions: list[Session]) -> None:
        payload = json.dumps([s.to_dict() for s in sessions], indent=2, ensure_ascii=False)
        try:
            path.write_text(payload, encoding="utf-8")
        except OSError as e:
            logger.exception("Failed to write session file %s", path)
            raise SessionStoreError(f"Failed to write {path.name}: {e}") from e

    def _scan(self, visitor: Callable[[Path, list[Session]], T | None]) -> T | None:
        """Call ``visitor`` on each partition until it returns something."""
        self._initialize()
        for path in self._partitions():
            outcome = visitor(path, self._read(path))
            if outcome is not None:
                return outcome
        return None

    # --- Operations ---

    def _list_summaries(self) -> list[dict[str, Any]]:
        summaries: list[dict[str, Any]] = []

        def collect(path: Path, sessions: list[Session]) -> None:
            summaries.extend(s.summary() for s in sessions)

        self._scan(collect)
        return summaries

    def _get(self, session_id: int) -> Session | None:
        def find(path: Path, sessions: list[Session]) -> Session | None:
            return next((s for s in sessions if s.id == session_id), None)

        return self._scan(find)

    def _save(self, session: Session) -> None:
        self._initialize()
        path = self.directory / partition_name(session.timestamp)
        sessions = self._read(path) if path.exists() else []

        for index, existing in enumerate(sessions):
            if existing.id == session.id:
                logger.debug("Updating session %s in %s", session.id, path.name)
                sessions[index] = session
                break
        else:
            logger.debug("Adding session %s to %s", session.id, path.name)
            sessions.append(session)

        self._write(path, sessions)
        logger.info("Saved session %s to %s (%d sessions)", session.id, path.name, len(sessions))

    def _append_message(self, session_id: int, message: Message) -> bool:
        def append(path: Path, sessions: list[Session]) -> bool | None:
            for session in sessions:
                if session.id == session_id:
                    session.add_message(message)
                    self._write(path, sessions)
                    logger.info(
                        "Added message to session %s in %s (%d messages)",
                        session_id,
                        path.name,
                        len(session.messages),
                    )
                    return True
            return None

        if self._scan(append):
            return True
        logger.warning("Session %s not found, message dropped", session_id)
        return False

    def _delete(self, session_id: int) -> bool:
        def remove(path: Path, sessions: list[Session]) -> bool | None:
            index = next((i for i, s in enumerate(sessions) if s.id == session_id), None)
            if index is None:
                return None
            del sessions[index]
            if sessions:
                self._write(path, sessions)
                logger.info("Deleted session %s from %s", session_id, path.name)
            else:
                try:
                    path.unlink()
                except OSError as e:
                    raise SessionStoreError(f"Failed to delete {path.name}: {e}") from e
                logger.info("Deleted empty session file %s", path.name)
            return True

        if self._scan(remove):
            return True
        logger.warning("Session %s not found", session_id)
        return False
