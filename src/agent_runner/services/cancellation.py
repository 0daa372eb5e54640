"""Process-token registry for cancelling in-flight executions."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import threading
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from agent_runner.storage.models import ExecutionResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResultSlot(Generic[T]):
    """Single-assignment outcome holder. The first ``set`` wins."""

    def __init__(self) -> None:
        self._future: asyncio.Future[T] = asyncio.get_running_loop().create_future()

    @property
    def is_set(self) -> bool:
        return self._future.done()

    def set(self, value: T) -> bool:
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    async def get(self) -> T:
        return await self._future


class RunningProcess:
    """Handle on a spawned child process and its one-shot outcome.

    The outcome is either the execution result or ``None`` when the run was
    cancelled (explicitly or by timeout).
    """

    def __init__(self, proc: asyncio.subprocess.Process, own_group: bool = False) -> None:
        self.proc = proc
        self.own_group = own_group
        self.outcome: ResultSlot[ExecutionResult | None] = ResultSlot()

    @property
    def pid(self) -> int:
        return self.proc.pid

    def cancel(self) -> bool:
        """Suppress the outcome and signal the process. False if already settled."""
        if not self.outcome.set(None):
            return False
        self.terminate()
        return True

    def terminate(self) -> None:
        try:
            if self.own_group:
                os.killpg(self.proc.pid, signal.SIGTERM)
            else:
                self.proc.terminate()
        except ProcessLookupError:
            # Exited between the check and the signal
            logger.debug("Process %s already exited", self.proc.pid)

    def kill(self) -> None:
        try:
            if self.own_group:
                os.killpg(self.proc.pid, signal.SIGKILL)
            else:
                self.proc.kill()
        except ProcessLookupError:
            # Already reaped
            logger.debug("Process %s already exited", self.proc.pid)


class CancellationRegistry:
    """Maps caller-chosen process tokens to running processes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running: dict[str, RunningProcess] = {}

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._running

    def __len__(self) -> int:
        with self._lock:
            return len(self._running)

    def active(self) -> list[str]:
        with self._lock:
            return list(self._running)

    def register(self, token: str, handle: RunningProcess) -> None:
        with self._lock:
            previous = self._running.get(token)
            if previous is not None and previous is not handle:
                logger.warning("Process token %s reused while still running (pid %s)", token, previous.pid)
            self._running[token] = handle

    def remove(self, token: str, handle: RunningProcess | None = None) -> bool:
        """Drop a mapping. With ``handle``, only if the token still points at it."""
        with self._lock:
            current = self._running.get(token)
            if current is None or (handle is not None and current is not handle):
                return False
            del self._running[token]
            return True

    def cancel(self, token: str) -> bool:
        """Terminate the process registered under ``token``.

        Returns False when nothing is registered (unknown or already done).
        Does not wait for the process to exit.
        """
        with self._lock:
            handle = self._running.pop(token, None)
        if handle is None:
            return False
        handle.cancel()
        logger.info("Cancelled process %s (pid %s)", token, handle.pid)
        return True
