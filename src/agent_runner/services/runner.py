"""Child process executor for whitelisted and shell commands."""

from __future__ import annotations

import asyncio
import logging
import os
import time

from agent_runner.config import AppConfig
from agent_runner.services.cancellation import CancellationRegistry, RunningProcess
from agent_runner.services.registry import CommandSpec, format_command_line
from agent_runner.storage.models import ExecutionResult
from agent_runner.utils.system import default_shell, spawn_env

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024

# Separate process groups let a cancel reach the whole tree (shell + children)
OWN_PROCESS_GROUP = os.name == "posix"


class ShellDisabledError(RuntimeError):
    """Unrestricted shell execution is turned off in configuration."""


async def _drain(stream: asyncio.StreamReader | None) -> bytes:
    if stream is None:
        return b""
    buffer = bytearray()
    while chunk := await stream.read(READ_CHUNK):
        buffer.extend(chunk)
    return bytes(buffer)


class ProcessRunner:
    """Spawn commands, collect their output and honour cancellation."""

    def __init__(self, config: AppConfig, cancellations: CancellationRegistry | None = None) -> None:
        self.config = config
        self.cancellations = cancellations if cancellations is not None else CancellationRegistry()

    async def execute(
        self,
        spec: CommandSpec,
        args: list[str],
        process_id: str | None = None,
    ) -> ExecutionResult | None:
        """Run ``spec.executable`` with a discrete argument vector.

        No shell is involved, so shell metacharacters in ``args`` stay
        literal. Returns None if the run was cancelled.
        """
        command_line = format_command_line(spec.executable, args)
        logger.info("Executing: %s", command_line)

        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                spec.executable,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=spawn_env(),
                start_new_session=OWN_PROCESS_GROUP,
            )
        except FileNotFoundError:
            logger.error("Executable not found: %s", spec.executable)
            return self._spawn_failure(command_line, f"Command not found: {spec.executable}", spec.is_agent)
        except OSError as e:
            logger.error("Failed to start %s: %s", spec.executable, e)
            return self._spawn_failure(command_line, str(e), spec.is_agent)

        return await self._run(proc, process_id, command_line, spec.is_agent, start)

    async def execute_shell(self, command: str, process_id: str | None = None) -> ExecutionResult | None:
        """Run ``command`` verbatim through a shell.

        This is the trusted-local-user path: nothing is validated. The run
        is killed after ``shell.timeout`` seconds and, like a cancelled run,
        reports nothing (None).
        """
        if not self.config.shell.enabled:
            raise ShellDisabledError("Shell commands are disabled in configuration.")

        logger.warning("Executing unrestricted shell command: %s", command)

        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=spawn_env(),
                executable=self.config.shell.executable or default_shell(),
                start_new_session=OWN_PROCESS_GROUP,
            )
        except OSError as e:
            logger.error("Failed to start shell: %s", e)
            return self._spawn_failure(command, str(e), False)

        return await self._run(proc, process_id, command, False, start, timeout=self.config.shell.timeout)

    async def _run(
        self,
        proc: asyncio.subprocess.Process,
        process_id: str | None,
        command_line: str,
        is_agent: bool,
        start: float,
        timeout: float | None = None,
    ) -> ExecutionResult | None:
        # Target CLIs may block until they see EOF on stdin
        if proc.stdin is not None:
            proc.stdin.close()

        handle = RunningProcess(proc, own_group=OWN_PROCESS_GROUP)
        if process_id:
            self.cancellations.register(process_id, handle)

        stdout_bytes = stderr_bytes = b""
        try:
            stdout_bytes, stderr_bytes, _ = await asyncio.wait_for(
                asyncio.gather(_drain(proc.stdout), _drain(proc.stderr), proc.wait()),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Command timed out after %ss, killing: %s", timeout, command_line)
            handle.outcome.set(None)
            handle.kill()
            await proc.wait()
        except asyncio.CancelledError:
            handle.cancel()
            raise
        finally:
            if process_id:
                self.cancellations.remove(process_id, handle)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        exit_code = proc.returncode
        handle.outcome.set(
            ExecutionResult(
                succeeded=exit_code == 0,
                exit_code=exit_code,
                stdout=self._decode(stdout_bytes),
                stderr=self._decode(stderr_bytes),
                command_line=command_line,
                is_agent=is_agent,
                execution_time_ms=elapsed_ms,
            )
        )

        result = await handle.outcome.get()
        if result is None:
            logger.info("No result reported for cancelled command: %s", command_line)
            return None
        logger.info("Command exited with %s after %dms: %s", exit_code, elapsed_ms, command_line)
        return result

    def _decode(self, data: bytes) -> str:
        text = data.decode("utf-8", errors="replace")
        max_out = self.config.runner.max_output
        return text[:max_out] if max_out > 0 else text

    @staticmethod
    def _spawn_failure(command_line: str, error: str, is_agent: bool) -> ExecutionResult:
        return ExecutionResult(
            succeeded=False,
            exit_code=None,
            stderr=error,
            command_line=command_line,
            is_agent=is_agent,
            error=error,
        )
