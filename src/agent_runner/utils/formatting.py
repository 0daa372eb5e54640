"""Plain-text formatting of results and threads for the terminal."""

from __future__ import annotations

from agent_runner.storage.models import ExecutionResult, Session


def format_duration(ms: int) -> str:
    """Format milliseconds to human-readable duration."""
    if ms < 1000:
        return f"{ms}ms"
    elif ms < 60000:
        return f"{ms / 1000:.1f}s"
    else:
        minutes = ms // 60000
        seconds = (ms % 60000) // 1000
        return f"{minutes}m {seconds}s"


def result_output(result: ExecutionResult) -> str:
    """The text a thread shows for a result: stdout on success, else the error."""
    if result.succeeded:
        return result.stdout or "(no output)"
    return result.stderr or result.error or "(no output)"


def format_execution_result(result: ExecutionResult) -> str:
    """Format a command execution result."""
    if result.exit_code is None:
        status = "FAILED"
    elif result.exit_code == 0:
        status = "OK"
    else:
        status = f"ERR({result.exit_code})"
    header = f"$ {result.command_line}\n[{status}] {format_duration(result.execution_time_ms)}"
    return f"{header}\n\n{result_output(result)}"


def format_transcript(session: Session) -> str:
    """Render a session's messages oldest first."""
    lines = [f"# {session.title} ({session.id})"]
    for message in session.messages:
        lines.append("")
        lines.append(f"[{message.timestamp}] {message.role}")
        if message.command:
            lines.append(f"$ {message.command}")
        lines.append(message.content)
    return "\n".join(lines)
