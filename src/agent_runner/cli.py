"""CLI entry point using typer."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from agent_runner import __version__
from agent_runner.config import CONFIG_FILE, AppConfig, load_config, save_config
from agent_runner.services.registry import CommandRegistry, UnknownCommandError, build_api_request_args, substitute
from agent_runner.services.runner import ProcessRunner, ShellDisabledError
from agent_runner.storage.models import Message
from agent_runner.storage.sessions import SessionStore, SessionStoreError
from agent_runner.utils.formatting import format_execution_result, format_transcript, result_output
from agent_runner.utils.system import check_executable

app = typer.Typer(
    name="agent-runner",
    help="Run AI agent CLIs and keep their conversations as threads.",
    add_completion=False,
)
console = Console()


def _setup_logging(config: AppConfig, stream: bool = True) -> None:
    log_path = Path(config.logging.file).expanduser().resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(str(log_path)),
            *([logging.StreamHandler()] if stream else []),
        ],
    )


def _store(config: AppConfig) -> SessionStore:
    return SessionStore(config.storage.sessions_dir, seed_examples=config.storage.seed_examples)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port"),
) -> None:
    """Start the local HTTP API."""
    config = load_config()
    if host:
        config.server.host = host
    if port:
        config.server.port = port

    _setup_logging(config)
    if config.server.host not in ("127.0.0.1", "localhost", "::1"):
        console.print(
            f"[yellow]Warning: binding to {config.server.host}. "
            "Shell commands run unrestricted for anyone who can reach this port.[/yellow]"
        )

    console.print(f"[green]Serving on http://{config.server.host}:{config.server.port}[/green]")
    console.print("Press Ctrl+C to stop.\n")

    from agent_runner.server.app import run_server

    try:
        run_server(config)
    except KeyboardInterrupt:
        pass
    console.print("\n[dim]Server stopped.[/dim]")


@app.command()
def commands() -> None:
    """List the whitelisted commands."""
    table = Table(title="Commands")
    table.add_column("ID", style="cyan")
    table.add_column("Executable")
    table.add_column("Flags", style="magenta")
    table.add_column("Description", style="green")

    for spec in CommandRegistry().list():
        flags = [
            name
            for name, on in (
                ("input", spec.requires_input),
                ("agent", spec.is_agent),
                ("api", spec.is_api_request),
                ("shell", spec.is_custom),
            )
            if on
        ]
        executable = "(shell)" if spec.is_custom else spec.executable
        if not spec.is_custom and not spec.is_api_request and not check_executable(spec.executable)[0]:
            executable += " [yellow](missing)[/yellow]"
        table.add_row(spec.id, executable, ", ".join(flags), spec.description)

    console.print(table)


@app.command()
def run(
    command_id: str = typer.Argument(..., help="Command ID (see 'agent-runner commands')"),
    message: Optional[str] = typer.Argument(None, help="Prompt or shell command"),
    url: Optional[str] = typer.Option(None, "--url", help="URL for api-request"),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method for api-request"),
    token: Optional[str] = typer.Option(None, "--token", help="Bearer token for api-request"),
    body: Optional[str] = typer.Option(None, "--body", "-d", help="JSON body for api-request"),
    thread: Optional[int] = typer.Option(None, "--thread", "-t", help="Append input and output to this thread"),
) -> None:
    """Run a whitelisted command once and print the result."""
    config = load_config()
    registry = CommandRegistry()
    try:
        spec = registry.resolve(command_id)
    except UnknownCommandError as e:
        console.print(f"[red]{e}[/red]")
        console.print(f"Available: {', '.join(registry.ids())}")
        raise typer.Exit(1)

    if spec.requires_input and not spec.is_api_request and not message:
        console.print(f"[red]'{command_id}' requires a message.[/red]")
        raise typer.Exit(1)

    runner = ProcessRunner(config)

    async def _execute():
        if spec.is_custom:
            return await runner.execute_shell(message or "")
        if spec.is_api_request:
            args = build_api_request_args(url or "", method, token, body)
        else:
            args = substitute(spec.args, message)
        return await runner.execute(spec, args)

    try:
        result = asyncio.run(_execute())
    except (ValueError, ShellDisabledError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if result is None:
        console.print(f"[yellow]Command timed out after {config.shell.timeout}s.[/yellow]")
        raise typer.Exit(1)

    console.print(format_execution_result(result), markup=False, highlight=False)

    if thread is not None:
        store = _store(config)

        async def _record() -> bool:
            user = Message(role="user", content=message or command_id, command_id=command_id)
            if not await store.append_message(thread, user):
                return False
            output = Message(role="system", content=result_output(result), command=result.command_line)
            return await store.append_message(thread, output)

        try:
            recorded = asyncio.run(_record())
        except SessionStoreError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)
        if not recorded:
            console.print(f"[red]Thread {thread} not found.[/red]")
            raise typer.Exit(1)
        console.print(f"[dim]Saved to thread {thread}.[/dim]")

    if not result.succeeded:
        raise typer.Exit(1)


@app.command()
def threads() -> None:
    """List saved threads, newest day first."""
    store = _store(load_config())
    try:
        summaries = asyncio.run(store.list_summaries())
    except SessionStoreError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not summaries:
        console.print("[dim]No threads.[/dim]")
        return

    table = Table(title="Threads")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Updated", style="dim")
    table.add_column("Preview", style="green")
    for item in summaries:
        title = f"* {item['title']}" if item["unread"] else item["title"]
        table.add_row(str(item["id"]), title, item["timestamp"], item["preview"])
    console.print(table)


@app.command()
def show(session_id: int = typer.Argument(..., help="Thread ID")) -> None:
    """Print a thread's messages."""
    store = _store(load_config())
    try:
        session = asyncio.run(store.get(session_id))
    except SessionStoreError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    if session is None:
        console.print(f"[red]Thread {session_id} not found.[/red]")
        raise typer.Exit(1)
    console.print(format_transcript(session), markup=False, highlight=False)


@app.command()
def delete(session_id: int = typer.Argument(..., help="Thread ID")) -> None:
    """Delete a thread."""
    store = _store(load_config())
    try:
        deleted = asyncio.run(store.delete(session_id))
    except SessionStoreError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    if not deleted:
        console.print(f"[red]Thread {session_id} not found.[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Thread {session_id} deleted.[/green]")


@app.command()
def config(
    key: str = typer.Argument(None, help="Config key (e.g., shell.timeout)"),
    value: str = typer.Argument(None, help="New value"),
) -> None:
    """View or modify configuration."""
    cfg = load_config()
    section_map = {
        "server": cfg.server,
        "shell": cfg.shell,
        "runner": cfg.runner,
        "storage": cfg.storage,
        "logging": cfg.logging,
    }

    if key is None:
        table = Table(title="Configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for section, obj in section_map.items():
            for attr, current in vars(obj).items():
                table.add_row(f"{section}.{attr}", str(current) if current != "" else "(default)")
        console.print(table)
        if not CONFIG_FILE.exists():
            console.print(f"[dim]{CONFIG_FILE} not found; showing defaults.[/dim]")
        return

    if value is None:
        console.print("[red]Usage: agent-runner config <key> <value>[/red]")
        raise typer.Exit(1)

    parts = key.split(".")
    if len(parts) != 2:
        console.print("[red]Key format: section.key (e.g., shell.timeout)[/red]")
        raise typer.Exit(1)

    section, attr = parts
    if section not in section_map:
        console.print(f"[red]Unknown section: {section}[/red]")
        raise typer.Exit(1)

    obj = section_map[section]
    if not hasattr(obj, attr):
        console.print(f"[red]Unknown key: {key}[/red]")
        raise typer.Exit(1)

    # Type coercion
    current = getattr(obj, attr)
    try:
        if isinstance(current, bool):
            typed_value = value.lower() in ("true", "1", "yes")
        elif isinstance(current, int):
            typed_value = int(value)
        else:
            typed_value = value
    except ValueError:
        console.print(f"[red]Invalid value type for {key}[/red]")
        raise typer.Exit(1)

    setattr(obj, attr, typed_value)
    save_config(cfg)
    console.print(f"[green]{key} = {typed_value}[/green]")


@app.command()
def logs(lines: int = typer.Option(50, "--lines", "-n", help="Number of lines")) -> None:
    """View server logs."""
    log_path = Path(load_config().logging.file).expanduser().resolve()
    if not log_path.exists():
        console.print("[dim]No log file found.[/dim]")
        return

    content = log_path.read_text()
    for line in content.strip().split("\n")[-lines:]:
        console.print(line, markup=False, highlight=False)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"agent-runner v{__version__}")
    console.print(f"Python: {sys.version.split()[0]}")
    console.print(f"Config: {CONFIG_FILE}")


if __name__ == "__main__":
    app()
