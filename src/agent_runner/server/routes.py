"""HTTP route handlers for command execution and thread storage."""

from __future__ import annotations

import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from agent_runner.services.cancellation import CancellationRegistry
from agent_runner.services.registry import CommandRegistry, build_api_request_args, substitute
from agent_runner.services.runner import ProcessRunner, ShellDisabledError
from agent_runner.storage.models import ExecutionResult, Message, Session, utc_now_iso
from agent_runner.storage.sessions import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# --- Request bodies ---


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExecuteBody(_Body):
    command_id: str | None = None
    user_message: str | None = None
    process_id: str | None = None
    api_method: str | None = None
    api_url: str | None = None
    api_token: str | None = None
    api_body: str | None = None


class ExecuteCustomBody(_Body):
    command: str | None = None
    process_id: str | None = None


class CancelBody(_Body):
    process_id: str | None = None


class MessageBody(_Body):
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: str | None = None
    command: str | None = None
    command_id: str | None = None


class SessionBody(_Body):
    id: int
    title: str
    preview: str | None = None
    timestamp: str | None = None
    unread: bool = False
    messages: list[MessageBody] = []


# --- Dependencies ---


def get_registry(request: Request) -> CommandRegistry:
    return request.app.state.registry


def get_runner(request: Request) -> ProcessRunner:
    return request.app.state.runner


def get_cancellations(request: Request) -> CancellationRegistry:
    return request.app.state.runner.cancellations


def get_store(request: Request) -> SessionStore:
    return request.app.state.store


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _result_response(result: ExecutionResult | None) -> Response:
    if result is None:
        # Cancelled or timed out; the caller already knows via /api/cancel
        return Response(status_code=204)
    if result.exit_code is None and result.error is not None:
        return JSONResponse(status_code=500, content=result.to_dict())
    return JSONResponse(content=result.to_dict())


def _parse_session_id(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        return None


# --- Commands ---


@router.get("/health")
async def health() -> dict[str, str]:
    return {
        "status": "ok",
        "message": "AI Agent Runner API is running",
        "timestamp": utc_now_iso(),
    }


@router.get("/commands")
async def list_commands(registry: CommandRegistry = Depends(get_registry)) -> dict[str, Any]:
    return {"commands": [spec.to_dict() for spec in registry.list()]}


@router.post("/execute")
async def execute(
    body: ExecuteBody,
    registry: CommandRegistry = Depends(get_registry),
    runner: ProcessRunner = Depends(get_runner),
) -> Response:
    spec = registry.get(body.command_id) if body.command_id else None
    if spec is None:
        return _error(400, "Invalid command", availableCommands=registry.ids())

    if spec.is_api_request:
        try:
            args = build_api_request_args(body.api_url or "", body.api_method, body.api_token, body.api_body)
        except ValueError as e:
            return _error(400, str(e))
    elif spec.is_custom:
        if not body.user_message:
            return _error(400, "Command is required")
        try:
            result = await runner.execute_shell(body.user_message, body.process_id)
        except ShellDisabledError as e:
            return _error(403, str(e))
        return _result_response(result)
    else:
        args = substitute(spec.args, body.user_message)

    result = await runner.execute(spec, args, body.process_id)
    return _result_response(result)


@router.post("/execute-custom")
async def execute_custom(body: ExecuteCustomBody, runner: ProcessRunner = Depends(get_runner)) -> Response:
    if not body.command:
        return _error(400, "Command is required")
    try:
        result = await runner.execute_shell(body.command, body.process_id)
    except ShellDisabledError as e:
        return _error(403, str(e))
    return _result_response(result)


@router.post("/cancel")
async def cancel(body: CancelBody, cancellations: CancellationRegistry = Depends(get_cancellations)) -> Response:
    if not body.process_id:
        return _error(400, "Process ID is required")
    if not cancellations.cancel(body.process_id):
        return _error(404, "Process not found or already completed")
    return JSONResponse(content={"success": True, "message": "Process cancelled"})


# --- Threads ---


@router.get("/threads")
async def list_threads(store: SessionStore = Depends(get_store)) -> dict[str, Any]:
    return {"threads": await store.list_summaries()}


@router.get("/threads/{session_id}")
async def get_thread(session_id: str, store: SessionStore = Depends(get_store)) -> Response:
    parsed = _parse_session_id(session_id)
    if parsed is None:
        return _error(400, "Invalid session ID")
    session = await store.get(parsed)
    if session is None:
        return _error(404, "Session not found")
    return JSONResponse(content=session.to_dict())


@router.post("/threads")
async def save_thread(body: SessionBody, store: SessionStore = Depends(get_store)) -> Response:
    if not body.id or not body.title:
        return _error(400, "Session must have id and title")

    session = Session.from_dict(body.model_dump(by_alias=True, exclude_none=True))
    try:
        await store.save(session)
    except ValueError as e:
        return _error(400, f"Invalid session timestamp: {e}")
    return JSONResponse(content={"success": True, "thread": session.to_dict()})


@router.post("/threads/{session_id}/messages")
async def add_message(session_id: str, body: MessageBody, store: SessionStore = Depends(get_store)) -> Response:
    parsed = _parse_session_id(session_id)
    if parsed is None:
        return _error(400, "Invalid session ID")
    if not body.role or not body.content:
        return _error(400, "Message must have role and content")

    message = Message.from_dict(body.model_dump(by_alias=True, exclude_none=True))
    if not await store.append_message(parsed, message):
        return _error(500, "Failed to add message to session", details=f"Session {parsed} not found")
    return JSONResponse(content={"success": True, "message": message.to_dict()})


@router.delete("/threads/{session_id}")
async def delete_thread(session_id: str, store: SessionStore = Depends(get_store)) -> Response:
    parsed = _parse_session_id(session_id)
    if parsed is None:
        return _error(400, "Invalid session ID")
    if not await store.delete(parsed):
        return _error(404, "Session not found")
    return JSONResponse(content={"success": True, "message": "Session deleted successfully"})
