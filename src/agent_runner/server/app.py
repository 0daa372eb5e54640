"""HTTP application setup and lifecycle."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agent_runner import __version__
from agent_runner.config import AppConfig
from agent_runner.server.routes import router
from agent_runner.services.registry import CommandRegistry
from agent_runner.services.runner import ProcessRunner
from agent_runner.storage.sessions import SessionStore, SessionStoreError

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig,
    registry: CommandRegistry | None = None,
    runner: ProcessRunner | None = None,
    store: SessionStore | None = None,
) -> FastAPI:
    """Build the API app. Collaborators default to ones built from ``config``."""
    registry = registry if registry is not None else CommandRegistry()
    runner = runner or ProcessRunner(config)
    store = store or SessionStore(config.storage.sessions_dir, seed_examples=config.storage.seed_examples)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await store.initialize()
        except SessionStoreError:
            logger.exception("Failed to initialize session storage")
        logger.info("API ready on %s:%s (sessions in %s)", config.server.host, config.server.port, store.directory)
        yield
        for token in runner.cancellations.active():
            runner.cancellations.cancel(token)
        logger.info("API stopped.")

    app = FastAPI(title="AI Agent Runner", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.registry = registry
    app.state.runner = runner
    app.state.store = store

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(SessionStoreError)
    async def _store_error(request: Request, exc: SessionStoreError) -> JSONResponse:
        logger.error("Session storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": "Session storage failure", "details": str(exc)})

    app.include_router(router)
    return app


def run_server(config: AppConfig) -> None:
    """Serve the API until interrupted."""
    app = create_app(config)
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )
