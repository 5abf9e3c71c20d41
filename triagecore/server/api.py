# ============================================================================
# triagecore/server/api.py
# HTTP surface for the CLI context engine
# ============================================================================
#
# PURPOSE:
# Exposes the service operations to local clients (editor extension, scripts):
#   GET  /health                 liveness plus a few counters
#   GET  /tools                  resolved descriptors
#   POST /tools/refresh          ensure_fresh()
#   POST /tools/{id}/run         run_tool()
#   GET  /tools/{id}/result      cached RunResult
#   GET  /context?max_chars=N    compose_context()
#
# TriageError subclasses become JSON bodies carrying their mapped status.
#
# ============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from triagecore.base.config import get_config
from triagecore.base.exceptions import TriageError
from triagecore.engine.service import CliToolService
from triagecore.server.routers import system, tools

logger = logging.getLogger(__name__)


def create_app(service: CliToolService, manage_lifecycle: bool = True) -> FastAPI:
    """
    Build the FastAPI application around an existing service.

    With manage_lifecycle the service is started on startup and closed on
    shutdown; pass False when the caller already started it.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            await service.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await service.close()

    app = FastAPI(
        title="Issue Triage Context API",
        description="Runs workspace CLI tools and serves their results as prompt context",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.service = service

    @app.exception_handler(TriageError)
    async def triage_error_handler(request: Request, exc: TriageError):
        """Convert TriageError to a JSON response with its mapped status."""
        logger.error(f"[API] {exc.code.value}: {exc.message}")
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    app.include_router(system.router)
    app.include_router(tools.router)
    return app


def serve(service: CliToolService, port: Optional[int] = None, host: Optional[str] = None):
    config = get_config()
    app = create_app(service)
    uvicorn.run(app, host=host or config.api_host, port=port or config.api_port, log_level="info")
