"""Request-scoped access to the service that owns the tools."""

from __future__ import annotations

from fastapi import Request

from triagecore.engine.service import CliToolService


def get_service(request: Request) -> CliToolService:
    return request.app.state.service
