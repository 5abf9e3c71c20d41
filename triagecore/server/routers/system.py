from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends

from triagecore.engine.service import CliToolService
from triagecore.server.deps import get_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check(service: CliToolService = Depends(get_service)):
    """Simple health check endpoint."""
    return {
        "status": "ok",
        "timestamp": asyncio.get_running_loop().time(),
        "tools": len(service.list_tools()),
        "cached_results": len(service.results),
    }
