from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from triagecore.engine.service import CliToolService
from triagecore.server.deps import get_service
from triagecore.toolkit.models import RunReason

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tools"])


class RunRequest(BaseModel):
    reason: RunReason = RunReason.MANUAL
    force: bool = True


@router.get("/tools")
async def list_tools(service: CliToolService = Depends(get_service)) -> List[Dict[str, Any]]:
    """Resolved tool descriptors, sorted by title."""
    return [descriptor.to_dict() for descriptor in service.list_tools()]


@router.post("/tools/refresh")
async def refresh_tools(service: CliToolService = Depends(get_service)):
    """Run every stale auto-run tool and report which ones were refreshed."""
    refreshed = await service.ensure_fresh()
    return {"refreshed": refreshed}


@router.post("/tools/{tool_id}/run")
async def run_tool(
    tool_id: str,
    body: Optional[RunRequest] = None,
    service: CliToolService = Depends(get_service),
):
    """
    Run a tool and return its RunResult.

    Unknown ids map to 404 and disabled ids to 409 through the TriageError
    handler. A failed run is still a 200 with success=false.
    """
    body = body or RunRequest()
    result = await service.run_tool(tool_id, reason=body.reason, force=body.force)
    return result.to_dict()


@router.get("/tools/{tool_id}/result")
async def get_result(tool_id: str, service: CliToolService = Depends(get_service)):
    result = service.get_result(tool_id)
    if result is None:
        raise HTTPException(status_code=404, detail=f"No result recorded for {tool_id}")
    return result.to_dict()


@router.get("/context")
async def get_context(
    max_chars: Optional[int] = Query(default=None, ge=0),
    service: CliToolService = Depends(get_service),
):
    """Prompt-ready text for the cached results (null when nothing has run)."""
    return {"context": service.compose_context(max_chars)}
