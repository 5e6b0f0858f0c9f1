"""
Cache sync endpoints.

Endpoints:
- POST /api/sync - Refresh the cache for an organization/project
- GET /api/sync/status - Last sync time and staleness per entity kind
- DELETE /api/cache - Drop everything cached for an organization/project
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field, StrictBool

from config import settings
from services.sync_orchestrator import SyncReport, get_orchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


class SyncRequest(BaseModel):
    """Body for a sync trigger; omitted fields fall back to the configured scope."""

    organization: Optional[str] = Field(default=None, min_length=1)
    project: Optional[str] = Field(default=None, min_length=1)
    force: StrictBool = False


class MessageResponse(BaseModel):
    message: str


def resolve_scope(organization: Optional[str], project: Optional[str]) -> tuple[str, str]:
    return (
        organization or settings.AZURE_DEVOPS_ORGANIZATION,
        project or settings.AZURE_DEVOPS_PROJECT,
    )


@router.post("/sync", response_model=SyncReport)
async def trigger_sync(request: Optional[SyncRequest] = None) -> SyncReport:
    """Sync the cache, skipping the remote calls when it is still fresh."""
    body: SyncRequest = request or SyncRequest()
    organization, project = resolve_scope(body.organization, body.project)
    logger.info(
        "Sync requested for %s/%s",
        organization,
        project,
        extra={"force": body.force},
    )
    return await get_orchestrator().sync(organization, project, force=body.force)


@router.get("/sync/status")
async def get_sync_status(
    organization: Optional[str] = Query(default=None, min_length=1),
    project: Optional[str] = Query(default=None, min_length=1),
) -> dict[str, Any]:
    organization, project = resolve_scope(organization, project)
    return get_orchestrator().sync_status(organization, project)


@router.delete("/cache", response_model=MessageResponse)
async def clear_cache(
    organization: Optional[str] = Query(default=None, min_length=1),
    project: Optional[str] = Query(default=None, min_length=1),
) -> MessageResponse:
    organization, project = resolve_scope(organization, project)
    try:
        await get_orchestrator().clear_cache(organization, project)
    except Exception as exc:
        logger.error("Failed to clear cache for %s/%s: %s", organization, project, exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to clear cache")
    return MessageResponse(message="Cache cleared successfully")
