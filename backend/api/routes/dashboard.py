"""
Read endpoints for the dashboard.

Everything except repository insights is served from the cache; call
POST /api/sync to refresh it.  Organization and project default to the
configured scope when omitted.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Path, Query

from api.routes.sync import resolve_scope
from connectors.azure_devops import create_connector
from connectors.base import ConnectorError
from connectors.models import to_jsonable
from services import analytics
from services.storage import get_storage

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/dashboard")
async def get_dashboard(
    organization: Optional[str] = Query(default=None, min_length=1),
    project: Optional[str] = Query(default=None, min_length=1),
) -> dict[str, Any]:
    """Aggregated metrics, current sprint and recent items for one scope."""
    organization, project = resolve_scope(organization, project)
    try:
        return await analytics.build_dashboard(get_storage(), organization, project)
    except Exception as exc:
        logger.error("Dashboard query failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch dashboard data")


@router.get("/repositories")
async def list_repositories(
    organization: Optional[str] = Query(default=None, min_length=1),
    project: Optional[str] = Query(default=None, min_length=1),
) -> list[dict[str, Any]]:
    organization, project = resolve_scope(organization, project)
    try:
        repos = await get_storage().get_repositories(organization, project)
    except Exception as exc:
        logger.error("Repositories query failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch repositories")
    return [r.to_dict() for r in repos]


@router.get("/commits")
async def list_commits(
    repository_id: str = Query(..., min_length=1),
    limit: int = Query(default=100, ge=1, le=1000),
) -> list[dict[str, Any]]:
    try:
        commits = await get_storage().get_commits(repository_id, limit)
    except Exception as exc:
        logger.error("Commits query failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch commits")
    return [c.to_dict() for c in commits]


@router.get("/commits/analytics/{repository_id}")
async def get_commit_analytics(
    repository_id: str = Path(..., min_length=1),
    days: int = Query(default=30, ge=1, le=365),
) -> dict[str, Any]:
    """Contributor and per-day commit activity computed from cached commits."""
    try:
        return await analytics.commit_analytics(get_storage(), repository_id, days)
    except Exception as exc:
        logger.error("Commit analytics failed for %s: %s", repository_id, exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch commit analytics")


@router.get("/work-items")
async def list_work_items(
    project_name: Optional[str] = Query(default=None, min_length=1),
    iteration_path: Optional[str] = Query(default=None, min_length=1),
) -> list[dict[str, Any]]:
    _, project = resolve_scope(None, project_name)
    try:
        items = await get_storage().get_work_items(project, iteration_path)
    except Exception as exc:
        logger.error("Work items query failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch work items")
    return [w.to_dict() for w in items]


@router.get("/work-items/analytics")
async def get_work_item_analytics(
    project_name: Optional[str] = Query(default=None, min_length=1),
    iteration_path: Optional[str] = Query(default=None, min_length=1),
) -> dict[str, Any]:
    _, project = resolve_scope(None, project_name)
    try:
        items = await get_storage().get_work_items(project, iteration_path)
    except Exception as exc:
        logger.error("Work item analytics failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch work item analytics")
    return analytics.work_item_stats(items)


@router.get("/pull-requests/{repository_id}")
async def list_pull_requests(
    repository_id: str = Path(..., min_length=1),
    status: Optional[str] = Query(default=None),
) -> list[dict[str, Any]]:
    try:
        prs = await get_storage().get_pull_requests(repository_id, status)
    except Exception as exc:
        logger.error("Pull requests query failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch pull requests")
    return [p.to_dict() for p in prs]


@router.get("/team-members")
async def list_team_members(
    organization: Optional[str] = Query(default=None, min_length=1),
    project: Optional[str] = Query(default=None, min_length=1),
) -> list[dict[str, Any]]:
    organization, project = resolve_scope(organization, project)
    try:
        members = await get_storage().get_team_members(organization, project)
    except Exception as exc:
        logger.error("Team members query failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch team members")
    return [m.to_dict() for m in members]


@router.get("/sprints")
async def list_sprints(
    organization: Optional[str] = Query(default=None, min_length=1),
    project: Optional[str] = Query(default=None, min_length=1),
) -> list[dict[str, Any]]:
    organization, project = resolve_scope(organization, project)
    try:
        sprints = await get_storage().get_sprints(organization, project)
    except Exception as exc:
        logger.error("Sprints query failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch sprints")
    return [s.to_dict() for s in sprints]


@router.get("/sprints/current")
async def get_current_sprint(
    organization: Optional[str] = Query(default=None, min_length=1),
    project: Optional[str] = Query(default=None, min_length=1),
) -> Optional[dict[str, Any]]:
    organization, project = resolve_scope(organization, project)
    try:
        sprint = await analytics.current_sprint(get_storage(), organization, project)
    except Exception as exc:
        logger.error("Current sprint query failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch current sprint")
    return sprint.to_dict() if sprint is not None else None


@router.get("/repository-insights/{repository_id}")
async def get_repository_insights(
    repository_id: str = Path(..., min_length=1),
    organization: Optional[str] = Query(default=None, min_length=1),
    project: Optional[str] = Query(default=None, min_length=1),
) -> dict[str, Any]:
    """Live activity summary straight from Azure DevOps (not cached)."""
    organization, project = resolve_scope(organization, project)
    connector = create_connector(organization, project)
    if connector is None:
        raise HTTPException(status_code=503, detail="Azure DevOps service not configured")
    try:
        insights = await connector.get_repository_insights(repository_id)
    except ConnectorError as exc:
        logger.error("Repository insights failed for %s: %s", repository_id, exc)
        raise HTTPException(status_code=500, detail="Failed to fetch repository insights")
    return to_jsonable(insights)
