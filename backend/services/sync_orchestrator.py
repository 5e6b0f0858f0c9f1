"""
Sync orchestration: refreshes every cached entity kind for one
organization/project.

A sync is gated on the freshness of the ``repositories`` timestamp, which
stands in for the whole group.  When no connector is configured the demo
dataset is seeded instead.  Otherwise repositories, sprints, work items and
team members are fetched concurrently, then commits and pull requests are
fetched per repository.  Each step catches and logs its own failures, so a
sync never raises because a remote call failed; callers read the counts.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from config import settings, to_iso8601
from connectors.azure_devops import create_connector
from connectors.base import BaseConnector
from connectors.demo import generate_demo_data
from connectors.models import (
    COMMITS,
    PULL_REQUESTS,
    REPOSITORIES,
    SPRINTS,
    TEAM_MEMBERS,
    WORK_ITEMS,
    CachedRecord,
    RepositoryRecord,
)
from services.cache_tracker import CacheFreshnessTracker, get_tracker
from services.storage import Storage, get_storage

logger = logging.getLogger(__name__)

# Freshness of this kind decides whether the whole group is re-synced
SENTINEL_KIND: str = REPOSITORIES


class SyncCounts(BaseModel):
    """Records stored per entity kind during one sync."""

    repositories: int = 0
    sprints: int = 0
    work_items: int = 0
    team_members: int = 0
    commits: int = 0
    pull_requests: int = 0


class SyncReport(BaseModel):
    """Outcome of a sync call."""

    success: bool = True
    ran_sync: bool
    message: str
    source: Optional[Literal["remote", "demo"]] = None
    synced_at: Optional[str] = None
    last_synced_at: Optional[str] = None
    counts: SyncCounts = Field(default_factory=SyncCounts)


class SyncOrchestrator:
    """Runs syncs against one connector, store and freshness tracker."""

    def __init__(
        self,
        storage: Storage,
        tracker: CacheFreshnessTracker,
        connector: Optional[BaseConnector] = None,
        ttl: Optional[timedelta] = None,
        commit_limit: Optional[int] = None,
        connector_factory: Optional[Callable[[str, str], Optional[BaseConnector]]] = None,
    ) -> None:
        self.storage = storage
        self.tracker = tracker
        self.ttl: timedelta = tracker.ttl if ttl is None else ttl
        self.commit_limit: int = (
            settings.COMMIT_SYNC_LIMIT if commit_limit is None else commit_limit
        )
        self._connector = connector
        self._connector_factory = connector_factory

    def connector_for(self, organization: str, project: str) -> Optional[BaseConnector]:
        """Connector bound to the scope, or ``None`` when running without credentials."""
        if self._connector_factory is not None:
            return self._connector_factory(organization, project)
        return self._connector

    def is_stale(self, entity_kind: str, organization: str, project: str) -> bool:
        return self.tracker.is_stale(entity_kind, organization, project, self.ttl)

    async def sync(self, organization: str, project: str, force: bool = False) -> SyncReport:
        if not force and not self.is_stale(SENTINEL_KIND, organization, project):
            last_synced: Optional[datetime] = self.tracker.get(SENTINEL_KIND, organization, project)
            logger.info("Cache for %s/%s is fresh, skipping sync", organization, project)
            return SyncReport(
                ran_sync=False,
                message="Data is fresh, no sync needed",
                last_synced_at=to_iso8601(last_synced),
            )

        connector: Optional[BaseConnector] = self.connector_for(organization, project)
        if connector is None:
            return await self._seed_demo_data(organization, project)

        logger.info("Starting Azure DevOps sync for %s/%s", organization, project)

        repositories, sprints, work_items, team_members = await asyncio.gather(
            self._sync_kind(REPOSITORIES, connector.list_repositories, organization, project),
            self._sync_kind(SPRINTS, connector.list_sprints, organization, project),
            self._sync_kind(WORK_ITEMS, connector.list_work_items, organization, project),
            self._sync_kind(
                TEAM_MEMBERS,
                connector.list_team_members,
                organization,
                project,
                record_when_empty=False,
            ),
        )

        commits, pull_requests = await self._sync_repository_children(
            connector, organization, project
        )

        synced_at: datetime = self.tracker.now()
        report = SyncReport(
            ran_sync=True,
            message="Data synchronization completed",
            source="remote",
            synced_at=to_iso8601(synced_at),
            last_synced_at=to_iso8601(self.tracker.get(SENTINEL_KIND, organization, project)),
            counts=SyncCounts(
                repositories=repositories,
                sprints=sprints,
                work_items=work_items,
                team_members=team_members,
                commits=commits,
                pull_requests=pull_requests,
            ),
        )
        logger.info(
            "Sync completed for %s/%s",
            organization,
            project,
            extra={"counts": report.counts.model_dump()},
        )
        return report

    async def _sync_kind(
        self,
        entity_kind: str,
        fetch: Callable[[], Awaitable[Sequence[CachedRecord]]],
        organization: str,
        project: str,
        record_when_empty: bool = True,
    ) -> int:
        """Fetch, upsert and timestamp one entity kind. Failures count as zero."""
        try:
            records: Sequence[CachedRecord] = await fetch()
            if not records and not record_when_empty:
                logger.info("No %s returned for %s/%s", entity_kind, organization, project)
                return 0
            stored: list[CachedRecord] = await self.storage.upsert_many(entity_kind, records)
            self.tracker.record_sync(entity_kind, organization, project)
            return len(stored)
        except Exception as exc:
            logger.warning(
                "Failed to sync %s for %s/%s: %s",
                entity_kind,
                organization,
                project,
                exc,
                exc_info=True,
            )
            return 0

    async def _sync_repository_children(
        self, connector: BaseConnector, organization: str, project: str
    ) -> tuple[int, int]:
        """Commits and pull requests for every stored repository in the scope."""
        repositories: list[RepositoryRecord] = await self.storage.get_repositories(
            organization, project
        )
        total_commits: int = 0
        total_pull_requests: int = 0

        for repo in repositories:
            try:
                prs = await connector.list_pull_requests(repo.id)
                total_pull_requests += len(await self.storage.upsert_many(PULL_REQUESTS, prs))
            except Exception as exc:
                logger.warning(
                    "Failed to sync pull requests for repository %s: %s", repo.id, exc
                )

            try:
                commits = await connector.list_commits(repo.id, limit=self.commit_limit)
                total_commits += len(await self.storage.upsert_many(COMMITS, commits))
            except Exception as exc:
                logger.warning("Failed to sync commits for repository %s: %s", repo.id, exc)

        self.tracker.record_sync(PULL_REQUESTS, organization, project)
        self.tracker.record_sync(COMMITS, organization, project)
        return total_commits, total_pull_requests

    async def _seed_demo_data(self, organization: str, project: str) -> SyncReport:
        """Replace the scope's cache with the fixed demo dataset."""
        logger.info(
            "No Azure DevOps credentials configured, seeding demo data for %s/%s",
            organization,
            project,
        )
        await self.storage.clear(organization, project)
        dataset = generate_demo_data(organization, project, now=self.tracker.now())

        counts: dict[str, int] = {}
        for entity_kind, records in dataset.by_kind().items():
            stored = await self.storage.upsert_many(entity_kind, records)
            self.tracker.record_sync(entity_kind, organization, project)
            counts[entity_kind] = len(stored)

        synced_at: datetime = self.tracker.now()
        return SyncReport(
            ran_sync=True,
            message="Demo data loaded",
            source="demo",
            synced_at=to_iso8601(synced_at),
            last_synced_at=to_iso8601(self.tracker.get(SENTINEL_KIND, organization, project)),
            counts=SyncCounts(
                repositories=counts[REPOSITORIES],
                sprints=counts[SPRINTS],
                work_items=counts[WORK_ITEMS],
                team_members=counts[TEAM_MEMBERS],
                commits=counts[COMMITS],
                pull_requests=counts[PULL_REQUESTS],
            ),
        )

    async def clear_cache(self, organization: str, project: str) -> None:
        await self.storage.clear(organization, project)
        self.tracker.clear(organization, project)

    def sync_status(self, organization: str, project: str) -> dict[str, Any]:
        """Last sync time and staleness per entity kind."""
        timestamps = self.tracker.snapshot(organization, project)
        return {
            "organization": organization,
            "project": project,
            "entities": {
                entity_kind: {
                    "last_synced_at": to_iso8601(last_synced),
                    "is_stale": self.is_stale(entity_kind, organization, project),
                }
                for entity_kind, last_synced in timestamps.items()
            },
        }


# Process-wide orchestrator, created on first use
_orchestrator: Optional[SyncOrchestrator] = None


def get_orchestrator() -> SyncOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = SyncOrchestrator(
            storage=get_storage(),
            tracker=get_tracker(),
            connector_factory=create_connector,
        )
    return _orchestrator
