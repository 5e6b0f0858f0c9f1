"""
Base connector class for remote data sources.

A connector is a thin, stateless translation layer: every ``list_*`` method
performs remote calls and returns normalized Pydantic records from
:mod:`connectors.models`.  Connectors never touch the store; persistence and
freshness bookkeeping belong to the sync orchestrator.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any, Optional

from connectors.models import (
    CommitRecord,
    PullRequestRecord,
    RepositoryRecord,
    SprintRecord,
    TeamMemberRecord,
    WorkItemRecord,
)


logger = logging.getLogger(__name__)


class ConnectorError(RuntimeError):
    """Raised when a remote call fails (transport, auth, timeout, bad payload)."""


class BaseConnector(ABC):
    """Abstract base class for project-management data sources."""

    # Override in subclasses
    source_system: str = "unknown"

    def __init__(self, organization: str, project: str) -> None:
        """
        Initialize the connector.

        Args:
            organization: Remote organization name
            project: Remote project name inside the organization
        """
        self.organization = organization
        self.project = project

    @abstractmethod
    async def list_repositories(self) -> list[RepositoryRecord]:
        """Fetch every repository in the project."""
        pass

    @abstractmethod
    async def list_commits(
        self, repository_id: str, limit: int = 100, offset: int = 0
    ) -> list[CommitRecord]:
        """Fetch one page of commits for a repository, newest first."""
        pass

    @abstractmethod
    async def list_work_items(
        self, iteration_path: Optional[str] = None
    ) -> list[WorkItemRecord]:
        """Fetch work items, optionally restricted to an iteration path."""
        pass

    @abstractmethod
    async def list_pull_requests(
        self, repository_id: str, status: str = "all"
    ) -> list[PullRequestRecord]:
        """Fetch pull requests for a repository (``status="all"`` = no filter)."""
        pass

    @abstractmethod
    async def list_team_members(self) -> list[TeamMemberRecord]:
        """Fetch the organization's users."""
        pass

    @abstractmethod
    async def list_sprints(self) -> list[SprintRecord]:
        """Fetch iterations that have a date range."""
        pass

    async def get_repository_insights(self, repository_id: str) -> dict[str, Any]:
        """Live activity summary for one repository.

        Override in subclasses that can count branches.  The default
        implementation builds the summary from commits and pull requests only.
        """
        commits: list[CommitRecord] = await self.list_commits(repository_id, limit=10)
        pull_requests: list[PullRequestRecord] = await self.list_pull_requests(repository_id)
        return build_repository_insights(commits, pull_requests, total_branches=0)


def build_repository_insights(
    commits: list[CommitRecord],
    pull_requests: list[PullRequestRecord],
    total_branches: int,
) -> dict[str, Any]:
    """Merge recent commits and PRs into one activity feed (20 newest)."""
    activity: list[dict[str, Any]] = [
        {
            "type": "commit",
            "title": c.comment,
            "author": c.author_name,
            "date": c.author_date,
            "url": c.remote_url or c.url or "",
        }
        for c in commits
    ]
    activity.extend(
        {
            "type": "pullrequest",
            "title": pr.title,
            "author": pr.created_by_name,
            "date": pr.creation_date,
            "url": pr.url or "",
        }
        for pr in pull_requests[:10]
    )
    activity.sort(key=lambda a: a["date"], reverse=True)

    return {
        "total_commits": len(commits),
        "total_branches": total_branches,
        "total_pull_requests": len(pull_requests),
        "recent_activity": activity[:20],
    }
