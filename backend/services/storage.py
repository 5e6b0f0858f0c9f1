"""
Persistent store for cached Azure DevOps entities.

Two interchangeable implementations share the :class:`Storage` interface:

* :class:`MemoryStorage` - dicts keyed by id, lost on restart (default).
* :class:`services.db_storage.DatabaseStorage` - SQLAlchemy tables with
  ``INSERT ... ON CONFLICT DO UPDATE`` upserts.

:func:`get_storage` picks one from ``settings.STORAGE_BACKEND`` the first time
it is called.  Every write goes through ``upsert``: the record replaces any
existing record with the same id and its ``last_updated`` is set to now.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional, Sequence, TypeVar

from config import settings
from connectors.models import (
    COMMITS,
    ENTITY_KINDS,
    PULL_REQUESTS,
    RECORD_TYPES,
    REPOSITORIES,
    SPRINTS,
    TEAM_MEMBERS,
    WORK_ITEMS,
    CachedRecord,
    CommitRecord,
    PullRequestRecord,
    RepositoryRecord,
    SprintRecord,
    TeamMemberRecord,
    WorkItemRecord,
)

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=CachedRecord)


class StorageError(RuntimeError):
    """Raised when a single store write fails."""


def check_record(entity_kind: str, record: CachedRecord) -> None:
    """Reject unknown kinds and records of the wrong type."""
    record_type: Optional[type[CachedRecord]] = RECORD_TYPES.get(entity_kind)
    if record_type is None:
        raise StorageError(f"Unknown entity kind: {entity_kind!r}")
    if not isinstance(record, record_type):
        raise StorageError(
            f"Expected {record_type.__name__} for {entity_kind}, got {type(record).__name__}"
        )


def sort_sprints(sprints: list[SprintRecord]) -> list[SprintRecord]:
    """Newest start date first; sprints without a start date go last."""
    dated: list[SprintRecord] = [s for s in sprints if s.start_date is not None]
    undated: list[SprintRecord] = [s for s in sprints if s.start_date is None]
    dated.sort(key=lambda s: s.start_date, reverse=True)
    return dated + undated


class Storage(ABC):
    """Upsert-based store for the six cached entity kinds."""

    backend: str = "unknown"

    @abstractmethod
    async def upsert(self, entity_kind: str, record: R) -> R:
        """Insert or fully replace the record with the same id; stamps ``last_updated``."""

    async def upsert_many(self, entity_kind: str, records: Sequence[R]) -> list[R]:
        """Upsert each record independently.

        A failing record is logged and skipped; the rest are still written.
        Returns the records that were stored.
        """
        stored: list[R] = []
        for record in records:
            try:
                stored.append(await self.upsert(entity_kind, record))
            except StorageError as exc:
                logger.warning(
                    "Failed to store %s record %s: %s",
                    entity_kind,
                    getattr(record, "id", "?"),
                    exc,
                )
        return stored

    @abstractmethod
    async def get(self, entity_kind: str, record_id: Any) -> Optional[CachedRecord]:
        """Fetch one record by id."""

    @abstractmethod
    async def get_repositories(self, organization: str, project: str) -> list[RepositoryRecord]:
        """Repositories in scope, most recently updated first."""

    @abstractmethod
    async def get_commits(self, repository_id: str, limit: int = 100) -> list[CommitRecord]:
        """Newest commits of one repository."""

    @abstractmethod
    async def get_commits_by_date_range(
        self, repository_id: str, start: datetime, end: datetime
    ) -> list[CommitRecord]:
        """Commits authored within ``[start, end]``, newest first."""

    @abstractmethod
    async def get_work_items(
        self, project_name: str, iteration_path: Optional[str] = None
    ) -> list[WorkItemRecord]:
        """Work items of a project, newest first."""

    @abstractmethod
    async def get_pull_requests(
        self, repository_id: str, status: Optional[str] = None
    ) -> list[PullRequestRecord]:
        """Pull requests of one repository; ``status`` of ``None``/``"all"`` means any."""

    @abstractmethod
    async def get_team_members(self, organization: str, project: str) -> list[TeamMemberRecord]:
        """Team members in scope, most recently updated first."""

    @abstractmethod
    async def get_sprints(self, organization: str, project: str) -> list[SprintRecord]:
        """Sprints in scope, newest start date first."""

    @abstractmethod
    async def clear(self, organization: str, project: str) -> None:
        """Delete every cached record belonging to the scope.

        Commits and pull requests are removed through the repositories the
        scope owns, so other scopes' commits and PRs survive.
        """


class MemoryStorage(Storage):
    """Dict-backed store."""

    backend = "memory"

    def __init__(self) -> None:
        self._data: dict[str, dict[Any, CachedRecord]] = {kind: {} for kind in ENTITY_KINDS}

    async def upsert(self, entity_kind: str, record: R) -> R:
        check_record(entity_kind, record)
        stored: R = record.model_copy(update={"last_updated": datetime.utcnow()}, deep=True)
        self._data[entity_kind][stored.id] = stored  # type: ignore[attr-defined]
        return stored.model_copy(deep=True)

    async def get(self, entity_kind: str, record_id: Any) -> Optional[CachedRecord]:
        record: Optional[CachedRecord] = self._data.get(entity_kind, {}).get(record_id)
        return record.model_copy(deep=True) if record is not None else None

    def _values(self, entity_kind: str) -> list[Any]:
        return [r.model_copy(deep=True) for r in self._data[entity_kind].values()]

    async def get_repositories(self, organization: str, project: str) -> list[RepositoryRecord]:
        repos: list[RepositoryRecord] = [
            r for r in self._values(REPOSITORIES)
            if r.organization == organization and r.project_name == project
        ]
        repos.sort(key=lambda r: r.last_updated, reverse=True)
        return repos

    async def get_commits(self, repository_id: str, limit: int = 100) -> list[CommitRecord]:
        commits: list[CommitRecord] = [
            c for c in self._values(COMMITS) if c.repository_id == repository_id
        ]
        commits.sort(key=lambda c: c.author_date, reverse=True)
        return commits[:limit]

    async def get_commits_by_date_range(
        self, repository_id: str, start: datetime, end: datetime
    ) -> list[CommitRecord]:
        commits: list[CommitRecord] = [
            c for c in self._values(COMMITS)
            if c.repository_id == repository_id and start <= c.author_date <= end
        ]
        commits.sort(key=lambda c: c.author_date, reverse=True)
        return commits

    async def get_work_items(
        self, project_name: str, iteration_path: Optional[str] = None
    ) -> list[WorkItemRecord]:
        items: list[WorkItemRecord] = [
            w for w in self._values(WORK_ITEMS)
            if w.project_name == project_name
            and (iteration_path is None or w.iteration_path == iteration_path)
        ]
        items.sort(key=lambda w: w.created_date, reverse=True)
        return items

    async def get_pull_requests(
        self, repository_id: str, status: Optional[str] = None
    ) -> list[PullRequestRecord]:
        prs: list[PullRequestRecord] = [
            p for p in self._values(PULL_REQUESTS)
            if p.repository_id == repository_id
            and (not status or status == "all" or p.status == status)
        ]
        prs.sort(key=lambda p: p.creation_date, reverse=True)
        return prs

    async def get_team_members(self, organization: str, project: str) -> list[TeamMemberRecord]:
        members: list[TeamMemberRecord] = [
            m for m in self._values(TEAM_MEMBERS)
            if m.organization == organization and m.project_name == project
        ]
        members.sort(key=lambda m: m.last_updated, reverse=True)
        return members

    async def get_sprints(self, organization: str, project: str) -> list[SprintRecord]:
        return sort_sprints([
            s for s in self._values(SPRINTS)
            if s.organization == organization and s.project_name == project
        ])

    async def clear(self, organization: str, project: str) -> None:
        def in_scope(record: Any) -> bool:
            return record.organization == organization and record.project_name == project

        repo_ids: set[str] = {
            r.id for r in self._data[REPOSITORIES].values() if in_scope(r)
        }
        self._drop(COMMITS, lambda c: c.repository_id in repo_ids)
        self._drop(PULL_REQUESTS, lambda p: p.repository_id in repo_ids)
        self._drop(REPOSITORIES, in_scope)
        self._drop(WORK_ITEMS, lambda w: w.project_name == project)
        self._drop(TEAM_MEMBERS, in_scope)
        self._drop(SPRINTS, in_scope)
        logger.info(
            "Cleared cached data for %s/%s (%d repositories)",
            organization, project, len(repo_ids),
        )

    def _drop(self, entity_kind: str, predicate: Any) -> None:
        table: dict[Any, CachedRecord] = self._data[entity_kind]
        for record_id in [k for k, v in table.items() if predicate(v)]:
            del table[record_id]


# Process-wide store, created on first use
_storage: Optional[Storage] = None


def create_storage(backend: Optional[str] = None) -> Storage:
    """Build a store for ``backend`` (``"memory"`` or ``"database"``)."""
    name: str = (backend or settings.STORAGE_BACKEND).lower()
    if name == "memory":
        return MemoryStorage()
    if name == "database":
        from services.db_storage import DatabaseStorage

        return DatabaseStorage()
    raise ValueError(f"Unknown storage backend: {name!r}")


def get_storage() -> Storage:
    global _storage
    if _storage is None:
        _storage = create_storage()
        logger.info("Using %s storage backend", _storage.backend)
    return _storage
