"""
Table-backed store.

Each entity kind maps onto one SQLAlchemy model whose column names match the
record's field names, so rows and records convert generically.  Upserts use
the dialect's ``INSERT ... ON CONFLICT (id) DO UPDATE`` (PostgreSQL in
production, SQLite in tests).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from connectors.models import (
    COMMITS,
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
from models.database import get_session
from services.storage import R, Storage, StorageError, check_record

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Kind → table mapping
# ---------------------------------------------------------------------------

def _get_table_config(entity_kind: str) -> Any:
    """Return the model class backing an entity kind."""
    from models.commit import Commit
    from models.pull_request import PullRequest
    from models.repository import Repository
    from models.sprint import Sprint
    from models.team_member import TeamMember
    from models.work_item import WorkItem

    configs: dict[str, Any] = {
        REPOSITORIES: Repository,
        COMMITS: Commit,
        WORK_ITEMS: WorkItem,
        PULL_REQUESTS: PullRequest,
        TEAM_MEMBERS: TeamMember,
        SPRINTS: Sprint,
    }
    return configs.get(entity_kind)


def _insert_for(session: AsyncSession) -> Callable[..., Any]:
    dialect: str = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise StorageError(f"Upsert is not supported on dialect {dialect!r}")


def _to_row(record: CachedRecord, now: datetime) -> dict[str, Any]:
    row: dict[str, Any] = record.model_dump(exclude=set(type(record).model_computed_fields))
    row["last_updated"] = now
    return row


def _to_record(entity_kind: str, row: Any) -> Any:
    # NULL JSON columns fall back to the record's defaults
    values: dict[str, Any] = {
        column.name: getattr(row, column.name)
        for column in row.__table__.columns
        if getattr(row, column.name) is not None
    }
    return RECORD_TYPES[entity_kind].model_validate(values)


class DatabaseStorage(Storage):
    """Store backed by the ``repositories``/``commits``/... tables."""

    backend = "database"

    def __init__(self, session_factory: Optional[Callable[[], Any]] = None) -> None:
        # Defaults to the process-wide ``get_session``; tests pass their own
        self._session_factory = session_factory or get_session

    async def upsert(self, entity_kind: str, record: R) -> R:
        check_record(entity_kind, record)
        model_cls = _get_table_config(entity_kind)
        now: datetime = datetime.utcnow()
        row: dict[str, Any] = _to_row(record, now)

        try:
            async with self._session_factory() as session:
                insert = _insert_for(session)
                table = model_cls.__table__
                stmt = insert(table).values(row)
                update_cols = {
                    col: getattr(stmt.excluded, col) for col in row if col != "id"
                }
                stmt = stmt.on_conflict_do_update(index_elements=["id"], set_=update_cols)
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to upsert {entity_kind} {row.get('id')}: {exc}") from exc

        return record.model_copy(update={"last_updated": now}, deep=True)

    async def get(self, entity_kind: str, record_id: Any) -> Optional[CachedRecord]:
        model_cls = _get_table_config(entity_kind)
        if model_cls is None:
            return None
        async with self._session_factory() as session:
            row = await session.get(model_cls, record_id)
            return _to_record(entity_kind, row) if row is not None else None

    async def _select(self, entity_kind: str, query: Any) -> list[Any]:
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_to_record(entity_kind, row) for row in result.scalars().all()]

    async def get_repositories(self, organization: str, project: str) -> list[RepositoryRecord]:
        from models.repository import Repository

        return await self._select(
            REPOSITORIES,
            select(Repository)
            .where(Repository.organization == organization, Repository.project_name == project)
            .order_by(Repository.last_updated.desc()),
        )

    async def get_commits(self, repository_id: str, limit: int = 100) -> list[CommitRecord]:
        from models.commit import Commit

        return await self._select(
            COMMITS,
            select(Commit)
            .where(Commit.repository_id == repository_id)
            .order_by(Commit.author_date.desc())
            .limit(limit),
        )

    async def get_commits_by_date_range(
        self, repository_id: str, start: datetime, end: datetime
    ) -> list[CommitRecord]:
        from models.commit import Commit

        return await self._select(
            COMMITS,
            select(Commit)
            .where(
                Commit.repository_id == repository_id,
                Commit.author_date >= start,
                Commit.author_date <= end,
            )
            .order_by(Commit.author_date.desc()),
        )

    async def get_work_items(
        self, project_name: str, iteration_path: Optional[str] = None
    ) -> list[WorkItemRecord]:
        from models.work_item import WorkItem

        query = select(WorkItem).where(WorkItem.project_name == project_name)
        if iteration_path is not None:
            query = query.where(WorkItem.iteration_path == iteration_path)
        return await self._select(WORK_ITEMS, query.order_by(WorkItem.created_date.desc()))

    async def get_pull_requests(
        self, repository_id: str, status: Optional[str] = None
    ) -> list[PullRequestRecord]:
        from models.pull_request import PullRequest

        query = select(PullRequest).where(PullRequest.repository_id == repository_id)
        if status and status != "all":
            query = query.where(PullRequest.status == status)
        return await self._select(
            PULL_REQUESTS, query.order_by(PullRequest.creation_date.desc())
        )

    async def get_team_members(self, organization: str, project: str) -> list[TeamMemberRecord]:
        from models.team_member import TeamMember

        return await self._select(
            TEAM_MEMBERS,
            select(TeamMember)
            .where(TeamMember.organization == organization, TeamMember.project_name == project)
            .order_by(TeamMember.last_updated.desc()),
        )

    async def get_sprints(self, organization: str, project: str) -> list[SprintRecord]:
        from models.sprint import Sprint

        return await self._select(
            SPRINTS,
            select(Sprint)
            .where(Sprint.organization == organization, Sprint.project_name == project)
            .order_by(Sprint.start_date.desc().nulls_last()),
        )

    async def clear(self, organization: str, project: str) -> None:
        from models.commit import Commit
        from models.pull_request import PullRequest
        from models.repository import Repository
        from models.sprint import Sprint
        from models.team_member import TeamMember
        from models.work_item import WorkItem

        async with self._session_factory() as session:
            result = await session.execute(
                select(Repository.id).where(
                    Repository.organization == organization,
                    Repository.project_name == project,
                )
            )
            repo_ids: list[str] = list(result.scalars().all())

            if repo_ids:
                await session.execute(delete(Commit).where(Commit.repository_id.in_(repo_ids)))
                await session.execute(
                    delete(PullRequest).where(PullRequest.repository_id.in_(repo_ids))
                )
            await session.execute(delete(Repository).where(Repository.id.in_(repo_ids)))
            await session.execute(delete(WorkItem).where(WorkItem.project_name == project))
            await session.execute(
                delete(TeamMember).where(
                    TeamMember.organization == organization,
                    TeamMember.project_name == project,
                )
            )
            await session.execute(
                delete(Sprint).where(
                    Sprint.organization == organization,
                    Sprint.project_name == project,
                )
            )
            await session.commit()

        logger.info(
            "Cleared cached data for %s/%s (%d repositories)",
            organization, project, len(repo_ids),
        )
