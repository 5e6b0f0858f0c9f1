"""
Canonical Pydantic record models for the Azure DevOps connector.

The connector returns instances of these models from its ``list_*`` methods,
the demo dataset is built from them, and both storage backends accept and
return them.  ``last_updated`` is owned by the store: it is set on every
upsert and whatever the caller passes is overwritten.

Each model mirrors the business columns of the corresponding SQLAlchemy
model but is framework-agnostic and fully typed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, computed_field

from config import to_iso8601


# ---------------------------------------------------------------------------
# Entity kinds
# ---------------------------------------------------------------------------

REPOSITORIES: str = "repositories"
COMMITS: str = "commits"
WORK_ITEMS: str = "workItems"
PULL_REQUESTS: str = "pullRequests"
TEAM_MEMBERS: str = "teamMembers"
SPRINTS: str = "sprints"

ENTITY_KINDS: tuple[str, ...] = (
    REPOSITORIES,
    COMMITS,
    WORK_ITEMS,
    PULL_REQUESTS,
    TEAM_MEMBERS,
    SPRINTS,
)

ReviewerVote = Literal[
    "approved", "approved_with_suggestions", "no_vote", "waiting", "rejected"
]
SprintState = Literal["past", "current", "future", "unknown"]


def derive_sprint_state(
    start_date: datetime | None,
    finish_date: datetime | None,
    now: datetime | None = None,
) -> SprintState:
    """Derive a sprint's state from its date range and the current time."""
    if start_date is None or finish_date is None:
        return "unknown"
    current: datetime = now or datetime.utcnow()
    if current < start_date:
        return "future"
    if current > finish_date:
        return "past"
    return "current"


def to_jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso8601(value)
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_jsonable(v) for v in value]
    return value


class CachedRecord(BaseModel):
    """Base for every cached entity: a natural id plus the store's write time."""

    last_updated: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return to_jsonable(self.model_dump())


# ---------------------------------------------------------------------------
# Entity records
# ---------------------------------------------------------------------------


class RepositoryRecord(CachedRecord):
    """A Git repository inside an Azure DevOps project."""

    id: str
    name: str
    project_id: str
    project_name: str
    organization: str
    default_branch: str | None = None
    size: int | None = None
    url: str | None = None
    web_url: str | None = None
    created_date: datetime | None = None


class ChangeCounts(BaseModel):
    """Files added / edited / deleted by a commit."""

    add: int = 0
    edit: int = 0
    delete: int = 0


class CommitRecord(CachedRecord):
    """A commit; ``id`` is ``f"{repository_id}-{commit_id}"``."""

    id: str
    commit_id: str
    repository_id: str
    author_name: str
    author_email: str
    author_date: datetime
    committer_name: str
    committer_email: str
    committer_date: datetime
    comment: str
    comment_truncated: bool = False
    change_counts: ChangeCounts = Field(default_factory=ChangeCounts)
    url: str | None = None
    remote_url: str | None = None

    @staticmethod
    def make_id(repository_id: str, commit_id: str) -> str:
        return f"{repository_id}-{commit_id}"


class WorkItemRecord(CachedRecord):
    """A work item (user story, task, bug, ...)."""

    id: int
    rev: int | None = None
    project_name: str
    area_path: str | None = None
    iteration_path: str | None = None
    work_item_type: str
    state: str
    reason: str | None = None
    title: str
    assigned_to_name: str | None = None
    assigned_to_email: str | None = None
    assigned_to_image_url: str | None = None
    created_date: datetime
    created_by_name: str | None = None
    created_by_email: str | None = None
    changed_date: datetime | None = None
    description: str | None = None
    acceptance_criteria: str | None = None
    story_points: float | None = None
    priority: int | None = None
    severity: str | None = None
    tags: list[str] = Field(default_factory=list)
    url: str | None = None


class Reviewer(BaseModel):
    """A pull request reviewer and their vote."""

    display_name: str
    email: str | None = None
    image_url: str | None = None
    vote: ReviewerVote = "no_vote"
    is_required: bool = False


class PullRequestRecord(CachedRecord):
    """A pull request; ``id`` is derived from repository id and PR number."""

    id: int
    repository_id: str
    pull_request_id: int
    code_review_id: int | None = None
    status: str
    title: str
    description: str | None = None
    source_ref_name: str
    target_ref_name: str
    merge_status: str | None = None
    is_draft: bool = False
    created_by_name: str
    created_by_email: str | None = None
    created_by_image_url: str | None = None
    creation_date: datetime
    reviewers: list[Reviewer] = Field(default_factory=list)
    work_item_ids: list[int] = Field(default_factory=list)
    url: str | None = None


class TeamMemberRecord(CachedRecord):
    """A user in the organization; ``id`` is ``f"{organization}:{project_name}:{descriptor}"``.

    Graph descriptors are organization-wide, so the scope prefix keeps one
    project's member list from overwriting another's.
    """

    id: str
    display_name: str
    email: str | None = None
    unique_name: str | None = None
    image_url: str | None = None
    project_name: str
    organization: str

    @staticmethod
    def make_id(organization: str, project: str, descriptor: str) -> str:
        return f"{organization}:{project}:{descriptor}"


class SprintRecord(CachedRecord):
    """An iteration with a date range.  ``state`` is derived on every read."""

    id: str
    name: str
    path: str
    project_name: str
    organization: str
    start_date: datetime | None = None
    finish_date: datetime | None = None
    attributes: dict[str, Any] | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def state(self) -> SprintState:
        return derive_sprint_state(self.start_date, self.finish_date)


RECORD_TYPES: dict[str, type[CachedRecord]] = {
    REPOSITORIES: RepositoryRecord,
    COMMITS: CommitRecord,
    WORK_ITEMS: WorkItemRecord,
    PULL_REQUESTS: PullRequestRecord,
    TEAM_MEMBERS: TeamMemberRecord,
    SPRINTS: SprintRecord,
}
