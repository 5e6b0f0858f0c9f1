"""
Aggregations over cached data.

Pure functions take record lists; the ``async`` helpers read from a
:class:`services.storage.Storage` first.  Nothing here calls the remote API.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Literal, Optional

from connectors.models import (
    CommitRecord,
    RepositoryRecord,
    SprintRecord,
    WorkItemRecord,
    derive_sprint_state,
)
from services.storage import Storage

logger = logging.getLogger(__name__)

StateCategory = Literal["completed", "inProgress", "blocked"]

# Checked in order; the first category with a matching substring wins
STATE_CATEGORIES: tuple[tuple[StateCategory, tuple[str, ...]], ...] = (
    ("completed", ("done", "closed", "resolved")),
    ("inProgress", ("active", "progress", "committed")),
    ("blocked", ("blocked", "removed")),
)


def classify_work_item_state(state: str) -> Optional[StateCategory]:
    """Map a free-form work item state onto a dashboard category (or ``None``)."""
    lowered: str = state.lower()
    for category, needles in STATE_CATEGORIES:
        if any(needle in lowered for needle in needles):
            return category
    return None


def work_item_stats(items: list[WorkItemRecord]) -> dict[str, Any]:
    """Totals per category plus counts by type and by state."""
    counts: dict[str, int] = {"completed": 0, "inProgress": 0, "blocked": 0}
    by_type: dict[str, int] = {}
    by_state: dict[str, int] = {}

    for item in items:
        by_type[item.work_item_type] = by_type.get(item.work_item_type, 0) + 1
        by_state[item.state] = by_state.get(item.state, 0) + 1
        category = classify_work_item_state(item.state)
        if category is not None:
            counts[category] += 1

    return {
        "total": len(items),
        "completed": counts["completed"],
        "in_progress": counts["inProgress"],
        "blocked": counts["blocked"],
        "by_type": [{"type": t, "count": c} for t, c in by_type.items()],
        "by_state": [{"state": s, "count": c} for s, c in by_state.items()],
    }


def find_current_sprint(
    sprints: list[SprintRecord], now: Optional[datetime] = None
) -> Optional[SprintRecord]:
    current: datetime = now or datetime.utcnow()
    for sprint in sprints:
        if derive_sprint_state(sprint.start_date, sprint.finish_date, current) == "current":
            return sprint
    return None


def commit_stats(
    commits: list[CommitRecord], days: int = 30, now: Optional[datetime] = None
) -> dict[str, Any]:
    """Contributor and per-day activity for commits authored in the last ``days`` days."""
    since: datetime = (now or datetime.utcnow()) - timedelta(days=days)
    recent: list[CommitRecord] = sorted(
        (c for c in commits if c.author_date >= since),
        key=lambda c: c.author_date,
        reverse=True,
    )

    contributors: dict[tuple[str, str], dict[str, Any]] = {}
    by_day: dict[str, int] = {}
    for commit in recent:
        key = (commit.author_name, commit.author_email)
        entry = contributors.setdefault(
            key,
            {
                "name": commit.author_name,
                "email": commit.author_email,
                "commit_count": 0,
                "lines_added": 0,
                "lines_deleted": 0,
            },
        )
        entry["commit_count"] += 1
        entry["lines_added"] += commit.change_counts.add
        entry["lines_deleted"] += commit.change_counts.delete

        day: str = commit.author_date.date().isoformat()
        by_day[day] = by_day.get(day, 0) + 1

    top: list[dict[str, Any]] = sorted(
        contributors.values(), key=lambda c: c["commit_count"], reverse=True
    )[:10]

    return {
        "total_commits": len(recent),
        "contributors_count": len(contributors),
        "top_contributors": top,
        "commits_by_day": [{"date": d, "count": by_day[d]} for d in sorted(by_day)],
        "recent_commits": [c.to_dict() for c in recent[:10]],
    }


async def commit_analytics(
    storage: Storage, repository_id: str, days: int = 30, now: Optional[datetime] = None
) -> dict[str, Any]:
    end: datetime = now or datetime.utcnow()
    commits: list[CommitRecord] = await storage.get_commits_by_date_range(
        repository_id, end - timedelta(days=days), end
    )
    return commit_stats(commits, days=days, now=end)


async def current_sprint(
    storage: Storage, organization: str, project: str, now: Optional[datetime] = None
) -> Optional[SprintRecord]:
    return find_current_sprint(await storage.get_sprints(organization, project), now)


async def build_dashboard(
    storage: Storage, organization: str, project: str, now: Optional[datetime] = None
) -> dict[str, Any]:
    """Summary payload for the dashboard's landing view."""
    repositories: list[RepositoryRecord]
    work_items: list[WorkItemRecord]
    sprints: list[SprintRecord]
    repositories, work_items, sprints = await asyncio.gather(
        storage.get_repositories(organization, project),
        storage.get_work_items(project),
        storage.get_sprints(organization, project),
    )

    stats: dict[str, Any] = work_item_stats(work_items)
    sprint: Optional[SprintRecord] = find_current_sprint(sprints, now)

    return {
        "organization": organization,
        "project": project,
        "metrics": {
            "total_work_items": stats["total"],
            "completed_work_items": stats["completed"],
            "in_progress_work_items": stats["in_progress"],
            "blocked_work_items": stats["blocked"],
            "total_repositories": len(repositories),
            "total_sprints": len(sprints),
        },
        "current_sprint": sprint.to_dict() if sprint is not None else None,
        "work_items_by_type": stats["by_type"],
        "work_items_by_state": stats["by_state"],
        "recent_work_items": [w.to_dict() for w in work_items[:10]],
        "repositories": [r.to_dict() for r in repositories[:5]],
    }
