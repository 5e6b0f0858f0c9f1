"""
Fixed demo dataset used when no Azure DevOps credential is configured.

Counts and field values are constant so repeated seeding yields the same
cache contents.  Ids are fixed per organization/project: string ids carry the
scope as a prefix and work item ids are offset by the project, so seeding one
scope never overwrites another scope's rows.  The only moving part is the
sprint window, which is placed around the current day so the dashboard always
has a current sprint.
"""
from __future__ import annotations

import zlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from connectors.azure_devops import make_pull_request_id
from connectors.models import (
    COMMITS,
    PULL_REQUESTS,
    REPOSITORIES,
    SPRINTS,
    TEAM_MEMBERS,
    WORK_ITEMS,
    CachedRecord,
    ChangeCounts,
    CommitRecord,
    PullRequestRecord,
    RepositoryRecord,
    Reviewer,
    SprintRecord,
    TeamMemberRecord,
    WorkItemRecord,
)


@dataclass
class DemoDataset:
    """One list of records per entity kind."""

    repositories: list[RepositoryRecord] = field(default_factory=list)
    commits: list[CommitRecord] = field(default_factory=list)
    work_items: list[WorkItemRecord] = field(default_factory=list)
    pull_requests: list[PullRequestRecord] = field(default_factory=list)
    team_members: list[TeamMemberRecord] = field(default_factory=list)
    sprints: list[SprintRecord] = field(default_factory=list)

    def by_kind(self) -> dict[str, list[CachedRecord]]:
        # Repositories first: commits and PRs reference them
        return {
            REPOSITORIES: list(self.repositories),
            SPRINTS: list(self.sprints),
            WORK_ITEMS: list(self.work_items),
            TEAM_MEMBERS: list(self.team_members),
            COMMITS: list(self.commits),
            PULL_REQUESTS: list(self.pull_requests),
        }


def demo_id(organization: str, project: str, local_id: str) -> str:
    """``demo_id("org", "proj", "demo-repo-1")`` -> ``"org:proj:demo-repo-1"``."""
    return f"{organization}:{project}:{local_id}"


def demo_work_item_id(project: str, number: int) -> int:
    # Work items are scoped by project name only
    return (zlib.crc32(project.encode("utf-8")) % 10_000) * 10_000 + number


def _sprint_window(now: datetime) -> tuple[datetime, datetime]:
    today: datetime = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return today - timedelta(days=7), today + timedelta(days=7, hours=23, minutes=59, seconds=59)


def generate_demo_data(
    organization: str, project: str, now: Optional[datetime] = None
) -> DemoDataset:
    """Build the demo dataset for an organization/project scope."""
    git_base: str = f"https://dev.azure.com/{organization}/{project}/_git"
    items_base: str = f"https://dev.azure.com/{organization}/{project}/_workitems/edit"
    sprint_path: str = f"{project}\\Sprint 68"
    frontend_id: str = demo_id(organization, project, "demo-repo-1")
    backend_id: str = demo_id(organization, project, "demo-repo-2")
    story_id, task_id, bug_id = (demo_work_item_id(project, n) for n in (1001, 1002, 1003))

    repositories = [
        RepositoryRecord(
            id=frontend_id,
            name="LifeSafety.ai-Frontend",
            project_id="demo-project-1",
            project_name=project,
            organization=organization,
            default_branch="refs/heads/main",
            size=15728640,
            url=f"{git_base}/LifeSafety.ai-Frontend",
            web_url=f"{git_base}/LifeSafety.ai-Frontend",
            created_date=datetime(2024, 1, 15, 10, 0),
        ),
        RepositoryRecord(
            id=backend_id,
            name="LifeSafety.ai-Backend",
            project_id="demo-project-1",
            project_name=project,
            organization=organization,
            default_branch="refs/heads/main",
            size=8945123,
            url=f"{git_base}/LifeSafety.ai-Backend",
            web_url=f"{git_base}/LifeSafety.ai-Backend",
            created_date=datetime(2024, 1, 10, 8, 30),
        ),
    ]

    work_items = [
        WorkItemRecord(
            id=story_id,
            rev=12,
            project_name=project,
            area_path=f"{project}\\AI Models",
            iteration_path=sprint_path,
            work_item_type="User Story",
            state="Active",
            reason="Implementation started",
            title="Implement real-time hazard detection using computer vision",
            assigned_to_name="Sarah Johnson",
            assigned_to_email="sarah.johnson@podtech.io",
            created_date=datetime(2024, 9, 30, 9, 15),
            created_by_name="Mike Chen",
            created_by_email="mike.chen@podtech.io",
            changed_date=datetime(2024, 10, 8, 14, 30),
            description="Develop computer vision models to detect potential safety hazards in real-time from camera feeds",
            acceptance_criteria="1. Model accuracy > 95%\n2. Real-time processing < 100ms\n3. Integration with alert system",
            story_points=13,
            priority=1,
            severity="High",
            tags=["AI", "Computer Vision", "Safety"],
            url=f"{items_base}/{story_id}",
        ),
        WorkItemRecord(
            id=task_id,
            rev=8,
            project_name=project,
            area_path=f"{project}\\Dashboard",
            iteration_path=sprint_path,
            work_item_type="Task",
            state="Done",
            reason="Completed",
            title="Create Azure DevOps metrics dashboard",
            assigned_to_name="Alex Rodriguez",
            assigned_to_email="alex.rodriguez@podtech.io",
            created_date=datetime(2024, 9, 28, 11, 0),
            created_by_name="Emily Davis",
            created_by_email="emily.davis@podtech.io",
            changed_date=datetime(2024, 10, 9, 16, 45),
            description="Build a comprehensive dashboard showing project metrics and team performance",
            acceptance_criteria="1. Display work items, commits, PRs\n2. Real-time data sync\n3. Responsive design",
            story_points=8,
            priority=2,
            severity="Medium",
            tags=["Dashboard", "Analytics", "UI"],
            url=f"{items_base}/{task_id}",
        ),
        WorkItemRecord(
            id=bug_id,
            rev=5,
            project_name=project,
            area_path=f"{project}\\Infrastructure",
            iteration_path=sprint_path,
            work_item_type="Bug",
            state="New",
            reason="Reported by QA",
            title="Database connection timeouts in production",
            assigned_to_name="David Kim",
            assigned_to_email="david.kim@podtech.io",
            created_date=datetime(2024, 10, 7, 13, 20),
            created_by_name="QA Team",
            created_by_email="qa@podtech.io",
            changed_date=datetime(2024, 10, 9, 10, 15),
            description="Users experiencing intermittent database connection timeouts during peak hours",
            acceptance_criteria="1. Identify root cause\n2. Implement fix\n3. Load test to verify",
            story_points=5,
            priority=1,
            severity="Critical",
            tags=["Database", "Performance", "Production"],
            url=f"{items_base}/{bug_id}",
        ),
    ]

    commits = [
        CommitRecord(
            id=CommitRecord.make_id(frontend_id, "abc123def456"),
            commit_id="abc123def456",
            repository_id=frontend_id,
            author_name="Sarah Johnson",
            author_email="sarah.johnson@podtech.io",
            author_date=datetime(2024, 10, 9, 15, 30),
            committer_name="Sarah Johnson",
            committer_email="sarah.johnson@podtech.io",
            committer_date=datetime(2024, 10, 9, 15, 30),
            comment="feat: implement hazard detection model training pipeline",
            change_counts=ChangeCounts(add=15, edit=3, delete=1),
            url=f"{git_base}/LifeSafety.ai-Frontend/commit/abc123def456",
            remote_url=f"{git_base}/LifeSafety.ai-Frontend",
        ),
        CommitRecord(
            id=CommitRecord.make_id(backend_id, "def789ghi012"),
            commit_id="def789ghi012",
            repository_id=backend_id,
            author_name="Alex Rodriguez",
            author_email="alex.rodriguez@podtech.io",
            author_date=datetime(2024, 10, 9, 14, 15),
            committer_name="Alex Rodriguez",
            committer_email="alex.rodriguez@podtech.io",
            committer_date=datetime(2024, 10, 9, 14, 15),
            comment="fix: optimize database connection pooling",
            change_counts=ChangeCounts(add=8, edit=12, delete=4),
            url=f"{git_base}/LifeSafety.ai-Backend/commit/def789ghi012",
            remote_url=f"{git_base}/LifeSafety.ai-Backend",
        ),
    ]

    pull_requests = [
        PullRequestRecord(
            id=make_pull_request_id(frontend_id, 42),
            repository_id=frontend_id,
            pull_request_id=42,
            code_review_id=1542,
            status="active",
            title="Add computer vision hazard detection models",
            description="This PR implements the core computer vision models for real-time hazard detection",
            source_ref_name="refs/heads/feature/hazard-detection",
            target_ref_name="refs/heads/main",
            merge_status="succeeded",
            created_by_name="Sarah Johnson",
            created_by_email="sarah.johnson@podtech.io",
            creation_date=datetime(2024, 10, 8, 10, 30),
            reviewers=[
                Reviewer(
                    display_name="Mike Chen",
                    email="mike.chen@podtech.io",
                    vote="approved",
                    is_required=True,
                ),
                Reviewer(
                    display_name="Emily Davis",
                    email="emily.davis@podtech.io",
                    vote="waiting",
                ),
            ],
            work_item_ids=[story_id],
            url=f"{git_base}/LifeSafety.ai-Frontend/pullrequest/42",
        ),
    ]

    team_members = [
        TeamMemberRecord(
            id=TeamMemberRecord.make_id(organization, project, member_id),
            display_name=name,
            email=email,
            unique_name=email,
            project_name=project,
            organization=organization,
        )
        for member_id, name, email in (
            ("member-1", "Sarah Johnson", "sarah.johnson@podtech.io"),
            ("member-2", "Alex Rodriguez", "alex.rodriguez@podtech.io"),
            ("member-3", "Mike Chen", "mike.chen@podtech.io"),
        )
    ]

    start, finish = _sprint_window(now or datetime.utcnow())
    sprints = [
        SprintRecord(
            id=demo_id(organization, project, "sprint-68"),
            name="Sprint 68",
            path=sprint_path,
            project_name=project,
            organization=organization,
            start_date=start,
            finish_date=finish,
            attributes={
                "startDate": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "finishDate": finish.strftime("%Y-%m-%dT%H:%M:%SZ"),
            },
        ),
    ]

    return DemoDataset(
        repositories=repositories,
        commits=commits,
        work_items=work_items,
        pull_requests=pull_requests,
        team_members=team_members,
        sprints=sprints,
    )
