import asyncio
from datetime import datetime, timedelta

from connectors.base import BaseConnector, ConnectorError
from connectors.demo import demo_id, generate_demo_data
from connectors.models import (
    CommitRecord,
    PullRequestRecord,
    RepositoryRecord,
    SprintRecord,
    TeamMemberRecord,
    WorkItemRecord,
)
from services.cache_tracker import CacheFreshnessTracker
from services.storage import MemoryStorage
from services.sync_orchestrator import SyncOrchestrator


T0 = datetime(2024, 10, 9, 12, 0, 0)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current


class FakeConnector(BaseConnector):
    """Serves a fixed dataset; ``failing`` names list methods that raise."""

    source_system = "fake"

    def __init__(self, failing: tuple[str, ...] = (), work_item_count: int = 5) -> None:
        super().__init__("org", "proj")
        self.failing = failing
        self.work_item_count = work_item_count
        self.calls: list[str] = []
        self.demo = generate_demo_data("org", "proj", now=T0)

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise ConnectorError(f"{name} failed: 401 Unauthorized")

    async def list_repositories(self) -> list[RepositoryRecord]:
        self._check("list_repositories")
        return list(self.demo.repositories)

    async def list_commits(self, repository_id, limit=100, offset=0) -> list[CommitRecord]:
        self._check("list_commits")
        if f"list_commits:{repository_id}" in self.failing:
            raise ConnectorError("timeout")
        return [c for c in self.demo.commits if c.repository_id == repository_id]

    async def list_work_items(self, iteration_path=None) -> list[WorkItemRecord]:
        self._check("list_work_items")
        template = self.demo.work_items[0]
        return [
            template.model_copy(update={"id": 5000 + i}) for i in range(self.work_item_count)
        ]

    async def list_pull_requests(self, repository_id, status="all") -> list[PullRequestRecord]:
        self._check("list_pull_requests")
        return [p for p in self.demo.pull_requests if p.repository_id == repository_id]

    async def list_team_members(self) -> list[TeamMemberRecord]:
        self._check("list_team_members")
        return list(self.demo.team_members)

    async def list_sprints(self) -> list[SprintRecord]:
        self._check("list_sprints")
        return list(self.demo.sprints)


class RepositoriesOnlyConnector(FakeConnector):
    async def list_commits(self, repository_id, limit=100, offset=0) -> list[CommitRecord]:
        self._check("list_commits")
        return []

    async def list_pull_requests(self, repository_id, status="all") -> list[PullRequestRecord]:
        self._check("list_pull_requests")
        return []


def _orchestrator(connector: BaseConnector | None, clock: FakeClock | None = None) -> SyncOrchestrator:
    tracker = CacheFreshnessTracker(clock=clock or FakeClock(T0))
    return SyncOrchestrator(storage=MemoryStorage(), tracker=tracker, connector=connector)


def test_team_member_failure_is_isolated() -> None:
    connector = RepositoriesOnlyConnector(failing=("list_team_members",))
    orchestrator = _orchestrator(connector)

    report = asyncio.run(orchestrator.sync("org", "proj", force=True))

    assert report.success is True
    assert report.ran_sync is True
    assert report.counts.model_dump() == {
        "repositories": 2,
        "sprints": 1,
        "work_items": 5,
        "team_members": 0,
        "commits": 0,
        "pull_requests": 0,
    }
    assert orchestrator.tracker.get("teamMembers", "org", "proj") is None
    assert orchestrator.tracker.get("repositories", "org", "proj") == T0


def test_every_sub_sync_failing_still_reports_success() -> None:
    connector = FakeConnector(
        failing=(
            "list_repositories",
            "list_sprints",
            "list_work_items",
            "list_team_members",
        )
    )
    report = asyncio.run(_orchestrator(connector).sync("org", "proj", force=True))

    assert report.success is True
    assert report.counts.model_dump() == {
        "repositories": 0,
        "sprints": 0,
        "work_items": 0,
        "team_members": 0,
        "commits": 0,
        "pull_requests": 0,
    }


def test_per_repository_failures_do_not_stop_the_loop() -> None:
    frontend_id = demo_id("org", "proj", "demo-repo-1")
    connector = FakeConnector(failing=(f"list_commits:{frontend_id}",))
    orchestrator = _orchestrator(connector)

    report = asyncio.run(orchestrator.sync("org", "proj", force=True))

    assert report.counts.commits == 1
    assert report.counts.pull_requests == 1
    assert orchestrator.tracker.get("commits", "org", "proj") == T0
    assert orchestrator.tracker.get("pullRequests", "org", "proj") == T0
    stored = asyncio.run(orchestrator.storage.get_commits(demo_id("org", "proj", "demo-repo-2")))
    assert [c.commit_id for c in stored] == ["def789ghi012"]


def test_fresh_cache_skips_remote_calls() -> None:
    clock = FakeClock(T0)
    connector = FakeConnector()
    orchestrator = _orchestrator(connector, clock)

    asyncio.run(orchestrator.sync("org", "proj"))
    calls_after_first = len(connector.calls)

    clock.current = T0 + timedelta(minutes=4)
    report = asyncio.run(orchestrator.sync("org", "proj"))

    assert report.ran_sync is False
    assert report.last_synced_at == "2024-10-09T12:00:00Z"
    assert len(connector.calls) == calls_after_first


def test_force_bypasses_freshness_and_is_idempotent() -> None:
    connector = FakeConnector()
    orchestrator = _orchestrator(connector)

    first = asyncio.run(orchestrator.sync("org", "proj", force=True))
    second = asyncio.run(orchestrator.sync("org", "proj", force=True))

    assert second.ran_sync is True
    assert first.counts == second.counts
    assert connector.calls.count("list_repositories") == 2
    assert len(asyncio.run(orchestrator.storage.get_repositories("org", "proj"))) == 2


def test_stale_cache_resyncs_after_ttl() -> None:
    clock = FakeClock(T0)
    connector = FakeConnector()
    orchestrator = _orchestrator(connector, clock)

    asyncio.run(orchestrator.sync("org", "proj"))
    clock.current = T0 + timedelta(minutes=5)
    report = asyncio.run(orchestrator.sync("org", "proj"))

    assert report.ran_sync is True
    assert connector.calls.count("list_repositories") == 2


def test_demo_fallback_is_deterministic_and_does_not_accumulate() -> None:
    orchestrator = _orchestrator(None)

    first = asyncio.run(orchestrator.sync("org", "proj", force=True))
    second = asyncio.run(orchestrator.sync("org", "proj", force=True))

    assert first.source == second.source == "demo"
    assert first.counts == second.counts
    assert first.counts.model_dump() == {
        "repositories": 2,
        "sprints": 1,
        "work_items": 3,
        "team_members": 3,
        "commits": 2,
        "pull_requests": 1,
    }
    storage = orchestrator.storage
    assert len(asyncio.run(storage.get_repositories("org", "proj"))) == 2
    assert len(asyncio.run(storage.get_work_items("proj"))) == 3
    assert all(
        orchestrator.tracker.get(kind, "org", "proj") == T0
        for kind in ("repositories", "commits", "workItems", "pullRequests", "teamMembers", "sprints")
    )


def test_demo_seeding_keeps_other_scopes_intact() -> None:
    orchestrator = _orchestrator(None)
    storage = orchestrator.storage

    asyncio.run(orchestrator.sync("orgA", "projA", force=True))
    asyncio.run(orchestrator.sync("orgB", "projB", force=True))

    for organization, project in (("orgA", "projA"), ("orgB", "projB")):
        assert len(asyncio.run(storage.get_repositories(organization, project))) == 2
        assert len(asyncio.run(storage.get_team_members(organization, project))) == 3
        assert len(asyncio.run(storage.get_sprints(organization, project))) == 1
        assert len(asyncio.run(storage.get_work_items(project))) == 3
        assert orchestrator.is_stale("repositories", organization, project) is False

    first_repo = demo_id("orgA", "projA", "demo-repo-1")
    assert len(asyncio.run(storage.get_commits(first_repo))) == 1
    assert len(asyncio.run(storage.get_pull_requests(first_repo))) == 1


def test_demo_fallback_respects_freshness_gate() -> None:
    orchestrator = _orchestrator(None)
    asyncio.run(orchestrator.sync("org", "proj"))

    report = asyncio.run(orchestrator.sync("org", "proj"))

    assert report.ran_sync is False


def test_clear_cache_drops_data_and_timestamps() -> None:
    orchestrator = _orchestrator(None)
    asyncio.run(orchestrator.sync("org", "proj"))

    asyncio.run(orchestrator.clear_cache("org", "proj"))

    assert asyncio.run(orchestrator.storage.get_repositories("org", "proj")) == []
    assert orchestrator.is_stale("repositories", "org", "proj") is True
    status = orchestrator.sync_status("org", "proj")
    assert status["entities"]["repositories"] == {"last_synced_at": None, "is_stale": True}


def test_connector_factory_is_used_per_scope() -> None:
    seen: list[tuple[str, str]] = []

    def factory(organization: str, project: str):
        seen.append((organization, project))
        return None

    orchestrator = SyncOrchestrator(
        storage=MemoryStorage(),
        tracker=CacheFreshnessTracker(clock=FakeClock(T0)),
        connector_factory=factory,
    )
    report = asyncio.run(orchestrator.sync("org2", "proj2"))

    assert seen == [("org2", "proj2")]
    assert report.source == "demo"


def test_explicit_zero_ttl_and_commit_limit_are_kept() -> None:
    orchestrator = SyncOrchestrator(
        storage=MemoryStorage(),
        tracker=CacheFreshnessTracker(clock=FakeClock(T0)),
        ttl=timedelta(0),
        commit_limit=0,
    )

    assert orchestrator.ttl == timedelta(0)
    assert orchestrator.commit_limit == 0

    asyncio.run(orchestrator.sync("org", "proj"))
    report = asyncio.run(orchestrator.sync("org", "proj"))
    assert report.ran_sync is True


def test_sync_status_reports_tracker_snapshot() -> None:
    clock = FakeClock(T0)
    orchestrator = _orchestrator(RepositoriesOnlyConnector(failing=("list_team_members",)), clock)
    asyncio.run(orchestrator.sync("org", "proj"))
    clock.current = T0 + timedelta(minutes=1)

    status = orchestrator.sync_status("org", "proj")

    assert status["organization"] == "org"
    assert set(status["entities"]) == set(orchestrator.tracker.snapshot("org", "proj"))
    assert status["entities"]["repositories"] == {
        "last_synced_at": "2024-10-09T12:00:00Z",
        "is_stale": False,
    }
    assert status["entities"]["teamMembers"] == {"last_synced_at": None, "is_stale": True}
