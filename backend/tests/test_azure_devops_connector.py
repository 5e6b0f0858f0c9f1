import asyncio
import base64
import json
from datetime import datetime

import httpx
import pytest

from connectors.azure_devops import (
    MAX_WORK_ITEMS,
    AzureDevOpsConnector,
    create_connector,
    make_pull_request_id,
    map_reviewer_vote,
    parse_ado_date,
    split_tags,
)
from connectors.base import ConnectorError


API = "https://dev.azure.com/org/proj/_apis"


def _connector(handler, project: str = "proj") -> AzureDevOpsConnector:
    return AzureDevOpsConnector(
        "org",
        project,
        "secret-pat",
        api_base="https://dev.azure.com",
        vssps_base="https://vssps.dev.azure.com",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


def test_requests_use_basic_auth_and_api_version() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"value": []})

    asyncio.run(_connector(handler).list_repositories())

    request = seen[0]
    assert str(request.url).startswith(f"{API}/git/repositories")
    assert request.url.params["api-version"] == "7.1"
    expected = base64.b64encode(b":secret-pat").decode("ascii")
    assert request.headers["Authorization"] == f"Basic {expected}"


def test_list_repositories_maps_fields() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "value": [
                    {
                        "id": "repo-guid",
                        "name": "Frontend",
                        "project": {"id": "proj-guid", "name": "proj"},
                        "defaultBranch": "refs/heads/main",
                        "size": 1024,
                        "url": "https://api/repo",
                        "webUrl": "https://web/repo",
                    }
                ]
            },
        )

    repos = asyncio.run(_connector(handler).list_repositories())

    assert len(repos) == 1
    assert repos[0].id == "repo-guid"
    assert repos[0].organization == "org"
    assert repos[0].project_id == "proj-guid"
    assert repos[0].default_branch == "refs/heads/main"


def test_list_commits_maps_change_counts_and_paging() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "value": [
                    {
                        "commitId": "abc123",
                        "author": {"name": "Sarah", "email": "s@x.io", "date": "2024-10-09T15:30:00Z"},
                        "committer": {"name": "Sarah", "email": "s@x.io", "date": "2024-10-09T15:30:00Z"},
                        "comment": "feat: thing",
                        "changeCounts": {"Add": 3, "Edit": 2, "Delete": 1},
                        "remoteUrl": "https://web/commit/abc123",
                    }
                ]
            },
        )

    commits = asyncio.run(_connector(handler).list_commits("r1", limit=50, offset=10))

    assert seen[0].url.params["$top"] == "50"
    assert seen[0].url.params["$skip"] == "10"
    commit = commits[0]
    assert commit.id == "r1-abc123"
    assert commit.author_date == datetime(2024, 10, 9, 15, 30)
    assert (commit.change_counts.add, commit.change_counts.edit, commit.change_counts.delete) == (3, 2, 1)


def test_list_work_items_runs_wiql_then_fetches_capped_batch() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/wit/wiql"):
            return httpx.Response(200, json={"workItems": [{"id": i} for i in range(1, 251)]})
        return httpx.Response(
            200,
            json={
                "value": [
                    {
                        "id": 1,
                        "rev": 3,
                        "fields": {
                            "System.WorkItemType": "Bug",
                            "System.State": "Active",
                            "System.Title": "Broken",
                            "System.IterationPath": "O'Brien\\Sprint 1",
                            "System.AssignedTo": {
                                "displayName": "Sarah",
                                "uniqueName": "s@x.io",
                                "_links": {"avatar": {"href": "https://avatar"}},
                            },
                            "System.CreatedDate": "2024-10-01T09:00:00.1234567Z",
                            "System.Tags": "AI; Safety ;",
                            "Microsoft.VSTS.Scheduling.StoryPoints": 5,
                            "Microsoft.VSTS.Common.Priority": 2,
                        },
                    }
                ]
            },
        )

    connector = _connector(handler, project="O'Brien")
    items = asyncio.run(connector.list_work_items(iteration_path="O'Brien\\Sprint 1"))

    query = json.loads(seen[0].content)["query"]
    assert "[System.TeamProject] = 'O''Brien'" in query
    assert "[System.IterationPath] UNDER 'O''Brien\\Sprint 1'" in query
    assert query.endswith("ORDER BY [System.ChangedDate] DESC")

    ids = seen[1].url.params["ids"].split(",")
    assert len(ids) == MAX_WORK_ITEMS
    assert seen[1].url.params["$expand"] == "Fields"

    item = items[0]
    assert item.tags == ["AI", "Safety"]
    assert item.assigned_to_image_url == "https://avatar"
    assert item.created_date == datetime(2024, 10, 1, 9, 0, 0, 123456)
    assert item.story_points == 5
    assert item.priority == 2


def test_list_work_items_with_no_results_skips_detail_call() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"workItems": []})

    assert asyncio.run(_connector(handler).list_work_items()) == []
    assert len(seen) == 1


def test_list_pull_requests_maps_reviewers_and_derives_id() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "value": [
                    {
                        "pullRequestId": 42,
                        "status": "active",
                        "title": "Add models",
                        "sourceRefName": "refs/heads/feature",
                        "targetRefName": "refs/heads/main",
                        "createdBy": {"displayName": "Sarah"},
                        "creationDate": "2024-10-08T10:30:00Z",
                        "reviewers": [
                            {"displayName": "Mike", "vote": 10, "isRequired": True},
                            {"displayName": "Emily", "vote": -5},
                            {"displayName": "Bot", "vote": 7},
                        ],
                    }
                ]
            },
        )

    prs = asyncio.run(_connector(handler).list_pull_requests("repo-guid", status="active"))

    assert seen[0].url.params["searchCriteria.status"] == "active"
    pr = prs[0]
    assert pr.id == make_pull_request_id("repo-guid", 42)
    assert [r.vote for r in pr.reviewers] == ["approved", "waiting", "no_vote"]
    assert pr.reviewers[0].is_required is True


def test_list_pull_requests_all_sends_no_status_filter() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"value": []})

    asyncio.run(_connector(handler).list_pull_requests("repo-guid"))

    assert "searchCriteria.status" not in seen[0].url.params


def test_list_team_members_uses_graph_endpoint() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "value": [
                    {
                        "descriptor": "aad.abc",
                        "displayName": "Sarah",
                        "mailAddress": "s@x.io",
                        "principalName": "s@x.io",
                    }
                ]
            },
        )

    members = asyncio.run(_connector(handler).list_team_members())

    assert seen[0].url.host == "vssps.dev.azure.com"
    assert seen[0].url.path == "/org/_apis/graph/users"
    assert seen[0].url.params["api-version"] == "7.1-preview.1"
    assert members[0].id == "org:proj:aad.abc"
    assert members[0].project_name == "proj"


def test_list_sprints_walks_nested_iterations() -> None:
    tree = {
        "name": "proj",
        "children": [
            {
                "id": 10,
                "name": "Release 1",
                "path": "\\proj\\Iteration\\Release 1",
                "children": [
                    {
                        "id": 11,
                        "identifier": "guid-11",
                        "name": "Sprint 1",
                        "path": "\\proj\\Iteration\\Release 1\\Sprint 1",
                        "attributes": {
                            "startDate": "2024-09-30T00:00:00Z",
                            "finishDate": "2024-10-13T00:00:00Z",
                        },
                    },
                    {"id": 12, "name": "Unscheduled", "attributes": {"startDate": "2024-10-14T00:00:00Z"}},
                ],
            },
            {
                "id": 20,
                "name": "Sprint 2",
                "path": "\\proj\\Iteration\\Sprint 2",
                "attributes": {
                    "startDate": "2024-10-14T00:00:00Z",
                    "finishDate": "2024-10-27T00:00:00Z",
                },
            },
        ],
    }
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=tree)

    sprints = asyncio.run(_connector(handler).list_sprints())

    assert seen[0].url.params["api-version"] == "7.0"
    assert seen[0].url.params["$depth"] == "5"
    assert [s.id for s in sprints] == ["guid-11", "20"]
    assert sprints[0].start_date == datetime(2024, 9, 30)


def test_http_errors_become_connector_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "unauthorized"})

    with pytest.raises(ConnectorError, match="401"):
        asyncio.run(_connector(handler).list_repositories())


def test_transport_errors_become_connector_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(ConnectorError):
        asyncio.run(_connector(handler).list_team_members())


def test_repository_insights_merge_activity() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/commits"):
            return httpx.Response(
                200,
                json={
                    "value": [
                        {
                            "commitId": "c1",
                            "author": {"name": "Sarah", "date": "2024-10-09T15:30:00Z"},
                            "committer": {"name": "Sarah", "date": "2024-10-09T15:30:00Z"},
                            "comment": "fix",
                        }
                    ]
                },
            )
        if path.endswith("/pullrequests"):
            return httpx.Response(
                200,
                json={
                    "value": [
                        {
                            "pullRequestId": 1,
                            "status": "active",
                            "title": "PR",
                            "sourceRefName": "a",
                            "targetRefName": "b",
                            "createdBy": {"displayName": "Alex"},
                            "creationDate": "2024-10-10T08:00:00Z",
                        }
                    ]
                },
            )
        return httpx.Response(200, json={"count": 4, "value": []})

    insights = asyncio.run(_connector(handler).get_repository_insights("r1"))

    assert insights["total_commits"] == 1
    assert insights["total_branches"] == 4
    assert insights["total_pull_requests"] == 1
    assert [a["type"] for a in insights["recent_activity"]] == ["pullrequest", "commit"]


def test_helpers() -> None:
    assert map_reviewer_vote(5) == "approved_with_suggestions"
    assert map_reviewer_vote(-10) == "rejected"
    assert map_reviewer_vote(0) == "no_vote"
    assert map_reviewer_vote(None) == "no_vote"
    assert split_tags(None) == []
    assert split_tags("a;b") == ["a", "b"]
    assert parse_ado_date(None) is None
    assert parse_ado_date("2024-10-09T17:30:00+02:00") == datetime(2024, 10, 9, 15, 30)

    first = make_pull_request_id("repo-a", 42)
    assert first % 1_000_000 == 42
    assert first == make_pull_request_id("repo-a", 42)
    assert make_pull_request_id("repo-a", 43) != first


def test_create_connector_requires_pat(monkeypatch) -> None:
    from config import settings

    monkeypatch.setattr(settings, "AZURE_DEVOPS_PAT_TOKEN", None)
    assert create_connector("org", "proj") is None

    monkeypatch.setattr(settings, "AZURE_DEVOPS_PAT_TOKEN", "pat")
    connector = create_connector("org", "proj")
    assert isinstance(connector, AzureDevOpsConnector)
    assert connector.base_url == "https://dev.azure.com/org/proj/_apis"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-10-09T15:30:12.4Z", datetime(2024, 10, 9, 15, 30, 12, 400000)),
        ("2024-10-09T15:30:12.45Z", datetime(2024, 10, 9, 15, 30, 12, 450000)),
        ("2024-10-09T15:30:12.4567Z", datetime(2024, 10, 9, 15, 30, 12, 456700)),
        ("2024-10-09T15:30:12.45678Z", datetime(2024, 10, 9, 15, 30, 12, 456780)),
        ("2024-10-09T15:30:12.1234567Z", datetime(2024, 10, 9, 15, 30, 12, 123456)),
        ("2024-10-09T15:30:12Z", datetime(2024, 10, 9, 15, 30, 12)),
    ],
)
def test_parse_ado_date_accepts_any_fraction_length(raw: str, expected: datetime) -> None:
    assert parse_ado_date(raw) == expected
