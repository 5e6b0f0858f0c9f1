"""
Azure DevOps connector: repositories, commits, work items, pull requests,
team members and sprints.

Authenticates with a Personal Access Token over HTTP Basic auth.  Every
``list_*`` call maps the raw REST payload onto the canonical records in
:mod:`connectors.models`; transport and HTTP errors are re-raised as
:class:`ConnectorError` so callers only need to handle one failure type.
"""
from __future__ import annotations

import base64
import logging
import re
import zlib
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from config import settings
from connectors.base import BaseConnector, ConnectorError, build_repository_insights
from connectors.models import (
    ChangeCounts,
    CommitRecord,
    PullRequestRecord,
    RepositoryRecord,
    Reviewer,
    ReviewerVote,
    SprintRecord,
    TeamMemberRecord,
    WorkItemRecord,
)

logger = logging.getLogger(__name__)

API_VERSION: str = "7.1"
# WIQL returns ids only; details are fetched in a single batch capped here
MAX_WORK_ITEMS: int = 200

_REVIEWER_VOTES: dict[int, ReviewerVote] = {
    10: "approved",
    5: "approved_with_suggestions",
    0: "no_vote",
    -5: "waiting",
    -10: "rejected",
}

# Azure DevOps emits 1 to 7 fractional digits; fromisoformat on 3.10 wants 3 or 6
_FRACTION_RE = re.compile(r"\.(\d+)")


def make_pull_request_id(repository_id: str, pull_request_number: int) -> int:
    """Stable integer id for a PR, unique across repositories in practice.

    PR numbers are only unique inside a repository, so a 4-digit prefix
    derived from the repository id is prepended.
    """
    prefix: int = zlib.crc32(repository_id.encode("utf-8")) % 10_000
    return prefix * 1_000_000 + pull_request_number


def map_reviewer_vote(vote: Any) -> ReviewerVote:
    """Translate the numeric reviewer vote to its label."""
    if isinstance(vote, int):
        return _REVIEWER_VOTES.get(vote, "no_vote")
    return "no_vote"


def split_tags(raw: str | None) -> list[str]:
    """``"AI; Safety;"`` -> ``["AI", "Safety"]``, order preserved."""
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(";") if tag.strip()]


def parse_ado_date(date_str: str | None) -> datetime | None:
    """Parse an Azure DevOps ISO-8601 date to a naive UTC datetime."""
    if not date_str:
        return None
    cleaned: str = _FRACTION_RE.sub(
        lambda match: "." + match.group(1)[:6].ljust(6, "0"),
        date_str.replace("Z", "+00:00"),
    )
    parsed: datetime = datetime.fromisoformat(cleaned)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class AzureDevOpsConnector(BaseConnector):
    """Connector for Azure DevOps Services (dev.azure.com)."""

    source_system: str = "azure_devops"

    def __init__(
        self,
        organization: str,
        project: str,
        pat: str,
        *,
        api_base: Optional[str] = None,
        vssps_base: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(organization, project)
        if not pat:
            raise ValueError("An Azure DevOps personal access token is required")
        self._pat = pat
        api_root: str = (api_base or settings.AZURE_DEVOPS_API_BASE).rstrip("/")
        vssps_root: str = (vssps_base or settings.AZURE_DEVOPS_VSSPS_BASE).rstrip("/")
        self.base_url: str = f"{api_root}/{organization}/{project}/_apis"
        self.graph_url: str = f"{vssps_root}/{organization}/_apis/graph/users"
        self._timeout: float = timeout or settings.REMOTE_TIMEOUT_SECONDS
        self._transport = transport

    # ── HTTP helpers ─────────────────────────────────────────────────────

    def _get_headers(self) -> dict[str, str]:
        token: str = base64.b64encode(f":{self._pat}".encode("utf-8")).decode("ascii")
        return {
            "Authorization": f"Basic {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _ado_get(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET from the Azure DevOps REST API. Returns parsed JSON."""
        request_params: dict[str, Any] = {"api-version": API_VERSION, **(params or {})}
        try:
            async with self._client() as client:
                resp: httpx.Response = await client.get(
                    url, headers=self._get_headers(), params=request_params
                )
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as exc:
            raise ConnectorError(
                f"Azure DevOps API error: {exc.response.status_code} {exc.response.reason_phrase}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ConnectorError(f"Azure DevOps request failed: {exc}") from exc

    async def _ado_post(
        self, url: str, payload: dict[str, Any], params: dict[str, Any] | None = None
    ) -> Any:
        """POST to the Azure DevOps REST API. Returns parsed JSON."""
        request_params: dict[str, Any] = {"api-version": API_VERSION, **(params or {})}
        try:
            async with self._client() as client:
                resp: httpx.Response = await client.post(
                    url, headers=self._get_headers(), params=request_params, json=payload
                )
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as exc:
            raise ConnectorError(
                f"Azure DevOps API error: {exc.response.status_code} {exc.response.reason_phrase}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ConnectorError(f"Azure DevOps request failed: {exc}") from exc

    # ── Repositories ─────────────────────────────────────────────────────

    async def list_repositories(self) -> list[RepositoryRecord]:
        data: dict[str, Any] = await self._ado_get(f"{self.base_url}/git/repositories")
        repos: list[RepositoryRecord] = []
        for repo in data.get("value", []):
            project: dict[str, Any] = repo.get("project") or {}
            repos.append(
                RepositoryRecord(
                    id=repo["id"],
                    name=repo["name"],
                    project_id=project.get("id", ""),
                    project_name=self.project,
                    organization=self.organization,
                    default_branch=repo.get("defaultBranch"),
                    size=repo.get("size"),
                    url=repo.get("url"),
                    web_url=repo.get("webUrl"),
                    created_date=parse_ado_date(project.get("lastUpdateTime")),
                )
            )
        return repos

    # ── Commits ──────────────────────────────────────────────────────────

    async def list_commits(
        self, repository_id: str, limit: int = 100, offset: int = 0
    ) -> list[CommitRecord]:
        data: dict[str, Any] = await self._ado_get(
            f"{self.base_url}/git/repositories/{repository_id}/commits",
            params={"$top": limit, "$skip": offset},
        )
        commits: list[CommitRecord] = []
        for c in data.get("value", []):
            author: dict[str, Any] = c.get("author") or {}
            committer: dict[str, Any] = c.get("committer") or {}
            counts: dict[str, Any] = c.get("changeCounts") or {}
            commits.append(
                CommitRecord(
                    id=CommitRecord.make_id(repository_id, c["commitId"]),
                    commit_id=c["commitId"],
                    repository_id=repository_id,
                    author_name=author.get("name", "Unknown"),
                    author_email=author.get("email", ""),
                    author_date=parse_ado_date(author.get("date")) or datetime.utcnow(),
                    committer_name=committer.get("name", "Unknown"),
                    committer_email=committer.get("email", ""),
                    committer_date=parse_ado_date(committer.get("date")) or datetime.utcnow(),
                    comment=c.get("comment", ""),
                    comment_truncated=bool(c.get("commentTruncated", False)),
                    change_counts=ChangeCounts(
                        add=counts.get("Add", 0),
                        edit=counts.get("Edit", 0),
                        delete=counts.get("Delete", 0),
                    ),
                    url=c.get("url"),
                    remote_url=c.get("remoteUrl"),
                )
            )
        return commits

    # ── Work items ───────────────────────────────────────────────────────

    def _build_wiql(self, iteration_path: Optional[str]) -> str:
        project: str = self.project.replace("'", "''")
        query: str = (
            f"SELECT [System.Id] FROM WorkItems WHERE [System.TeamProject] = '{project}'"
        )
        if iteration_path:
            path: str = iteration_path.replace("'", "''")
            query += f" AND [System.IterationPath] UNDER '{path}'"
        return query + " ORDER BY [System.ChangedDate] DESC"

    async def list_work_items(
        self, iteration_path: Optional[str] = None
    ) -> list[WorkItemRecord]:
        wiql: str = self._build_wiql(iteration_path)
        logger.debug("Executing WIQL query: %s", wiql)
        result: dict[str, Any] = await self._ado_post(
            f"{self.base_url}/wit/wiql", {"query": wiql}
        )

        refs: list[dict[str, Any]] = result.get("workItems") or []
        if not refs:
            logger.info("No work items found for project %s", self.project)
            return []

        ids: list[str] = [str(ref["id"]) for ref in refs[:MAX_WORK_ITEMS]]
        logger.info("Fetching details for %d work items", len(ids))
        data: dict[str, Any] = await self._ado_get(
            f"{self.base_url}/wit/workitems",
            params={"ids": ",".join(ids), "$expand": "Fields"},
        )

        items: list[WorkItemRecord] = []
        for wi in data.get("value", []):
            fields: dict[str, Any] = wi.get("fields") or {}
            assigned: dict[str, Any] = fields.get("System.AssignedTo") or {}
            created_by: dict[str, Any] = fields.get("System.CreatedBy") or {}
            items.append(
                WorkItemRecord(
                    id=wi["id"],
                    rev=wi.get("rev"),
                    project_name=self.project,
                    area_path=fields.get("System.AreaPath"),
                    iteration_path=fields.get("System.IterationPath"),
                    work_item_type=fields.get("System.WorkItemType", "Unknown"),
                    state=fields.get("System.State", "Unknown"),
                    reason=fields.get("System.Reason"),
                    title=fields.get("System.Title", ""),
                    assigned_to_name=assigned.get("displayName"),
                    assigned_to_email=assigned.get("uniqueName"),
                    assigned_to_image_url=(assigned.get("_links") or {}).get("avatar", {}).get("href"),
                    created_date=parse_ado_date(fields.get("System.CreatedDate")) or datetime.utcnow(),
                    created_by_name=created_by.get("displayName"),
                    created_by_email=created_by.get("uniqueName"),
                    changed_date=parse_ado_date(fields.get("System.ChangedDate")),
                    description=fields.get("System.Description"),
                    acceptance_criteria=fields.get("Microsoft.VSTS.Common.AcceptanceCriteria"),
                    story_points=fields.get("Microsoft.VSTS.Scheduling.StoryPoints"),
                    priority=fields.get("Microsoft.VSTS.Common.Priority", fields.get("System.Priority")),
                    severity=fields.get("Microsoft.VSTS.Common.Severity"),
                    tags=split_tags(fields.get("System.Tags")),
                    url=wi.get("url"),
                )
            )
        return items

    # ── Pull requests ────────────────────────────────────────────────────

    async def list_pull_requests(
        self, repository_id: str, status: str = "all"
    ) -> list[PullRequestRecord]:
        params: dict[str, Any] = {}
        if status and status != "all":
            params["searchCriteria.status"] = status
        data: dict[str, Any] = await self._ado_get(
            f"{self.base_url}/git/repositories/{repository_id}/pullrequests",
            params=params,
        )

        prs: list[PullRequestRecord] = []
        for pr in data.get("value", []):
            created_by: dict[str, Any] = pr.get("createdBy") or {}
            reviewers: list[Reviewer] = [
                Reviewer(
                    display_name=r.get("displayName", ""),
                    email=r.get("uniqueName"),
                    image_url=(r.get("_links") or {}).get("avatar", {}).get("href"),
                    vote=map_reviewer_vote(r.get("vote")),
                    is_required=bool(r.get("isRequired", False)),
                )
                for r in pr.get("reviewers") or []
            ]
            prs.append(
                PullRequestRecord(
                    id=make_pull_request_id(repository_id, pr["pullRequestId"]),
                    repository_id=repository_id,
                    pull_request_id=pr["pullRequestId"],
                    code_review_id=pr.get("codeReviewId"),
                    status=pr.get("status", "unknown"),
                    title=pr.get("title", ""),
                    description=pr.get("description"),
                    source_ref_name=pr.get("sourceRefName", ""),
                    target_ref_name=pr.get("targetRefName", ""),
                    merge_status=pr.get("mergeStatus"),
                    is_draft=bool(pr.get("isDraft", False)),
                    created_by_name=created_by.get("displayName", "Unknown"),
                    created_by_email=created_by.get("uniqueName"),
                    created_by_image_url=(created_by.get("_links") or {}).get("avatar", {}).get("href"),
                    creation_date=parse_ado_date(pr.get("creationDate")) or datetime.utcnow(),
                    reviewers=reviewers,
                    # Linked work items need a separate call per PR; not fetched during sync
                    work_item_ids=[],
                    url=pr.get("url"),
                )
            )
        return prs

    # ── Team members ─────────────────────────────────────────────────────

    async def list_team_members(self) -> list[TeamMemberRecord]:
        data: dict[str, Any] = await self._ado_get(
            self.graph_url, params={"api-version": f"{API_VERSION}-preview.1"}
        )
        return [
            TeamMemberRecord(
                id=TeamMemberRecord.make_id(self.organization, self.project, member["descriptor"]),
                display_name=member.get("displayName", ""),
                email=member.get("mailAddress"),
                unique_name=member.get("principalName"),
                image_url=(member.get("_links") or {}).get("avatar", {}).get("href"),
                project_name=self.project,
                organization=self.organization,
            )
            for member in data.get("value", [])
        ]

    # ── Sprints ──────────────────────────────────────────────────────────

    async def list_sprints(self) -> list[SprintRecord]:
        tree: dict[str, Any] = await self._ado_get(
            f"{self.base_url}/wit/classificationnodes/iterations",
            params={"$depth": 5, "api-version": "7.0"},
        )
        sprints: list[SprintRecord] = []
        self._collect_sprints(tree.get("children") or [], sprints)
        return sprints

    def _collect_sprints(
        self, nodes: list[dict[str, Any]], out: list[SprintRecord]
    ) -> None:
        """Depth-first walk; only nodes with both dates are sprints."""
        for node in nodes:
            attributes: dict[str, Any] = node.get("attributes") or {}
            if attributes.get("startDate") and attributes.get("finishDate"):
                out.append(
                    SprintRecord(
                        id=node.get("identifier") or str(node.get("id")),
                        name=node.get("name", ""),
                        path=node.get("path", ""),
                        project_name=self.project,
                        organization=self.organization,
                        start_date=parse_ado_date(attributes["startDate"]),
                        finish_date=parse_ado_date(attributes["finishDate"]),
                        attributes=attributes,
                    )
                )
            self._collect_sprints(node.get("children") or [], out)

    # ── Insights ─────────────────────────────────────────────────────────

    async def get_repository_insights(self, repository_id: str) -> dict[str, Any]:
        commits: list[CommitRecord] = await self.list_commits(repository_id, limit=10)
        pull_requests: list[PullRequestRecord] = await self.list_pull_requests(repository_id)
        branches: dict[str, Any] = await self._ado_get(
            f"{self.base_url}/git/repositories/{repository_id}/refs",
            params={"filter": "heads"},
        )
        return build_repository_insights(
            commits, pull_requests, total_branches=branches.get("count", 0)
        )


def create_connector(
    organization: str, project: str
) -> Optional[AzureDevOpsConnector]:
    """Build a connector from settings, or ``None`` when no PAT is configured."""
    if not settings.AZURE_DEVOPS_PAT_TOKEN:
        return None
    return AzureDevOpsConnector(organization, project, settings.AZURE_DEVOPS_PAT_TOKEN)
