"""JQL search helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from jira_confluence.jira.formatting import build_clean_issue
from jira_confluence.jira.models import CleanIssue, JiraSearchResult

if TYPE_CHECKING:
    from jira_confluence.jira.client import JiraClient

DEFAULT_LIMIT = 50
DEFAULT_FIELDS = (
    "summary",
    "description",
    "issuetype",
    "status",
    "priority",
    "assignee",
    "reporter",
    "project",
    "labels",
    "created",
    "updated",
    "duedate",
    "fixVersions",
    "comment",
)


def escape_jql_text(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("'", "\\'")


@dataclass(frozen=True)
class CleanSearchResult:
    issues: list[CleanIssue]
    total: int
    start_at: int
    max_results: int


class SearchService:
    """Build common JQL queries and run them with sensible defaults."""

    def __init__(
        self,
        client: JiraClient,
        base_url: str | None = None,
        default_limit: int = DEFAULT_LIMIT,
    ) -> None:
        self._client = client
        self._base_url = base_url
        self._default_limit = default_limit

    async def search_by_jql(
        self,
        jql: str,
        limit: int | None = None,
        start_at: int | None = None,
        fields: list[str] | None = None,
        expand: list[str] | None = None,
    ) -> JiraSearchResult:
        return await self._client.search(
            jql,
            max_results=limit if limit is not None else self._default_limit,
            start_at=start_at,
            fields=fields if fields is not None else list(DEFAULT_FIELDS),
            expand=expand,
        )

    async def search_by_text(
        self, text: str, limit: int | None = None, start_at: int | None = None
    ) -> JiraSearchResult:
        jql = f'text ~ "{escape_jql_text(text)}" ORDER BY updated DESC'
        return await self.search_by_jql(jql, limit=limit, start_at=start_at)

    async def search_by_project(
        self, project_key: str, limit: int | None = None, start_at: int | None = None
    ) -> JiraSearchResult:
        jql = f'project = "{project_key}" ORDER BY updated DESC'
        return await self.search_by_jql(jql, limit=limit, start_at=start_at)

    async def search_by_assignee(
        self, assignee: str, limit: int | None = None, start_at: int | None = None
    ) -> JiraSearchResult:
        if assignee == "currentUser()":
            jql = "assignee = currentUser() ORDER BY updated DESC"
        else:
            jql = f'assignee = "{assignee}" ORDER BY updated DESC'
        return await self.search_by_jql(jql, limit=limit, start_at=start_at)

    async def search_clean(
        self, jql: str, limit: int | None = None, start_at: int | None = None
    ) -> CleanSearchResult:
        result = await self.search_by_jql(jql, limit=limit, start_at=start_at)
        return CleanSearchResult(
            issues=[build_clean_issue(issue, self._base_url) for issue in result.issues],
            total=result.total,
            start_at=result.start_at,
            max_results=result.max_results,
        )
