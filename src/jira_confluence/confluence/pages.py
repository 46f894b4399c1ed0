"""Page-level operations on top of the resilient Confluence client."""

from __future__ import annotations

from typing import TYPE_CHECKING

from jira_confluence.confluence.models import CleanPage, ConfluencePage, ConfluenceSearchResult

if TYPE_CHECKING:
    from jira_confluence.confluence.client import ConfluenceClient


def escape_cql_text(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


class PageService:
    """Read, search, create, and update pages."""

    def __init__(self, client: ConfluenceClient, base_url: str | None = None) -> None:
        self._client = client
        self._base_url = (base_url or "").rstrip("/")

    async def read_page(self, page_id: str) -> ConfluencePage:
        return await self._client.get_page_by_id(page_id)

    async def read_page_by_title(self, space_key: str, title: str) -> ConfluencePage | None:
        return await self._client.get_page_by_title(space_key, title)

    async def search_pages(
        self, cql: str, limit: int = 10, expand: list[str] | None = None
    ) -> ConfluenceSearchResult:
        return await self._client.search(cql, limit=limit, expand=expand)

    async def search_by_text(
        self, text: str, space_key: str | None = None, limit: int = 10
    ) -> ConfluenceSearchResult:
        clauses = [f'text ~ "{escape_cql_text(text)}"']
        if space_key:
            clauses.append(f'space = "{space_key}"')
        cql = " AND ".join(clauses) + " ORDER BY lastmodified DESC"
        return await self.search_pages(cql, limit=limit)

    async def search_by_space(self, space_key: str, limit: int = 10) -> ConfluenceSearchResult:
        cql = f'space = "{space_key}" AND type = page ORDER BY lastmodified DESC'
        return await self.search_pages(cql, limit=limit)

    async def create_page(
        self, space_key: str, title: str, body: str, parent_id: str | None = None
    ) -> ConfluencePage:
        return await self._client.create_page(space_key, title, body, parent_id=parent_id)

    async def update_page(
        self, page_id: str, title: str | None = None, body: str | None = None
    ) -> ConfluencePage:
        """Fetch the current version, then publish the next one."""
        current = await self._client.get_page_by_id(page_id)
        return await self._client.update_page(page_id, current, title=title, body=body)

    def build_clean_page(self, page: ConfluencePage) -> CleanPage:
        webui = page.links.webui if page.links else None
        return CleanPage(
            id=page.id,
            title=page.title,
            space_key=page.space.key if page.space else None,
            space_name=page.space.name if page.space else None,
            version=page.version.number,
            body=page.storage_value,
            url=f"{self._base_url}{webui}" if webui else None,
            ancestors=page.ancestors,
        )
