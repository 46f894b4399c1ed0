"""Unit tests for jira_confluence.confluence.pages."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from jira_confluence.confluence.models import ConfluencePage, ConfluenceSearchResult
from jira_confluence.confluence.pages import PageService, escape_cql_text

PAGE = ConfluencePage.model_validate(
    {
        "id": "123",
        "title": "Runbook",
        "version": {"number": 2},
        "space": {"key": "OPS", "name": "Operations"},
        "body": {"storage": {"value": "<p>Steps</p>"}},
        "ancestors": [{"id": "1", "title": "Home"}],
        "_links": {"webui": "/display/OPS/Runbook"},
    }
)


@pytest.fixture()
def client() -> MagicMock:
    mock = MagicMock()
    mock.get_page_by_id = AsyncMock(return_value=PAGE)
    mock.get_page_by_title = AsyncMock(return_value=PAGE)
    mock.search = AsyncMock(return_value=ConfluenceSearchResult(results=[PAGE]))
    mock.create_page = AsyncMock(return_value=PAGE)
    mock.update_page = AsyncMock(return_value=PAGE)
    return mock


def test_escape_cql_text() -> None:
    assert escape_cql_text('a "b" \\c') == 'a \\"b\\" \\\\c'


class TestPageServiceSearch:
    """CQL construction."""

    @pytest.mark.asyncio()
    async def test_text_search(self, client: MagicMock) -> None:
        await PageService(client).search_by_text('deploy "prod"')
        client.search.assert_awaited_once_with(
            'text ~ "deploy \\"prod\\"" ORDER BY lastmodified DESC', limit=10, expand=None
        )

    @pytest.mark.asyncio()
    async def test_text_search_in_space(self, client: MagicMock) -> None:
        await PageService(client).search_by_text("deploy", space_key="OPS", limit=3)
        client.search.assert_awaited_once_with(
            'text ~ "deploy" AND space = "OPS" ORDER BY lastmodified DESC',
            limit=3,
            expand=None,
        )

    @pytest.mark.asyncio()
    async def test_space_search(self, client: MagicMock) -> None:
        await PageService(client).search_by_space("OPS")
        assert client.search.await_args.args[0] == (
            'space = "OPS" AND type = page ORDER BY lastmodified DESC'
        )

    @pytest.mark.asyncio()
    async def test_raw_cql(self, client: MagicMock) -> None:
        result = await PageService(client).search_pages("type = page", limit=2, expand=["body.storage"])
        assert result.results == [PAGE]
        client.search.assert_awaited_once_with("type = page", limit=2, expand=["body.storage"])


class TestPageServiceWrites:
    """Reads, creates, and read-then-write updates."""

    @pytest.mark.asyncio()
    async def test_read(self, client: MagicMock) -> None:
        service = PageService(client)
        assert await service.read_page("123") is PAGE
        assert await service.read_page_by_title("OPS", "Runbook") is PAGE
        client.get_page_by_title.assert_awaited_once_with("OPS", "Runbook")

    @pytest.mark.asyncio()
    async def test_create(self, client: MagicMock) -> None:
        await PageService(client).create_page("OPS", "New", "<p>x</p>", parent_id="1")
        client.create_page.assert_awaited_once_with("OPS", "New", "<p>x</p>", parent_id="1")

    @pytest.mark.asyncio()
    async def test_update_fetches_current_version(self, client: MagicMock) -> None:
        await PageService(client).update_page("123", body="<p>new</p>")
        client.get_page_by_id.assert_awaited_once_with("123")
        client.update_page.assert_awaited_once_with("123", PAGE, title=None, body="<p>new</p>")


class TestBuildCleanPage:
    """Display view."""

    def test_full_page(self, client: MagicMock) -> None:
        clean = PageService(client, base_url="https://wiki.example.com/").build_clean_page(PAGE)
        assert clean.id == "123"
        assert clean.space_key == "OPS"
        assert clean.space_name == "Operations"
        assert clean.version == 2
        assert clean.body == "<p>Steps</p>"
        assert clean.url == "https://wiki.example.com/display/OPS/Runbook"
        data = clean.model_dump(by_alias=True, exclude_none=True)
        assert data["spaceKey"] == "OPS"

    def test_minimal_page(self, client: MagicMock) -> None:
        page = ConfluencePage.model_validate({"id": "9", "title": "T", "version": {"number": 1}})
        clean = PageService(client).build_clean_page(page)
        assert clean.url is None
        assert clean.space_key is None
        assert clean.body is None
