"""Raw Confluence REST calls over ``httpx``."""

from __future__ import annotations

from typing import Any

import httpx

from jira_confluence.core.http import Credentials, build_async_client, csv_param, decode_body


class ConfluenceRestApi:
    """Thin async wrapper over ``/rest/api/content``."""

    def __init__(
        self,
        base_url: str,
        credentials: Credentials,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or build_async_client(base_url, credentials)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ConfluenceRestApi:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        if params:
            params = {key: value for key, value in params.items() if value is not None}
        response = await self._client.request(
            method, f"/rest/api{path}", params=params or None, json=json
        )
        response.raise_for_status()
        return decode_body(response)

    async def get_content_by_id(
        self, content_id: str, expand: list[str] | None = None
    ) -> Any:
        return await self._request(
            "GET", f"/content/{content_id}", params={"expand": csv_param(expand)}
        )

    async def get_content(
        self,
        space_key: str,
        title: str,
        limit: int | None = None,
        expand: list[str] | None = None,
    ) -> Any:
        return await self._request(
            "GET",
            "/content",
            params={
                "spaceKey": space_key,
                "title": title,
                "limit": limit,
                "expand": csv_param(expand),
            },
        )

    async def search_content_by_cql(
        self,
        cql: str,
        limit: int | None = None,
        start: int | None = None,
        expand: list[str] | None = None,
    ) -> Any:
        return await self._request(
            "GET",
            "/content/search",
            params={
                "cql": cql,
                "limit": limit,
                "start": start,
                "expand": csv_param(expand),
            },
        )

    async def create_content(self, payload: dict[str, Any]) -> Any:
        return await self._request("POST", "/content", json=payload)

    async def update_content(self, content_id: str, payload: dict[str, Any]) -> Any:
        return await self._request("PUT", f"/content/{content_id}", json=payload)
