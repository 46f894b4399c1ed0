"""Raw Jira REST calls over ``httpx``.

No retry or error mapping happens here; failures surface as
``httpx.HTTPStatusError`` or ``httpx.TransportError`` for the resilient
client to classify.
"""

from __future__ import annotations

from typing import Any

import httpx

from jira_confluence.core.http import Credentials, build_async_client, csv_param, decode_body


class JiraRestApi:
    """Thin async wrapper over ``/rest/api/{version}``."""

    def __init__(
        self,
        base_url: str,
        credentials: Credentials,
        api_version: str = "2",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or build_async_client(base_url, credentials)
        self.api_version = api_version
        self._prefix = f"/rest/api/{api_version}"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> JiraRestApi:
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
            method, f"{self._prefix}{path}", params=params or None, json=json
        )
        response.raise_for_status()
        return decode_body(response)

    async def get_issue(
        self,
        issue_id_or_key: str,
        fields: list[str] | None = None,
        expand: list[str] | None = None,
    ) -> Any:
        return await self._request(
            "GET",
            f"/issue/{issue_id_or_key}",
            params={"fields": csv_param(fields), "expand": csv_param(expand)},
        )

    async def search(
        self,
        jql: str,
        max_results: int | None = None,
        start_at: int | None = None,
        fields: list[str] | None = None,
        expand: list[str] | None = None,
    ) -> Any:
        return await self._request(
            "GET",
            "/search",
            params={
                "jql": jql,
                "maxResults": max_results,
                "startAt": start_at,
                "fields": csv_param(fields),
                "expand": csv_param(expand),
            },
        )

    async def create_issue(self, fields: dict[str, Any]) -> Any:
        return await self._request("POST", "/issue", json={"fields": fields})

    async def edit_issue(
        self,
        issue_id_or_key: str,
        fields: dict[str, Any] | None = None,
        update: dict[str, Any] | None = None,
    ) -> Any:
        body: dict[str, Any] = {}
        if fields is not None:
            body["fields"] = fields
        if update is not None:
            body["update"] = update
        return await self._request("PUT", f"/issue/{issue_id_or_key}", json=body)

    async def get_fields(self) -> Any:
        return await self._request("GET", "/field")

    async def get_transitions(self, issue_id_or_key: str) -> Any:
        return await self._request("GET", f"/issue/{issue_id_or_key}/transitions")

    async def do_transition(self, issue_id_or_key: str, transition_id: str) -> Any:
        return await self._request(
            "POST",
            f"/issue/{issue_id_or_key}/transitions",
            json={"transition": {"id": transition_id}},
        )
