"""Shared httpx plumbing for the raw REST layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class BearerAuth:
    token: str


@dataclass(frozen=True)
class BasicAuth:
    email: str
    api_token: str


Credentials = BearerAuth | BasicAuth


def build_async_client(
    base_url: str,
    credentials: Credentials,
    timeout: float = DEFAULT_TIMEOUT,
) -> httpx.AsyncClient:
    """Create an ``httpx.AsyncClient`` authenticated with *credentials*."""
    headers = {"Accept": "application/json"}
    auth: httpx.Auth | None = None
    if isinstance(credentials, BearerAuth):
        headers["Authorization"] = f"Bearer {credentials.token}"
    else:
        auth = httpx.BasicAuth(credentials.email, credentials.api_token)
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        headers=headers,
        auth=auth,
        timeout=timeout,
    )


def decode_body(response: httpx.Response) -> Any:
    """Return the JSON body, the raw text when it is not JSON, or None."""
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def csv_param(value: list[str] | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    joined = ",".join(item for item in value if item)
    return joined or None
