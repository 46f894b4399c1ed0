"""Pydantic models for Confluence content."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _ConfluenceModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ConfluenceVersion(_ConfluenceModel):
    number: int
    when: str | None = None
    message: str | None = None


class ConfluenceSpace(_ConfluenceModel):
    id: int | None = None
    key: str
    name: str | None = None
    type: str | None = None


class ConfluenceAncestor(_ConfluenceModel):
    id: str
    title: str | None = None


class ConfluenceLinks(_ConfluenceModel):
    webui: str | None = None
    self_url: str | None = Field(default=None, alias="self")
    next: str | None = None


class ConfluencePage(_ConfluenceModel):
    """A page as returned by ``/rest/api/content`` with ``body.storage,version``."""

    id: str
    type: str = "page"
    title: str
    status: str | None = None
    version: ConfluenceVersion
    space: ConfluenceSpace | None = None
    body: dict[str, Any] | None = None
    ancestors: list[ConfluenceAncestor] | None = None
    links: ConfluenceLinks | None = Field(default=None, alias="_links")

    @property
    def storage_value(self) -> str | None:
        storage = (self.body or {}).get("storage") or {}
        value = storage.get("value")
        return value if isinstance(value, str) else None


class ConfluenceSearchResult(_ConfluenceModel):
    results: list[ConfluencePage] = Field(default_factory=list)
    start: int | None = None
    limit: int | None = None
    size: int | None = None
    links: ConfluenceLinks | None = Field(default=None, alias="_links")


class CleanPage(BaseModel):
    """Display-oriented view of a page."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    space_key: str | None = Field(default=None, serialization_alias="spaceKey")
    space_name: str | None = Field(default=None, serialization_alias="spaceName")
    version: int
    body: str | None = None
    url: str | None = None
    ancestors: list[ConfluenceAncestor] | None = None
