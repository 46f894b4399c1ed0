"""Pydantic models for Jira requests and responses."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

LogicalFieldName = Literal["acceptance", "epic", "storyPoints", "sprint"]

LOGICAL_FIELD_NAMES: tuple[LogicalFieldName, ...] = (
    "acceptance",
    "epic",
    "storyPoints",
    "sprint",
)


class _JiraModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class JiraFieldSchema(_JiraModel):
    type: str | None = None
    items: str | None = None
    system: str | None = None
    custom: str | None = None
    custom_id: int | None = None


class JiraField(_JiraModel):
    """One entry of the ``/field`` catalog."""

    id: str
    name: str
    custom: bool | None = None
    orderable: bool | None = None
    navigable: bool | None = None
    searchable: bool | None = None
    clause_names: list[str] = Field(default_factory=list)
    field_schema: JiraFieldSchema | None = Field(default=None, alias="schema")


class JiraIssue(_JiraModel):
    """An issue as returned by ``GET /issue/{key}``.

    ``fields`` stays a plain mapping because custom field ids differ per
    instance.
    """

    id: str
    key: str
    self_url: str | None = Field(default=None, alias="self")
    fields: dict[str, Any] = Field(default_factory=dict)
    names: dict[str, str] = Field(default_factory=dict)
    rendered_fields: dict[str, Any] = Field(default_factory=dict)

    @field_validator("fields", "names", "rendered_fields", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return {} if value is None else value


class JiraSearchResult(_JiraModel):
    start_at: int = 0
    max_results: int = 0
    total: int = 0
    issues: list[JiraIssue] = Field(default_factory=list)

    @field_validator("start_at", "max_results", "total", mode="before")
    @classmethod
    def _none_as_zero(cls, value: object) -> object:
        return 0 if value is None else value

    @field_validator("issues", mode="before")
    @classmethod
    def _none_as_list(cls, value: object) -> object:
        return [] if value is None else value


class JiraCreateIssueResponse(_JiraModel):
    id: str
    key: str
    self_url: str | None = Field(default=None, alias="self")


class JiraTransition(_JiraModel):
    id: str
    name: str


# ---------------------------------------------------------------------------
# Service inputs
# ---------------------------------------------------------------------------


class CreateIssueInput(BaseModel):
    """Normalized input for creating an issue."""

    project: str = Field(min_length=1)
    issue_type: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    description: str | None = None
    assignee: str | None = None
    priority: str | None = None
    labels: list[str] | None = None
    acceptance: str | None = None
    epic: str | None = None
    story_points: float | None = None
    custom_fields: dict[str, Any] | None = None


class UpdateIssueInput(BaseModel):
    """Normalized input for updating an issue; every field optional.

    An empty ``assignee`` or ``epic`` clears the field.
    """

    summary: str | None = None
    description: str | None = None
    assignee: str | None = None
    priority: str | None = None
    labels: list[str] | None = None
    acceptance: str | None = None
    epic: str | None = None
    story_points: float | None = None
    custom_fields: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Clean views
# ---------------------------------------------------------------------------


class CleanProject(BaseModel):
    id: str | None = None
    key: str | None = None
    name: str | None = None


class CleanEpic(BaseModel):
    key: str | None = None
    summary: str | None = None


class CleanComment(BaseModel):
    id: str | None = None
    author: str | None = None
    created: str | None = None
    body: str | None = None


class CleanIssue(BaseModel):
    """Flattened, display-oriented view of an issue."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str | None = None
    key: str | None = None
    summary: str | None = None
    description: str | None = None
    issue_type: str | None = None
    status: str | None = None
    reporter: str | None = None
    assignee: str | None = None
    priority: str | None = None
    story_points: float | None = None
    project: CleanProject | None = None
    due_date: str | None = None
    labels: list[str] | None = None
    epic: CleanEpic | None = None
    fix_versions: list[str] | None = None
    created: str | None = None
    updated: str | None = None
    url: str | None = None
    acceptance_criteria: str | None = None
    comments: list[CleanComment] | None = None

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
