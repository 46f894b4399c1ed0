"""Load issue definitions from JSON files for ``--from-json``."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from jira_confluence.exceptions import AppError
from jira_confluence.jira.formatting import merge_labels
from jira_confluence.jira.models import CreateIssueInput, UpdateIssueInput

InputMode = Literal["create", "update"]


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'input'}: {error['msg']}"
        for error in exc.errors()
    )


class IssueInput(BaseModel):
    """Issue definition as written in JSON (camelCase keys).

    ``type`` is accepted for ``issueType`` and ``fields`` for
    ``customFields``; ``labels`` may be a comma-separated string and
    ``acceptance`` a list of lines.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    project: str | None = None
    issue_type: str | None = None
    summary: str | None = None
    description: str | None = None
    assignee: str | None = None
    priority: str | None = None
    labels: list[str] | None = None
    epic: str | None = None
    acceptance: str | None = None
    acceptance_field: str | None = None
    epic_field: str | None = None
    story_points: float | None = None
    custom_fields: dict[str, Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        issue_type = data.pop("type", None)
        if issue_type is not None and not data.get("issueType"):
            data["issueType"] = issue_type
        extra_fields = data.pop("fields", None)
        if extra_fields is not None and not data.get("customFields"):
            data["customFields"] = extra_fields
        if isinstance(data.get("labels"), str):
            data["labels"] = merge_labels(data["labels"]) or []
        if isinstance(data.get("acceptance"), list):
            data["acceptance"] = "\n".join(str(line) for line in data["acceptance"])
        return data

    def to_create_input(self) -> CreateIssueInput:
        """Raises AppError (``VALIDATION_ERROR``) when required fields are missing."""
        missing = []
        if not self.project:
            missing.append("project: Project key is required")
        if not self.issue_type:
            missing.append("issueType: Either issueType or type is required")
        if not self.summary:
            missing.append("summary: Summary is required")
        if missing:
            raise AppError.validation(
                f"Invalid issue input for create: {'; '.join(missing)}"
            )
        payload = self.model_dump(exclude={"acceptance_field", "epic_field"})
        try:
            return CreateIssueInput.model_validate(payload)
        except ValidationError as exc:
            raise AppError.validation(
                f"Invalid issue input for create: {_describe(exc)}"
            ) from exc

    def to_update_input(self) -> UpdateIssueInput:
        payload = self.model_dump(
            exclude={"project", "issue_type", "acceptance_field", "epic_field"},
            exclude_none=True,
        )
        return UpdateIssueInput.model_validate(payload)


def _parse(text: str, mode: InputMode, source: Path | None) -> IssueInput:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON in issue file: {source}" if source else "Invalid JSON string"
        raise AppError.config(msg, exc) from exc

    try:
        issue = IssueInput.model_validate(data)
    except ValidationError as exc:
        raise AppError.validation(f"Invalid issue input: {_describe(exc)}") from exc

    if mode == "create":
        issue.to_create_input()
    return issue


def parse_issue_input(text: str, mode: InputMode = "create") -> IssueInput:
    """Parse and validate an issue definition from a JSON string.

    Raises:
        AppError: ``CONFIG_ERROR`` for malformed JSON, ``VALIDATION_ERROR``
            for schema violations or, in create mode, missing required keys.
    """
    return _parse(text, mode, None)


def load_issue_from_json(path: str | Path, mode: InputMode = "create") -> IssueInput:
    """Read an issue definition from *path*; see ``parse_issue_input``.

    Raises:
        AppError: ``CONFIG_ERROR`` when the file is missing, unreadable, or
            not JSON.
    """
    resolved = Path(path).resolve()
    if not resolved.exists():
        raise AppError.config(f"Issue JSON file not found: {resolved}")
    try:
        text = resolved.read_text(encoding="utf-8")
    except OSError as exc:
        raise AppError.config(f"Failed to read issue JSON file: {resolved}", exc) from exc
    return _parse(text, mode, resolved)
