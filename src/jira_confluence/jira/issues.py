"""Build issue create/update payloads and send them through the resilient client."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from jira_confluence.exceptions import AppError
from jira_confluence.jira.fields import FieldService
from jira_confluence.jira.formatting import format_acceptance_as_table
from jira_confluence.jira.models import (
    CreateIssueInput,
    JiraCreateIssueResponse,
    JiraIssue,
    UpdateIssueInput,
)

if TYPE_CHECKING:
    from jira_confluence.jira.client import JiraClient

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


def _validate(model: type[M], data: M | Mapping[str, Any], label: str) -> M:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        issues = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise AppError.validation(f"Invalid {label} input: {issues}") from exc


class IssueService:
    """Create, update, and read issues using resolved custom field ids.

    Args:
        client: Resilient Jira client.
        field_service: Resolver for logical fields; a catalog-backed one is
            created from *client* when omitted.
        format_acceptance: Render Given/When/Then acceptance text as a table.
    """

    def __init__(
        self,
        client: JiraClient,
        field_service: FieldService | None = None,
        format_acceptance: bool = True,
    ) -> None:
        self._client = client
        self._fields = field_service or FieldService(client=client)
        self._format_acceptance = format_acceptance

    async def create_issue(
        self, data: CreateIssueInput | Mapping[str, Any]
    ) -> JiraCreateIssueResponse:
        """Validate *data*, build the payload, and create the issue.

        Raises:
            AppError: ``VALIDATION_ERROR`` for invalid input, or whatever the
                client raises.
        """
        issue_input = _validate(CreateIssueInput, data, "issue")
        fields = await self.build_create_payload(issue_input)
        response = await self._client.create_issue(fields)
        logger.info("issue_created", key=response.key)
        return response

    async def update_issue(
        self, issue_key: str, data: UpdateIssueInput | Mapping[str, Any]
    ) -> bool:
        """Apply *data* to *issue_key*.

        Returns:
            False when there was nothing to send, True otherwise.
        """
        update_input = _validate(UpdateIssueInput, data, "update")
        fields = await self.build_update_payload(update_input)
        if not fields:
            logger.debug("issue_update_skipped", key=issue_key)
            return False
        await self._client.update_issue(issue_key, fields=fields)
        logger.info("issue_updated", key=issue_key, fields=sorted(fields))
        return True

    async def get_issue(
        self, issue_key: str, expand: list[str] | None = None
    ) -> JiraIssue:
        return await self._client.get_issue(issue_key, expand=expand)

    def _acceptance_value(self, text: str) -> str:
        if self._format_acceptance:
            return format_acceptance_as_table(text) or text
        return text

    async def build_create_payload(self, data: CreateIssueInput) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "project": {"key": data.project},
            "issuetype": {"name": data.issue_type},
            "summary": data.summary,
        }
        if data.description:
            fields["description"] = data.description
        if data.assignee:
            fields["assignee"] = {"name": data.assignee}
        if data.priority:
            fields["priority"] = {"name": data.priority}
        if data.labels:
            fields["labels"] = data.labels

        if data.acceptance:
            field_id = await self._fields.resolve_field_id("acceptance")
            if field_id:
                fields[field_id] = self._acceptance_value(data.acceptance)
        if data.epic:
            field_id = await self._fields.resolve_field_id("epic")
            if field_id:
                fields[field_id] = data.epic
        if data.story_points is not None:
            field_id = await self._fields.resolve_field_id("storyPoints")
            if field_id:
                fields[field_id] = data.story_points

        if data.custom_fields:
            fields.update(data.custom_fields)
        return fields

    async def build_update_payload(self, data: UpdateIssueInput) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if data.summary is not None:
            fields["summary"] = data.summary
        if data.description is not None:
            fields["description"] = data.description
        if data.assignee is not None:
            fields["assignee"] = {"name": data.assignee} if data.assignee else None
        if data.priority is not None:
            fields["priority"] = {"name": data.priority}
        if data.labels is not None:
            fields["labels"] = data.labels

        if data.acceptance is not None:
            field_id = await self._fields.resolve_field_id("acceptance")
            if field_id:
                fields[field_id] = self._acceptance_value(data.acceptance)
        if data.epic is not None:
            field_id = await self._fields.resolve_field_id("epic")
            if field_id:
                fields[field_id] = data.epic or None
        if data.story_points is not None:
            field_id = await self._fields.resolve_field_id("storyPoints")
            if field_id:
                fields[field_id] = data.story_points

        if data.custom_fields:
            fields.update(data.custom_fields)
        return fields
