"""Resolve logical field names (acceptance, epic...) to instance-specific field ids."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

from jira_confluence.config import JiraFieldConfig
from jira_confluence.exceptions import AppError
from jira_confluence.jira.models import JiraField, LogicalFieldName

if TYPE_CHECKING:
    from jira_confluence.jira.client import JiraClient

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

DEFAULT_FIELD_CANDIDATES: dict[str, tuple[str, ...]] = {
    "acceptance": ("Acceptance Criteria", "acceptanceCriteria", "Acceptance"),
    "epic": ("Epic Link", "epicLink", "Parent Link", "Epic"),
    "storyPoints": ("Story Points", "storyPoints", "Story point estimate"),
    "sprint": ("Sprint", "Sprints"),
}

FIELD_NAME_PATTERNS: dict[str, tuple[re.Pattern[str], ...]] = {
    "acceptance": (
        re.compile(r"acceptance\s*criteria", re.IGNORECASE),
        re.compile(r"acceptance", re.IGNORECASE),
    ),
    "epic": (
        re.compile(r"epic\s*link", re.IGNORECASE),
        re.compile(r"parent\s*link", re.IGNORECASE),
    ),
    "storyPoints": (
        re.compile(r"story\s*point", re.IGNORECASE),
        re.compile(r"point\s*estimate", re.IGNORECASE),
    ),
    "sprint": (re.compile(r"sprint", re.IGNORECASE),),
}


class FieldService:
    """Map logical field names onto field ids.

    Resolution order: the explicit ``field_mapping`` from ``jira.config.json``,
    then an exact (case-insensitive) match of a candidate name against the
    field catalog's names and ids, then a regex match on field names.

    The catalog is fetched at most once per instance and only when the mapping
    does not answer the question. A failed fetch counts as an empty catalog
    and is retried on the next lookup.
    """

    def __init__(
        self,
        config: JiraFieldConfig | None = None,
        client: JiraClient | None = None,
    ) -> None:
        self._config = config or JiraFieldConfig()
        self._client = client
        self._cached_fields: list[JiraField] | None = None

    async def resolve_field_id(self, logical_name: LogicalFieldName) -> str | None:
        configured = self._config.field_mapping.get(logical_name)
        if configured:
            return configured
        return await self._discover_field_id(logical_name)

    async def assert_field_id(self, logical_name: LogicalFieldName) -> str:
        """Like ``resolve_field_id`` but raises when nothing matches.

        Raises:
            AppError: ``VALIDATION_ERROR`` with ``logical_name`` in context.
        """
        field_id = await self.resolve_field_id(logical_name)
        if not field_id:
            raise AppError.validation(
                f'Unable to resolve field ID for "{logical_name}". '
                "Configure it in jira.config.json or ensure the field exists in Jira.",
                {"logical_name": logical_name},
            )
        return field_id

    def clear_cache(self) -> None:
        self._cached_fields = None

    def candidates_for(self, logical_name: LogicalFieldName) -> tuple[str, ...]:
        if logical_name == "acceptance" and self._config.acceptance_field_candidates:
            return tuple(self._config.acceptance_field_candidates)
        if logical_name == "epic" and self._config.epic_field_candidates:
            return tuple(self._config.epic_field_candidates)
        return DEFAULT_FIELD_CANDIDATES.get(logical_name, ())

    async def _discover_field_id(self, logical_name: LogicalFieldName) -> str | None:
        fields = await self._get_fields()
        if not fields:
            return None

        for candidate in self.candidates_for(logical_name):
            wanted = candidate.lower()
            for field in fields:
                if field.name.lower() == wanted or field.id.lower() == wanted:
                    return field.id

        for pattern in FIELD_NAME_PATTERNS.get(logical_name, ()):
            for field in fields:
                if pattern.search(field.name):
                    return field.id

        logger.debug("field_not_resolved", logical_name=logical_name)
        return None

    async def _get_fields(self) -> list[JiraField]:
        if self._cached_fields is not None:
            return self._cached_fields
        if self._client is None:
            return []
        try:
            self._cached_fields = await self._client.list_fields()
        except AppError as exc:
            logger.warning(
                "field_catalog_fetch_failed", code=exc.code.value, error=exc.message
            )
            return []
        return self._cached_fields
