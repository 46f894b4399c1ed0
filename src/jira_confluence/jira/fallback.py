"""Issue creation that degrades the payload when Jira rejects custom fields.

Acceptance criteria and epic links live in custom fields whose ids vary per
instance. Creation walks an ordered list of candidate ids for each: when Jira
rejects the field currently in use, the next candidate is tried, and once the
list runs out the value is dropped so the issue still gets created.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from jira_confluence.config import JiraFieldConfig, JiraSettings
from jira_confluence.exceptions import AppError, ErrorCode
from jira_confluence.jira.formatting import format_acceptance_as_table, normalize_text
from jira_confluence.jira.models import JiraCreateIssueResponse

if TYPE_CHECKING:
    from collections.abc import Iterable

    from jira_confluence.jira.client import JiraClient

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

ACCEPTANCE_FIELD_DEFAULTS = ("customfield_10201",)
EPIC_FIELD_DEFAULTS = ("customfield_10001", "customfield_15208", "customfield_10008")
EPIC_STRING_FIELD_DEFAULTS = ("customfield_10001", "customfield_10008")

MAX_CREATE_ATTEMPTS = 3

_STRING_EXPECTED_RE = re.compile(r"string value expected", re.IGNORECASE)


def build_field_candidates(
    preference: str | None,
    single: str | None,
    extra: Iterable[str],
    defaults: Iterable[str],
) -> list[str]:
    """Order candidates by priority, dropping blanks and repeats."""
    ordered: dict[str, None] = {}
    for value in (preference, single, *extra, *defaults):
        text = normalize_text(value)
        if text:
            ordered.setdefault(text, None)
    return list(ordered)


@dataclass(frozen=True)
class FieldCandidates:
    """Candidate field ids for acceptance criteria and epic links."""

    acceptance: tuple[str, ...]
    epic: tuple[str, ...]
    epic_string_fields: frozenset[str]

    @classmethod
    def from_settings(
        cls,
        settings: JiraSettings,
        field_config: JiraFieldConfig | None = None,
        acceptance_preference: str | None = None,
        epic_preference: str | None = None,
    ) -> FieldCandidates:
        """Combine CLI preferences, environment, ``jira.config.json`` and defaults."""
        config = field_config or JiraFieldConfig()
        acceptance = build_field_candidates(
            acceptance_preference,
            settings.acceptance_field,
            [*settings.acceptance_fields, *config.acceptance_field_candidates],
            ACCEPTANCE_FIELD_DEFAULTS,
        )
        epic = build_field_candidates(
            epic_preference,
            settings.epic_field,
            [*settings.epic_fields, *config.epic_field_candidates],
            EPIC_FIELD_DEFAULTS,
        )
        string_fields = frozenset(
            [
                *settings.epic_string_fields,
                *config.epic_string_fields,
                *EPIC_STRING_FIELD_DEFAULTS,
            ]
        )
        return cls(tuple(acceptance), tuple(epic), string_fields)


class _CandidateCursor:
    """Walks a candidate list; ``current`` is None once exhausted or unused."""

    def __init__(self, candidates: tuple[str, ...], enabled: bool) -> None:
        self._candidates = candidates
        self._index = 0
        self.included = enabled and bool(candidates)

    @property
    def current(self) -> str | None:
        if not self.included:
            return None
        return self._candidates[self._index]

    def advance(self) -> str | None:
        """Move to the next candidate, or stop including the value."""
        if self._index + 1 < len(self._candidates):
            self._index += 1
            return self._candidates[self._index]
        self.included = False
        return None


async def create_issue_with_fallback(
    client: JiraClient,
    base_fields: dict[str, Any],
    candidates: FieldCandidates,
    *,
    acceptance: str | None = None,
    epic_key: str | None = None,
    max_attempts: int = MAX_CREATE_ATTEMPTS,
) -> JiraCreateIssueResponse:
    """Create an issue, adjusting acceptance/epic fields after rejections.

    Args:
        client: Resilient Jira client.
        base_fields: Fields sent on every attempt; never mutated.
        candidates: Candidate ids for the acceptance and epic fields.
        acceptance: Acceptance criteria text; formatted as a table when it
            contains Given/When/Then lines.
        epic_key: Key of the epic to link.
        max_attempts: Upper bound on create calls.

    Raises:
        AppError: The last creation error when a rejection cannot be worked
            around or the attempts run out.
    """
    acceptance_value = format_acceptance_as_table(acceptance) if acceptance else None
    acceptance_cursor = _CandidateCursor(candidates.acceptance, bool(acceptance))
    epic_cursor = _CandidateCursor(candidates.epic, bool(epic_key))
    epic_as_string = epic_cursor.current in candidates.epic_string_fields

    last_error: AppError | None = None
    for attempt in range(1, max_attempts + 1):
        fields = copy.deepcopy(base_fields)
        acceptance_id = acceptance_cursor.current
        epic_id = epic_cursor.current
        if acceptance_id:
            fields[acceptance_id] = acceptance_value
        if epic_id:
            fields[epic_id] = epic_key if epic_as_string else {"key": epic_key}

        try:
            return await client.create_issue(fields)
        except AppError as exc:
            if exc.code != ErrorCode.JIRA_API_ERROR:
                raise
            last_error = exc

        field_errors: dict[str, Any] = last_error.context.get("errors") or {}
        general_messages = [
            m for m in last_error.context.get("errorMessages") or [] if isinstance(m, str)
        ]
        adjusted = False

        if acceptance_id and field_errors.get(acceptance_id):
            reason = field_errors[acceptance_id]
            replacement = acceptance_cursor.advance()
            logger.warning(
                "acceptance_field_rejected",
                field=acceptance_id,
                reason=reason,
                next_field=replacement,
                attempt=attempt,
            )
            adjusted = True

        if epic_id:
            epic_error = field_errors.get(epic_id)
            messages = [epic_error] if isinstance(epic_error, str) else []
            messages.extend(general_messages)
            if not epic_as_string and any(_STRING_EXPECTED_RE.search(m) for m in messages):
                epic_as_string = True
                logger.info("epic_field_retry_as_string", field=epic_id, attempt=attempt)
                adjusted = True
            elif epic_error:
                replacement = epic_cursor.advance()
                epic_as_string = replacement in candidates.epic_string_fields
                logger.warning(
                    "epic_field_rejected",
                    field=epic_id,
                    reason=epic_error,
                    next_field=replacement,
                    attempt=attempt,
                )
                adjusted = True

        if not adjusted:
            raise last_error

    if last_error is None:
        raise AppError.jira_api("Failed to create Jira issue.")
    raise last_error
