"""Unit tests for jira_confluence.jira.fields."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from jira_confluence.config import JiraFieldConfig, JiraFieldMapping
from jira_confluence.exceptions import AppError, ErrorCode
from jira_confluence.jira.fields import DEFAULT_FIELD_CANDIDATES, FieldService
from jira_confluence.jira.models import JiraField


def _catalog(*pairs: tuple[str, str]) -> list[JiraField]:
    return [JiraField(id=field_id, name=name) for field_id, name in pairs]


def _client(fields: list[JiraField] | None = None) -> MagicMock:
    client = MagicMock()
    client.list_fields = AsyncMock(return_value=fields or [])
    return client


# ---------------------------------------------------------------------------
# Resolution order
# ---------------------------------------------------------------------------


class TestResolveFieldId:
    """Mapping first, then exact candidates, then name patterns."""

    @pytest.mark.asyncio()
    async def test_mapping_wins_without_fetch(self) -> None:
        client = _client()
        config = JiraFieldConfig(field_mapping=JiraFieldMapping(acceptance="customfield_1"))
        service = FieldService(config, client)

        assert await service.resolve_field_id("acceptance") == "customfield_1"
        client.list_fields.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_story_points_mapping_uses_camel_name(self) -> None:
        config = JiraFieldConfig.model_validate(
            {"fieldMapping": {"storyPoints": "customfield_10002"}}
        )
        service = FieldService(config)
        assert await service.resolve_field_id("storyPoints") == "customfield_10002"

    @pytest.mark.asyncio()
    async def test_exact_candidate_match(self) -> None:
        client = _client(
            _catalog(
                ("customfield_9", "Acceptance notes"),
                ("customfield_5", "acceptance criteria"),
            )
        )
        service = FieldService(client=client)
        assert await service.resolve_field_id("acceptance") == "customfield_5"

    @pytest.mark.asyncio()
    async def test_candidate_can_match_field_id(self) -> None:
        client = _client(_catalog(("customfield_77", "Something else")))
        config = JiraFieldConfig(epic_field_candidates=["customfield_77"])
        service = FieldService(config, client)
        assert await service.resolve_field_id("epic") == "customfield_77"

    @pytest.mark.asyncio()
    async def test_pattern_fallback(self) -> None:
        client = _client(_catalog(("summary", "Summary"), ("customfield_3", "Team Sprint Board")))
        service = FieldService(client=client)
        assert await service.resolve_field_id("sprint") == "customfield_3"

    @pytest.mark.asyncio()
    async def test_acceptance_pattern_fallback(self) -> None:
        client = _client(
            _catalog(("summary", "Summary"), ("customfield_21", "UAT Acceptance Notes"))
        )
        service = FieldService(client=client)
        assert await service.resolve_field_id("acceptance") == "customfield_21"

    @pytest.mark.asyncio()
    async def test_criteria_pattern_beats_loose_match(self) -> None:
        client = _client(
            _catalog(
                ("customfield_21", "UAT Acceptance Notes"),
                ("customfield_22", "Team Acceptance  Criteria"),
            )
        )
        service = FieldService(client=client)
        assert await service.resolve_field_id("acceptance") == "customfield_22"

    @pytest.mark.asyncio()
    async def test_unresolved_returns_none(self) -> None:
        service = FieldService(client=_client(_catalog(("summary", "Summary"))))
        assert await service.resolve_field_id("epic") is None

    @pytest.mark.asyncio()
    async def test_no_client_means_no_catalog(self) -> None:
        assert await FieldService().resolve_field_id("acceptance") is None


# ---------------------------------------------------------------------------
# Catalog caching
# ---------------------------------------------------------------------------


class TestCatalogCache:
    """The field catalog is fetched once and failures are not cached."""

    @pytest.mark.asyncio()
    async def test_fetched_once(self) -> None:
        client = _client(_catalog(("customfield_1", "Epic Link"), ("customfield_2", "Sprint")))
        service = FieldService(client=client)

        await service.resolve_field_id("epic")
        await service.resolve_field_id("sprint")

        assert client.list_fields.await_count == 1

    @pytest.mark.asyncio()
    async def test_failure_is_not_cached(self) -> None:
        client = MagicMock()
        client.list_fields = AsyncMock(
            side_effect=[
                AppError.network("down"),
                _catalog(("customfield_1", "Epic Link")),
            ]
        )
        service = FieldService(client=client)

        assert await service.resolve_field_id("epic") is None
        assert await service.resolve_field_id("epic") == "customfield_1"
        assert client.list_fields.await_count == 2

    @pytest.mark.asyncio()
    async def test_clear_cache_refetches(self) -> None:
        client = _client(_catalog(("customfield_1", "Epic Link")))
        service = FieldService(client=client)

        await service.resolve_field_id("epic")
        service.clear_cache()
        await service.resolve_field_id("epic")

        assert client.list_fields.await_count == 2


# ---------------------------------------------------------------------------
# assert_field_id / candidates_for
# ---------------------------------------------------------------------------


class TestAssertFieldId:
    """Raising variant of resolve_field_id."""

    @pytest.mark.asyncio()
    async def test_returns_resolved(self) -> None:
        config = JiraFieldConfig(field_mapping=JiraFieldMapping(epic="customfield_8"))
        assert await FieldService(config).assert_field_id("epic") == "customfield_8"

    @pytest.mark.asyncio()
    async def test_raises_validation_error(self) -> None:
        with pytest.raises(AppError) as exc_info:
            await FieldService().assert_field_id("storyPoints")
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert exc_info.value.message.startswith('Unable to resolve field ID for "storyPoints"')
        assert exc_info.value.context == {"logical_name": "storyPoints"}


class TestCandidatesFor:
    """Configured candidate names replace the defaults."""

    def test_defaults(self) -> None:
        assert FieldService().candidates_for("epic") == DEFAULT_FIELD_CANDIDATES["epic"]

    def test_configured(self) -> None:
        config = JiraFieldConfig(acceptance_field_candidates=["AC"])
        assert FieldService(config).candidates_for("acceptance") == ("AC",)

    def test_empty_configured_list_keeps_defaults(self) -> None:
        config = JiraFieldConfig(acceptance_field_candidates=[])
        assert (
            FieldService(config).candidates_for("acceptance")
            == DEFAULT_FIELD_CANDIDATES["acceptance"]
        )
