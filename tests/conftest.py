"""Shared pytest fixtures for the jira-confluence test suite."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest
import respx
import structlog

from jira_confluence.core.circuit_breaker import CircuitBreakerRegistry, default_registry
from jira_confluence.core.retry import RetryOptions
from jira_confluence.logging import redactor

# Every variable the settings models read; cleared so the developer's shell
# or .env never leaks into a test.
_ENV_VARS = (
    "JIRA_BASE_URL",
    "JIRA_HOST",
    "JIRA_AUTH_MODE",
    "JIRA_BEARER_TOKEN",
    "JIRA_ACCESS_TOKEN",
    "JIRA_TOKEN",
    "JIRA_EMAIL",
    "JIRA_API_TOKEN",
    "JIRA_PASSWORD",
    "JIRA_API_VERSION",
    "JIRA_DEFAULT_PROJECT",
    "JIRA_ACCEPTANCE_FIELD",
    "JIRA_ACCEPTANCE_FIELDS",
    "JIRA_EPIC_FIELD",
    "JIRA_EPIC_FIELDS",
    "JIRA_EPIC_STRING_FIELDS",
    "JIRA_CONFIG_PATH",
    "CONFLUENCE_BASE_URL",
    "CONFLUENCE_HOST",
    "CONFLUENCE_AUTH_MODE",
    "CONFLUENCE_BEARER_TOKEN",
    "CONFLUENCE_ACCESS_TOKEN",
    "CONFLUENCE_TOKEN",
    "CONFLUENCE_EMAIL",
    "CONFLUENCE_USERNAME",
    "CONFLUENCE_API_TOKEN",
    "CONFLUENCE_PASSWORD",
    "DEBUG",
)


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run every test in an empty directory with no connection variables set."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def _reset_circuits() -> None:
    default_registry.reset_all()


@pytest.fixture(autouse=True)
def _reset_structlog() -> None:
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    redactor.clear()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Resilience helpers
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def registry(clock: FakeClock) -> CircuitBreakerRegistry:
    """A private circuit registry driven by the fake clock."""
    return CircuitBreakerRegistry(clock=clock)


@pytest.fixture()
def fast_retry() -> RetryOptions:
    """Retry policy with zero delay so retry tests do not sleep."""
    from jira_confluence.jira.client import is_retryable_jira_error

    return RetryOptions(
        max_attempts=3,
        base_delay=0.0,
        max_delay=0.0,
        should_retry=lambda error, attempt: is_retryable_jira_error(error),
    )


# ---------------------------------------------------------------------------
# HTTP stubbing
# ---------------------------------------------------------------------------


Handler = Callable[[httpx.Request], httpx.Response]


class RecordedRoute:
    """The requests one respx route answered."""

    def __init__(self, route: respx.Route) -> None:
        self.route = route

    @property
    def requests(self) -> list[httpx.Request]:
        return [call.request for call in self.route.calls]

    def bodies(self) -> list[Any]:
        return [
            json.loads(request.content) if request.content else None
            for request in self.requests
        ]


@pytest.fixture()
def mock_http() -> Iterator[Callable[[Handler, str], tuple[httpx.AsyncClient, RecordedRoute]]]:
    """Factory for an ``httpx.AsyncClient`` whose host is answered by *handler*."""
    with respx.mock(assert_all_called=False) as router:

        def _factory(
            handler: Handler, base_url: str
        ) -> tuple[httpx.AsyncClient, RecordedRoute]:
            route = router.route(host=httpx.URL(base_url).host).mock(side_effect=handler)
            return httpx.AsyncClient(base_url=base_url), RecordedRoute(route)

        yield _factory
