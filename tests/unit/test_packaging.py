"""pyproject.toml checks: entry point, wheel contents, and declared stack."""

from __future__ import annotations

import re
import tomllib
from pathlib import Path
from typing import Any

import pytest

from jira_confluence import __version__, cli

ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture(scope="module")
def project() -> dict[str, Any]:
    with (ROOT / "pyproject.toml").open("rb") as f:
        return tomllib.load(f)


def _names(requirements: list[str]) -> set[str]:
    return {re.split(r"[<>=!~\[; ]", req, maxsplit=1)[0].lower() for req in requirements}


def test_script_targets_cli_main(project: dict[str, Any]) -> None:
    module, _, attr = project["project"]["scripts"]["jira-confluence"].partition(":")
    assert module == cli.__name__
    assert callable(getattr(cli, attr))


def test_version_matches_package(project: dict[str, Any]) -> None:
    assert project["project"]["version"] == __version__


def test_wheel_ships_the_src_package(project: dict[str, Any]) -> None:
    packages = project["tool"]["hatch"]["build"]["targets"]["wheel"]["packages"]
    assert packages == ["src/jira_confluence"]
    assert (ROOT / packages[0] / "__init__.py").is_file()


def test_runtime_stack_is_declared(project: dict[str, Any]) -> None:
    declared = _names(project["project"]["dependencies"])
    assert {
        "httpx",
        "pydantic",
        "pydantic-settings",
        "rich",
        "structlog",
        "tenacity",
        "typer",
    } <= declared


def test_test_extra_carries_async_and_http_mocking(project: dict[str, Any]) -> None:
    declared = _names(project["project"]["optional-dependencies"]["test"])
    assert {"pytest", "pytest-asyncio", "respx"} <= declared


def test_pytest_runs_async_tests_in_strict_mode(project: dict[str, Any]) -> None:
    options = project["tool"]["pytest"]["ini_options"]
    assert options["asyncio_mode"] == "strict"
    assert options["pythonpath"] == ["src"]
