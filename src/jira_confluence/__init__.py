"""jira-confluence: Resilient Jira and Confluence command-line client."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("jira-confluence")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = ["__version__"]
