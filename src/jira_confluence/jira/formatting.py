"""Text helpers for issue input and output.

Covers the small normalizations applied to CLI and JSON input, the
Given/When/Then acceptance table, and the conversion of Jira's mixed
description formats (plain text, rendered HTML, Atlassian Document Format)
into plain text for display.
"""

from __future__ import annotations

import html
import json
import re
from datetime import datetime
from typing import Any

from jira_confluence.exceptions import AppError
from jira_confluence.jira.models import (
    CleanComment,
    CleanEpic,
    CleanIssue,
    CleanProject,
    JiraIssue,
)

_ACCEPTANCE_ROW_RE = re.compile(
    r"^-?\s*Given\s+(.*?),\s*when\s+(.*?),\s*then\s+(.*)$", re.IGNORECASE
)
_HTML_TAG_RE = re.compile(r"<[^>]+>")

ACCEPTANCE_TABLE_HEADER = "|| *Given* || *When* || *Then* ||"

# Legacy instances store these values under well-known custom field ids
_EPIC_FALLBACK_FIELDS = ("customfield_15208", "customfield_10008")
_STORY_POINTS_FALLBACK_FIELD = "customfield_10002"
_ACCEPTANCE_FALLBACK_FIELD = "customfield_10201"


# ---------------------------------------------------------------------------
# Input normalization
# ---------------------------------------------------------------------------


def normalize_text(value: object) -> str | None:
    """Trimmed string, or None for non-strings and blanks."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def normalize_multiline(value: object) -> str | None:
    """Join list input with newlines and strip surrounding blank lines."""
    if value is None:
        return None
    if isinstance(value, list):
        joined = "\n".join(
            item.strip() for item in value if isinstance(item, str) and item.strip()
        )
        return normalize_multiline(joined)
    if not isinstance(value, str):
        return None
    lines = value.replace("\r\n", "\n").split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    result = "\n".join(lines).strip()
    return result or None


def merge_labels(*sources: str | list[str] | None) -> list[str] | None:
    """Merge CSV strings and lists into one de-duplicated label list."""
    labels: dict[str, None] = {}
    for source in sources:
        if not source:
            continue
        items = source.split(",") if isinstance(source, str) else source
        for item in items:
            if isinstance(item, str) and item.strip():
                labels[item.strip()] = None
    return list(labels) or None


def parse_fields(value: str | dict[str, Any] | None, label: str = "fields JSON") -> dict[str, Any]:
    """Parse a JSON object given as a string, or pass a mapping through.

    Raises:
        AppError: ``VALIDATION_ERROR`` when the string is not a JSON object.
    """
    if not value:
        return {}
    if isinstance(value, dict):
        return dict(value)
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise AppError.validation(f"Failed to parse {label}: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise AppError.validation(f"Failed to parse {label}: expected a JSON object")
    return parsed


# ---------------------------------------------------------------------------
# Acceptance criteria
# ---------------------------------------------------------------------------


def _escape_cell(value: str) -> str:
    return value.replace("|", "\\|")


def acceptance_rows(text: str) -> list[tuple[str, str, str]]:
    """Extract ``(given, when, then)`` rows from bullet lines."""
    rows: list[tuple[str, str, str]] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        match = _ACCEPTANCE_ROW_RE.match(line)
        if match is None:
            continue
        given, when, then = (part.strip() for part in match.groups())
        then = then.removesuffix(".")
        rows.append((_escape_cell(given), _escape_cell(when), _escape_cell(then)))
    return rows


def format_acceptance_as_table(text: str | None) -> str | None:
    """Render Given/When/Then bullets as Jira wiki table markup.

    Text without any parsable line is returned unchanged.
    """
    if not text:
        return text
    rows = acceptance_rows(text)
    if not rows:
        return text
    body = "\n".join(f"| {given} | {when} | {then} |" for given, when, then in rows)
    return f"{ACCEPTANCE_TABLE_HEADER}\n{body}"


# ---------------------------------------------------------------------------
# Plain-text rendering
# ---------------------------------------------------------------------------


def _decode_entities(text: str) -> str:
    return html.unescape(text).replace("\xa0", " ")


def _cleanup_whitespace(text: str) -> str:
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _strip_html(markup: str) -> str:
    text = re.sub(r"<\s*br\s*/?\s*>", "\n", markup, flags=re.IGNORECASE)
    text = re.sub(r"<\s*li[^>]*>", "\n- ", text, flags=re.IGNORECASE)
    text = re.sub(r"</(p|div|h[1-6]|li|ul|ol)[^>]*>", "\n", text, flags=re.IGNORECASE)
    text = _HTML_TAG_RE.sub("", text)
    return _decode_entities(text)


def _prefix_lines(text: str, prefix: str) -> str:
    lines = []
    for index, line in enumerate(text.splitlines()):
        stripped = line.strip()
        if not stripped:
            lines.append(prefix if prefix.strip() else "")
            continue
        padding = prefix if index == 0 else " " * len(prefix)
        lines.append(f"{padding}{stripped}")
    return "\n".join(lines)


def indent_block(text: str, indent: str = "  ") -> str:
    return "\n".join(f"{indent}{line}" if line else line for line in text.splitlines())


def to_plain_text(value: Any) -> str:
    """Render strings, HTML, lists, or ADF document nodes as plain text."""
    if value is None:
        return ""
    if isinstance(value, str):
        text = _strip_html(value) if _HTML_TAG_RE.search(value) else value
        return _cleanup_whitespace(text.replace("\r\n", "\n").replace("\u00a0", " "))
    if isinstance(value, list):
        parts = [to_plain_text(item) for item in value]
        return _cleanup_whitespace("\n".join(part for part in parts if part))
    if isinstance(value, dict):
        node_type = value.get("type")
        content = value.get("content") or []
        if node_type == "text":
            return _cleanup_whitespace(value.get("text") or "")
        if node_type == "hardBreak":
            return ""
        if node_type == "bulletList":
            items = [to_plain_text(item) for item in content]
            return _cleanup_whitespace(
                "\n".join(_prefix_lines(item, "- ") for item in items if item)
            )
        if node_type == "orderedList":
            items = [to_plain_text(item) for item in content]
            numbered = [
                _prefix_lines(item, f"{index}. ")
                for index, item in enumerate((i for i in items if i), start=1)
            ]
            return _cleanup_whitespace("\n".join(numbered))
        if "content" in value:
            return _cleanup_whitespace(to_plain_text(content))
        for key in ("text", "value"):
            if isinstance(value.get(key), str):
                return _cleanup_whitespace(value[key])
    return _cleanup_whitespace(str(value))


# ---------------------------------------------------------------------------
# Clean issue view
# ---------------------------------------------------------------------------


def format_user(user: Any, fallback: str | None = None) -> str | None:
    if not isinstance(user, dict) or not user:
        return fallback
    return user.get("displayName") or user.get("name") or user.get("accountId") or fallback


def _find_field_by_name(issue: JiraIssue, pattern: re.Pattern[str]) -> Any:
    for key, label in issue.names.items():
        if not pattern.search(label):
            continue
        value = issue.fields.get(key)
        if value in (None, ""):
            continue
        return value
    return None


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _story_points(issue: JiraIssue) -> float | None:
    value = _find_field_by_name(issue, re.compile(r"story points", re.IGNORECASE))
    if value is None:
        value = issue.fields.get(_STORY_POINTS_FALLBACK_FIELD)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _epic(fields: dict[str, Any]) -> CleanEpic | None:
    raw = next(
        (fields[key] for key in _EPIC_FALLBACK_FIELDS if fields.get(key) is not None),
        None,
    )
    if raw is None:
        return None
    if isinstance(raw, str):
        return CleanEpic(key=_blank_to_none(raw))
    if not isinstance(raw, dict):
        return None
    summary = (raw.get("fields") or {}).get("summary") or raw.get("summary") or raw.get("name")
    epic = CleanEpic(key=_blank_to_none(raw.get("key")), summary=_blank_to_none(summary))
    if epic.key is None and epic.summary is None:
        return None
    return epic


def _comments(fields: dict[str, Any]) -> list[CleanComment] | None:
    comments = (fields.get("comment") or {}).get("comments") or []
    recent: list[CleanComment] = []
    for comment in comments[-2:]:
        body = to_plain_text(comment.get("body") or comment.get("renderedBody"))
        recent.append(
            CleanComment(
                id=comment.get("id"),
                author=format_user(comment.get("author")),
                created=comment.get("created"),
                body=body or None,
            )
        )
    return recent or None


def build_clean_issue(issue: JiraIssue, base_url: str | None = None) -> CleanIssue:
    """Flatten *issue* into a ``CleanIssue`` with empty values dropped."""
    fields = issue.fields
    browse_url = f"{base_url.rstrip('/')}/browse/{issue.key}" if base_url else None

    description = to_plain_text(fields.get("description")) or to_plain_text(
        issue.rendered_fields.get("description")
    )
    acceptance_raw = _find_field_by_name(issue, re.compile(r"acceptance", re.IGNORECASE))
    if acceptance_raw is None:
        acceptance_raw = fields.get(_ACCEPTANCE_FALLBACK_FIELD)
    acceptance = to_plain_text(acceptance_raw) if acceptance_raw is not None else ""

    project = fields.get("project")
    fix_versions = [
        version["name"]
        for version in fields.get("fixVersions") or []
        if isinstance(version, dict) and version.get("name")
    ]

    return CleanIssue(
        id=issue.id,
        key=issue.key,
        summary=_blank_to_none(fields.get("summary")),
        description=description or None,
        issue_type=(fields.get("issuetype") or {}).get("name"),
        status=(fields.get("status") or {}).get("name"),
        reporter=format_user(fields.get("reporter")),
        assignee=format_user(fields.get("assignee"), "Unassigned"),
        priority=(fields.get("priority") or {}).get("name"),
        story_points=_story_points(issue),
        project=CleanProject(
            id=project.get("id"), key=project.get("key"), name=project.get("name")
        )
        if isinstance(project, dict)
        else None,
        due_date=fields.get("duedate") or None,
        labels=list(fields.get("labels") or []) or None,
        epic=_epic(fields),
        fix_versions=fix_versions or None,
        created=fields.get("created"),
        updated=fields.get("updated"),
        url=browse_url,
        acceptance_criteria=acceptance or None,
        comments=_comments(fields),
    )


def _format_date(value: str) -> str:
    try:
        return datetime.fromisoformat(value).date().isoformat()
    except ValueError:
        return value


def format_issue_for_llm(clean: CleanIssue) -> str:
    """Render a ``CleanIssue`` as compact text for pasting into a prompt."""
    lines = [
        f"{clean.key} | {clean.issue_type or 'Issue'} | "
        f"Status: {clean.status or 'Unknown'} | "
        f"Priority: {clean.priority or 'Unspecified'}",
        f"Summary: {clean.summary or 'n/a'}",
    ]
    if clean.project and clean.project.key:
        project_line = clean.project.key
        if clean.project.name:
            project_line = f"{clean.project.key} - {clean.project.name}"
        lines.append(f"Project: {project_line}")
    if clean.reporter:
        lines.append(f"Reporter: {clean.reporter}")
    if clean.assignee:
        lines.append(f"Assignee: {clean.assignee}")
    if clean.labels:
        lines.append(f"Labels: {', '.join(clean.labels)}")
    if clean.epic:
        epic_line = " - ".join(part for part in (clean.epic.key, clean.epic.summary) if part)
        if epic_line:
            lines.append(f"Epic: {epic_line}")
    if clean.story_points is not None:
        lines.append(f"Story Points: {clean.story_points:g}")
    if clean.due_date:
        lines.append(f"Due: {clean.due_date}")
    if clean.fix_versions:
        lines.append(f"Fix Versions: {', '.join(clean.fix_versions)}")
    if clean.created:
        lines.append(f"Created: {clean.created}")
    if clean.updated:
        lines.append(f"Updated: {clean.updated}")
    if clean.url:
        lines.append(f"URL: {clean.url}")

    if clean.description:
        lines.extend(["", f"Description:\n{indent_block(clean.description)}"])
    if clean.acceptance_criteria:
        lines.extend(
            ["", f"Acceptance Criteria:\n{indent_block(clean.acceptance_criteria)}"]
        )
    if clean.comments:
        lines.extend(["", f"Recent Comments ({len(clean.comments)} shown):"])
        for comment in clean.comments:
            header = " @ ".join(
                part
                for part in (
                    comment.author,
                    _format_date(comment.created) if comment.created else None,
                )
                if part
            )
            entry = f"- {header or 'Comment'}"
            if comment.body:
                entry += f"\n{indent_block(comment.body, '    ')}"
            lines.append(entry)

    return "\n".join(lines).strip()
