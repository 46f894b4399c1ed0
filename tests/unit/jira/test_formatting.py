"""Unit tests for jira_confluence.jira.formatting."""

from __future__ import annotations

import pytest

from jira_confluence.exceptions import AppError, ErrorCode
from jira_confluence.jira.formatting import (
    ACCEPTANCE_TABLE_HEADER,
    build_clean_issue,
    format_acceptance_as_table,
    format_issue_for_llm,
    format_user,
    merge_labels,
    normalize_multiline,
    normalize_text,
    parse_fields,
    to_plain_text,
)
from jira_confluence.jira.models import JiraIssue

# ---- input normalization ----------------------------------------------------


class TestNormalization:
    """Small helpers applied to CLI and JSON input."""

    def test_normalize_text(self) -> None:
        assert normalize_text("  ABC ") == "ABC"
        assert normalize_text("   ") is None
        assert normalize_text(42) is None

    def test_normalize_multiline_trims_blank_edges(self) -> None:
        assert normalize_multiline("\n\nline 1\n  line 2\n\n") == "line 1\n  line 2"

    def test_normalize_multiline_joins_lists(self) -> None:
        assert normalize_multiline([" a ", "", "b"]) == "a\nb"
        assert normalize_multiline([]) is None

    def test_merge_labels_dedupes_in_order(self) -> None:
        assert merge_labels(["backend", "api"], "api, ui ,") == ["backend", "api", "ui"]
        assert merge_labels(None, "") is None

    def test_parse_fields(self) -> None:
        assert parse_fields('{"customfield_1": 5}') == {"customfield_1": 5}
        assert parse_fields(None) == {}
        assert parse_fields({"a": 1}) == {"a": 1}

    @pytest.mark.parametrize("raw", ["{bad", "[1, 2]"])
    def test_parse_fields_rejects(self, raw: str) -> None:
        with pytest.raises(AppError) as exc_info:
            parse_fields(raw, "fields JSON")
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert exc_info.value.message.startswith("Failed to parse fields JSON")


# ---- acceptance table -------------------------------------------------------


class TestAcceptanceTable:
    """Given/When/Then bullets become a wiki table."""

    def test_formats_rows(self) -> None:
        text = (
            "- Given a user, when they log in, then they see the dashboard.\n"
            "Given an admin, when they open settings, then the audit log is shown"
        )
        assert format_acceptance_as_table(text) == (
            f"{ACCEPTANCE_TABLE_HEADER}\n"
            "| a user | they log in | they see the dashboard |\n"
            "| an admin | they open settings | the audit log is shown |"
        )

    def test_escapes_pipes(self) -> None:
        table = format_acceptance_as_table("Given a|b, when c, then d")
        assert table is not None
        assert "| a\\|b | c | d |" in table

    def test_free_text_is_unchanged(self) -> None:
        assert format_acceptance_as_table("Must be fast") == "Must be fast"

    def test_empty(self) -> None:
        assert format_acceptance_as_table(None) is None
        assert format_acceptance_as_table("") == ""


# ---- plain text -------------------------------------------------------------


class TestToPlainText:
    """Strings, HTML, and ADF documents."""

    def test_plain_string(self) -> None:
        assert to_plain_text("  hello\r\nworld  ") == "hello\nworld"

    def test_html(self) -> None:
        html = "<p>First &amp; second</p><ul><li>one</li><li>two</li></ul>"
        assert to_plain_text(html) == "First & second\n\n- one\n\n- two"

    def test_html_entities(self) -> None:
        html = "<p>a&nbsp;&lt;b&gt; &eacute;t&eacute; &#8230; &#x27;q&#x27; &AMP;</p>"
        assert to_plain_text(html) == "a <b> été … 'q' &"

    def test_adf_document(self) -> None:
        doc = {
            "type": "doc",
            "content": [
                {"type": "paragraph", "content": [{"type": "text", "text": "Intro"}]},
                {
                    "type": "bulletList",
                    "content": [
                        {
                            "type": "listItem",
                            "content": [
                                {"type": "paragraph", "content": [{"type": "text", "text": "a"}]}
                            ],
                        },
                        {
                            "type": "listItem",
                            "content": [
                                {"type": "paragraph", "content": [{"type": "text", "text": "b"}]}
                            ],
                        },
                    ],
                },
            ],
        }
        assert to_plain_text(doc) == "Intro\n- a\n- b"

    def test_ordered_list(self) -> None:
        doc = {
            "type": "orderedList",
            "content": [
                {"type": "listItem", "content": [{"type": "text", "text": "x"}]},
                {"type": "listItem", "content": [{"type": "text", "text": "y"}]},
            ],
        }
        assert to_plain_text(doc) == "1. x\n2. y"

    def test_none(self) -> None:
        assert to_plain_text(None) == ""


# ---- clean issue ------------------------------------------------------------


def _issue() -> JiraIssue:
    return JiraIssue.model_validate(
        {
            "id": "10001",
            "key": "ABC-7",
            "fields": {
                "summary": " Ship the thing ",
                "description": "<p>Do it well</p>",
                "issuetype": {"name": "Story"},
                "status": {"name": "In Progress"},
                "priority": {"name": "High"},
                "reporter": {"displayName": "Rita Reporter"},
                "assignee": None,
                "project": {"id": "1", "key": "ABC", "name": "Alphabet"},
                "labels": ["api"],
                "customfield_10002": "5",
                "customfield_10008": "ABC-1",
                "customfield_12345": "Given x, when y, then z",
                "fixVersions": [{"name": "1.0"}, {"id": "2"}],
                "created": "2024-03-01T09:00:00+00:00",
                "comment": {
                    "comments": [
                        {"id": "1", "body": "old", "author": {"name": "a"}},
                        {"id": "2", "body": "middle", "author": {"name": "b"}},
                        {
                            "id": "3",
                            "body": "newest",
                            "author": {"displayName": "Carol"},
                            "created": "2024-03-05T10:00:00+00:00",
                        },
                    ]
                },
            },
            "names": {"customfield_12345": "Acceptance Criteria"},
        }
    )


class TestBuildCleanIssue:
    """Flattening a raw issue."""

    def test_core_fields(self) -> None:
        clean = build_clean_issue(_issue(), "https://jira.example.com/")
        assert clean.key == "ABC-7"
        assert clean.summary == "Ship the thing"
        assert clean.description == "Do it well"
        assert clean.issue_type == "Story"
        assert clean.status == "In Progress"
        assert clean.reporter == "Rita Reporter"
        assert clean.assignee == "Unassigned"
        assert clean.url == "https://jira.example.com/browse/ABC-7"
        assert clean.fix_versions == ["1.0"]

    def test_custom_fields(self) -> None:
        clean = build_clean_issue(_issue())
        assert clean.story_points == 5.0
        assert clean.epic is not None
        assert clean.epic.key == "ABC-1"
        assert clean.acceptance_criteria == "Given x, when y, then z"
        assert clean.url is None

    def test_keeps_last_two_comments(self) -> None:
        clean = build_clean_issue(_issue())
        assert clean.comments is not None
        assert [c.body for c in clean.comments] == ["middle", "newest"]
        assert clean.comments[1].author == "Carol"

    def test_json_dict_uses_camel_case_and_drops_empty(self) -> None:
        data = build_clean_issue(_issue()).to_json_dict()
        assert data["issueType"] == "Story"
        assert data["storyPoints"] == 5.0
        assert "dueDate" not in data

    def test_format_user(self) -> None:
        assert format_user({"name": "jdoe"}) == "jdoe"
        assert format_user(None, "Unknown") == "Unknown"


class TestFormatIssueForLlm:
    """Compact text rendering."""

    def test_renders_sections(self) -> None:
        text = format_issue_for_llm(build_clean_issue(_issue(), "https://jira.example.com"))
        lines = text.splitlines()
        assert lines[0] == "ABC-7 | Story | Status: In Progress | Priority: High"
        assert "Summary: Ship the thing" in lines
        assert "Project: ABC - Alphabet" in lines
        assert "Story Points: 5" in lines
        assert "Epic: ABC-1" in lines
        assert "Description:\n  Do it well" in text
        assert "Recent Comments (2 shown):" in lines
        assert "- Carol @ 2024-03-05\n    newest" in text
