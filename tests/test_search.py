"""Tests for message search and snippet extraction."""

from omnisess.core import Message, Role
from omnisess.search import extract_snippet, search_messages


class TestExtractSnippet:
    def test_short_content_is_returned_whole(self):
        assert extract_snippet("hello world", 6, 5) == "hello world"

    def test_content_of_exactly_target_length_has_no_markers(self):
        assert extract_snippet("x" * 200, 0, 1) == "x" * 200
        assert extract_snippet("x" * 201, 0, 1) == "x" * 200 + "..."

    def test_match_in_the_middle_gets_both_markers(self):
        content = "a" * 300 + "NEEDLE" + "b" * 300
        snippet = extract_snippet(content, 300, 6)
        assert snippet.startswith("...")
        assert snippet.endswith("...")
        assert "NEEDLE" in snippet
        assert len(snippet) == 200 + 6

    def test_match_at_start_shifts_window_right(self):
        content = "NEEDLE" + "x" * 500
        snippet = extract_snippet(content, 0, 6)
        assert snippet == content[:200] + "..."

    def test_match_at_end_shifts_window_left(self):
        content = "x" * 500 + "NEEDLE"
        snippet = extract_snippet(content, 500, 6)
        assert snippet == "..." + content[-200:]

    def test_match_longer_than_target(self):
        content = "x" * 100 + "y" * 300 + "z" * 100
        snippet = extract_snippet(content, 100, 300)
        assert snippet == "..." + "y" * 300 + "..."


class TestSearchMessages:
    def test_case_insensitive_one_match_per_message(self):
        messages = [
            Message(role=Role.USER, content="Fix the Auth bug, auth is broken"),
            Message(role=Role.ASSISTANT, content="Nothing relevant here"),
            Message(role=Role.ASSISTANT, content="AUTH fixed"),
        ]
        matches = search_messages(messages, "auth")
        assert [(m.message_index, m.role) for m in matches] == [
            (0, Role.USER),
            (2, Role.ASSISTANT),
        ]
        assert matches[0].snippet == "Fix the Auth bug, auth is broken"

    def test_no_matches(self):
        assert search_messages([Message(role=Role.USER, content="hello")], "bye") == []

    def test_empty_query_matches_every_message(self):
        messages = [
            Message(role=Role.USER, content="hello"),
            Message(role=Role.ASSISTANT, content="y" * 300),
        ]
        matches = search_messages(messages, "")
        assert [m.message_index for m in matches] == [0, 1]
        assert matches[0].snippet == "hello"
        assert matches[1].snippet == "y" * 200 + "..."
