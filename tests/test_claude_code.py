"""Tests for the Claude Code backend."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from conftest import CLAUDE_ORPHAN, CLAUDE_SESSION_1, CLAUDE_SESSION_2, write_jsonl
from omnisess.backends import claude_code
from omnisess.backends.claude_code import (
    ClaudeCodeSource,
    entry_to_message,
    extract_tool_calls,
    parse_session_file,
)
from omnisess.core import ListOptions, Role, Tool
from omnisess.errors import AmbiguousPrefixError, SessionParseError
from omnisess.pathcodec import CLAUDE_CODEC


class TestClaudeCodeSource:
    """Tests for ClaudeCodeSource."""

    def test_is_available_with_data(self, claude_dir):
        assert ClaudeCodeSource().is_available() is True

    def test_is_available_without_data(self, tmp_path):
        source = ClaudeCodeSource()
        with patch.object(source, "get_base_path", return_value=tmp_path / "nonexistent"):
            assert source.is_available() is False
            assert source.list_sessions() == []

    def test_list_sessions_merges_history_and_orphans(self, claude_dir, project_dir):
        sessions = ClaudeCodeSource().list_sessions()
        by_id = {s.id: s for s in sessions}
        assert set(by_id) == {CLAUDE_SESSION_1, CLAUDE_SESSION_2, CLAUDE_ORPHAN}
        assert sessions[-1].id == CLAUDE_SESSION_2

        s1 = by_id[CLAUDE_SESSION_1]
        assert s1.tool == Tool.CLAUDE
        assert s1.title == "Refactor the auth module"
        assert s1.project == str(project_dir)
        assert s1.branch == "feature/auth"
        assert s1.model == "claude-sonnet-4"
        assert s1.started_at == datetime(2025, 1, 20, 10, 0, tzinfo=timezone.utc)
        # The transcript's mtime is newer than the last history line.
        assert s1.updated_at > datetime(2025, 1, 20, 10, 30, tzinfo=timezone.utc)
        assert s1.messages is None

        s2 = by_id[CLAUDE_SESSION_2]
        assert s2.project == "/srv/other"
        assert s2.updated_at == datetime(2025, 1, 20, 9, 0, tzinfo=timezone.utc)
        assert s2.branch == ""

        orphan = by_id[CLAUDE_ORPHAN]
        assert orphan.project == str(project_dir)
        assert orphan.preview == "Started from the IDE"
        assert orphan.branch == "main"

    def test_list_sessions_is_sorted_newest_first(self, claude_dir):
        sessions = ClaudeCodeSource().list_sessions()
        stamps = [s.updated_at for s in sessions]
        assert stamps == sorted(stamps, reverse=True)

    def test_project_filter_is_case_sensitive(self, claude_dir):
        source = ClaudeCodeSource()
        assert [s.id for s in source.list_sessions(ListOptions(project="other"))] == [CLAUDE_SESSION_2]
        assert source.list_sessions(ListOptions(project="OTHER")) == []

    def test_since_filter(self, claude_dir):
        sessions = ClaudeCodeSource().list_sessions(ListOptions(since=timedelta(days=1)))
        assert {s.id for s in sessions} == {CLAUDE_SESSION_1, CLAUDE_ORPHAN}

    def test_limit_applies_after_sorting(self, claude_dir):
        sessions = ClaudeCodeSource().list_sessions(ListOptions(limit=1))
        assert len(sessions) == 1
        assert sessions[0].id != CLAUDE_SESSION_2

    def test_active_requires_running_tool(self, claude_dir):
        source = ClaudeCodeSource()
        assert source.list_sessions(ListOptions(active=True)) == []

        with patch.object(source, "tool_running", return_value=True):
            active = source.list_sessions(ListOptions(active=True))
        assert {s.id for s in active} == {CLAUDE_SESSION_1, CLAUDE_ORPHAN}
        assert all(s.active for s in active)

    def test_get_session_returns_messages(self, claude_dir, project_dir):
        session = ClaudeCodeSource().get_session(CLAUDE_SESSION_1)
        assert session.id == CLAUDE_SESSION_1
        assert session.project == str(project_dir)
        assert session.branch == "feature/auth"
        assert session.model == "claude-sonnet-4"
        assert session.title == "Refactor the auth module"

        roles = [m.role for m in session.messages]
        assert roles == [Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT]
        assistant = session.messages[1]
        assert assistant.content == "Let me read the current code."
        assert [tc.name for tc in assistant.tool_calls] == ["Read"]
        assert assistant.tool_calls[0].input == '{"file_path":"/src/auth.ts"}'
        assert session.started_at == datetime(2025, 1, 20, 10, 0, 0, 123000, tzinfo=timezone.utc)

    def test_get_session_by_prefix(self, claude_dir):
        session = ClaudeCodeSource().get_session(CLAUDE_SESSION_1[:8])
        assert session.id == CLAUDE_SESSION_1

    def test_get_session_ambiguous_prefix(self, claude_dir, project_dir):
        encoded = claude_dir / "projects" / CLAUDE_CODEC.encode(str(project_dir))
        write_jsonl(encoded / "aaaa9999-0000-4000-8000-000000000000.jsonl", [{"type": "summary"}])
        with pytest.raises(AmbiguousPrefixError) as exc_info:
            ClaudeCodeSource().get_session("aaaa")
        assert CLAUDE_SESSION_1 in exc_info.value.matches

    def test_get_session_missing(self, claude_dir):
        assert ClaudeCodeSource().get_session("ffffffff") is None

    def test_get_session_reports_truncated_file(self, claude_dir, monkeypatch):
        path = write_jsonl(claude_dir / "projects" / "-tmp-x" / "dddd4444.jsonl", [
            {"type": "user", "message": {"role": "user", "content": "short"}},
            {"type": "user", "message": {"role": "user", "content": "y" * 500}},
        ])
        monkeypatch.setattr(claude_code, "SESSION_MAX_LINE", 200)
        with pytest.raises(SessionParseError) as exc_info:
            ClaudeCodeSource().get_session("dddd4444")
        assert exc_info.value.path == path
        assert [m.content for m in exc_info.value.partial.messages] == ["short"]

    def test_search(self, claude_dir):
        results = ClaudeCodeSource().search("AUTH")
        assert [r.session.id for r in results] == [CLAUDE_SESSION_1]
        matches = results[0].matches
        assert [m.message_index for m in matches] == [0, 3]
        assert results[0].session.model == "claude-sonnet-4"

    def test_search_respects_project_filter(self, claude_dir):
        assert ClaudeCodeSource().search("auth", ListOptions(project="/srv")) == []


class TestLineParsing:
    def test_summary_and_unknown_lines_are_skipped(self, claude_dir, project_dir):
        path = claude_dir / "projects" / CLAUDE_CODEC.encode(str(project_dir)) / f"{CLAUDE_SESSION_1}.jsonl"
        result = parse_session_file(path)
        assert result.ok
        assert all("AUTH module" not in m.content for m in result.messages)
        assert result.cwd == str(project_dir)

    def test_unknown_role_is_dropped(self):
        entry = {"type": "user", "message": {"role": "human", "content": "hi"}}
        assert entry_to_message(entry) is None

    def test_role_defaults_to_line_type(self):
        msg = entry_to_message({"type": "assistant", "message": {"content": "ok"}})
        assert msg.role == Role.ASSISTANT

    def test_tool_input_is_truncated(self):
        calls = extract_tool_calls([
            {"type": "tool_use", "name": "Write", "input": {"content": "z" * 500}},
        ])
        assert len(calls[0].input) == 203
        assert calls[0].input.endswith("...")

    def test_missing_file(self, tmp_path):
        result = parse_session_file(tmp_path / "missing.jsonl")
        assert not result.ok
        assert result.messages == []
