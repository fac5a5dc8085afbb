"""Shared test fixtures for omnisess."""

import json
import sqlite3
from datetime import datetime, timezone

import pytest

from omnisess.pathcodec import CLAUDE_CODEC, CURSOR_CODEC

CLAUDE_SESSION_1 = "aaaa1111-1111-4111-8111-111111111111"
CLAUDE_SESSION_2 = "bbbb2222-2222-4222-8222-222222222222"
CLAUDE_ORPHAN = "cccc3333-3333-4333-8333-333333333333"

CODEX_SESSION_1 = "019a0001-aaaa-7bbb-8ccc-000000000001"
CODEX_SESSION_2 = "019a0002-aaaa-7bbb-8ccc-000000000002"

CURSOR_TRACKED = "d1d1d1d1-0000-4000-8000-000000000001"
CURSOR_ORPHAN = "e2e2e2e2-0000-4000-8000-000000000002"


def _ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def write_jsonl(path, records):
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def fake_home(tmp_path, monkeypatch):
    """Point HOME at an empty directory so no test reads real tool data."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for var in ("OMNISESS_CLAUDE_PATH", "OMNISESS_CODEX_PATH", "OMNISESS_CURSOR_PATH"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture(autouse=True)
def no_running_tools(monkeypatch):
    """Tests never depend on which processes run on the machine."""
    monkeypatch.setattr("omnisess.provider.is_tool_running", lambda name: False)


@pytest.fixture
def project_dir(fake_home):
    """A real project directory whose name contains a dash."""
    path = fake_home / "dev" / "my-app"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def claude_dir(fake_home, project_dir):
    """Create a synthetic ~/.claude with history, a transcript and an orphan.

    - CLAUDE_SESSION_1: two history lines and a transcript
    - CLAUDE_SESSION_2: one history line, no transcript, old timestamps
    - CLAUDE_ORPHAN: transcript only, never written to history
    """
    base = fake_home / ".claude"
    t0 = datetime(2025, 1, 20, 10, 0, 0, tzinfo=timezone.utc)

    write_jsonl(base / "history.jsonl", [
        {"display": "Refactor the auth module", "timestamp": _ms(t0),
         "project": str(project_dir), "sessionId": CLAUDE_SESSION_1},
        {"display": "Write tests for the API", "timestamp": _ms(t0.replace(hour=9)),
         "project": "/srv/other", "sessionId": CLAUDE_SESSION_2},
        "this is not json",
        {"display": "now add tests", "timestamp": _ms(t0.replace(minute=30)),
         "project": str(project_dir), "sessionId": CLAUDE_SESSION_1},
    ])

    encoded = base / "projects" / CLAUDE_CODEC.encode(str(project_dir))
    write_jsonl(encoded / f"{CLAUDE_SESSION_1}.jsonl", [
        {"type": "file-history-snapshot", "files": []},
        {
            "type": "user",
            "gitBranch": "feature/auth",
            "cwd": str(project_dir),
            "timestamp": "2025-01-20T10:00:00.123Z",
            "message": {"role": "user", "content": "Refactor the auth module"},
        },
        {
            "type": "assistant",
            "gitBranch": "feature/auth",
            "timestamp": "2025-01-20T10:00:30Z",
            "message": {
                "role": "assistant",
                "model": "claude-sonnet-4",
                "content": [
                    {"type": "thinking", "thinking": "Split validation from refresh."},
                    {"type": "text", "text": "Let me read the current code."},
                    {"type": "tool_use", "id": "toolu_001", "name": "Read",
                     "input": {"file_path": "/src/auth.ts"}},
                ],
            },
        },
        "{broken json",
        {
            "type": "user",
            "timestamp": "2025-01-20T10:00:31Z",
            "message": {"role": "user", "content": [
                {"type": "tool_result", "tool_use_id": "toolu_001", "content": "export function authenticate() {}"},
            ]},
        },
        {"type": "summary", "summary": "Refactored the AUTH module"},
        {
            "type": "assistant",
            "timestamp": "2025-01-20T10:30:00Z",
            "message": {"role": "assistant", "content": [
                {"type": "text", "text": "The authentication flow now validates tokens first."},
            ]},
        },
    ])

    write_jsonl(encoded / f"{CLAUDE_ORPHAN}.jsonl", [
        {
            "type": "user",
            "gitBranch": "main",
            "timestamp": "2025-01-21T08:00:00Z",
            "message": {"role": "user", "content": [{"type": "text", "text": "Started from the IDE"}]},
        },
    ])

    return base


@pytest.fixture
def codex_dir(fake_home, project_dir):
    """Create a synthetic ~/.codex with history and one rollout file.

    CODEX_SESSION_2 appears in history only.
    """
    base = fake_home / ".codex"
    t0 = datetime(2025, 2, 1, 12, 0, 0, tzinfo=timezone.utc)

    write_jsonl(base / "history.jsonl", [
        {"session_id": CODEX_SESSION_1, "ts": int(t0.timestamp()), "text": "fix the flaky test"},
        {"session_id": CODEX_SESSION_1, "ts": int(t0.timestamp()) + 120, "text": "run it again"},
        {"session_id": CODEX_SESSION_2, "ts": int(t0.timestamp()) - 3600, "text": "explain this repo"},
    ])

    rollout = (
        base / "sessions" / "2025" / "02" / "01"
        / f"rollout-2025-02-01T12-00-00-{CODEX_SESSION_1}.jsonl"
    )
    write_jsonl(rollout, [
        {"timestamp": "2025-02-01T12:00:00.000Z", "type": "session_meta",
         "payload": {"id": CODEX_SESSION_1, "cwd": str(project_dir),
                     "git": {"branch": "fix/flaky", "commit_hash": "abc123"}}},
        {"timestamp": "2025-02-01T12:00:00.100Z", "type": "turn_context",
         "payload": {"cwd": str(project_dir), "model": "gpt-5-codex"}},
        {"timestamp": "2025-02-01T12:00:01.000Z", "type": "response_item",
         "payload": {"type": "message", "role": "developer",
                     "content": [{"type": "input_text", "text": "fix the flaky test"}]}},
        {"timestamp": "2025-02-01T12:00:01.000Z", "type": "event_msg",
         "payload": {"type": "user_message", "message": "fix the flaky test"}},
        {"timestamp": "2025-02-01T12:00:02.000Z", "type": "response_item",
         "payload": {"type": "message", "role": "system",
                     "content": [{"type": "input_text", "text": "sandbox policy"}]}},
        {"timestamp": "2025-02-01T12:00:05.000Z", "type": "response_item",
         "payload": {"type": "function_call", "name": "shell", "arguments": "{}"}},
        {"timestamp": "2025-02-01T12:00:09.000Z", "type": "response_item",
         "payload": {"type": "message", "role": "assistant",
                     "content": [{"type": "output_text", "text": "The test races on the FLAKY timer."},
                                 {"type": "output_text", "text": ""}]}},
    ])
    return base


def _transcript(*lines):
    return "\n".join(lines) + "\n"


@pytest.fixture
def cursor_dir(fake_home, project_dir):
    """Create a synthetic ~/.cursor.

    - CURSOR_TRACKED: transcript plus a conversation_summaries row
    - CURSOR_ORPHAN: transcript plus chat store meta, not in the tracking db
    """
    base = fake_home / ".cursor"
    transcripts = base / "projects" / CURSOR_CODEC.encode(str(project_dir)) / "agent-transcripts"
    transcripts.mkdir(parents=True)

    (transcripts / f"{CURSOR_TRACKED}.txt").write_text(_transcript(
        "user:",
        "<user_query>",
        "Add dark mode to the settings page",
        "</user_query>",
        "",
        "assistant:",
        "[Thinking] Need to find the theme file.",
        "Looking at the theme provider.",
        "[Tool call: read_file]",
        "  path: src/theme.ts",
        "[Tool result]",
        "  export const theme = {}",
        "assistant:",
        "Dark mode is wired up.",
    ), encoding="utf-8")

    (transcripts / f"{CURSOR_ORPHAN}.txt").write_text(_transcript(
        "user: Why does the build fail?",
        "A: The lockfile is stale.",
    ), encoding="utf-8")

    tracking = base / "ai-tracking"
    tracking.mkdir(parents=True)
    conn = sqlite3.connect(str(tracking / "ai-code-tracking.db"))
    conn.execute(
        "CREATE TABLE conversation_summaries (conversationId TEXT PRIMARY KEY, title TEXT, "
        "tldr TEXT, overview TEXT, summaryBullets TEXT, model TEXT, mode TEXT, updatedAt INTEGER)"
    )
    conn.execute(
        "INSERT INTO conversation_summaries VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (CURSOR_TRACKED, "Dark mode", "Added a dark theme toggle", "", "[]",
         "claude-4-sonnet", "agent", _ms(datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc))),
    )
    conn.commit()
    conn.close()

    meta = {
        "agentId": CURSOR_ORPHAN,
        "name": "Build failure",
        "mode": "agent",
        "createdAt": _ms(datetime(2025, 3, 2, 8, 0, 0, tzinfo=timezone.utc)),
        "lastUsedModel": "gpt-5",
    }
    store_dir = base / "chats" / "workspacehash" / CURSOR_ORPHAN
    store_dir.mkdir(parents=True)
    conn = sqlite3.connect(str(store_dir / "store.db"))
    conn.execute("CREATE TABLE meta (key TEXT PRIMARY KEY, value TEXT)")
    conn.execute("INSERT INTO meta VALUES (?, ?)", ("0", json.dumps(meta).encode().hex()))
    conn.commit()
    conn.close()

    return base
