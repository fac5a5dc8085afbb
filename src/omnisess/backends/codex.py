"""Codex CLI session backend.

Reads sessions from ~/.codex:

- ``history.jsonl``: one line per prompt with ``session_id``, ``ts``
  (epoch seconds) and ``text``.
- ``sessions/YYYY/MM/DD/rollout-<datetime>-<uuid>.jsonl``: transcripts.

Transcript lines carry ``timestamp``, ``type`` and ``payload``:
- "session_meta": ``payload.cwd`` is the project directory and
  ``payload.git.branch`` the branch, when present.
- "turn_context": ``payload.model`` names the model in use.
- "response_item" with ``payload.type == "message"``: a conversation turn.
- "event_msg": UI events that repeat the response items' text. Skipped,
  so each turn appears once.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from ..config import get_codex_path
from ..core import ListOptions, Message, ParseResult, Role, SearchResult, Session, Tool
from ..detect import truncate
from ..errors import LineTooLongError, SessionLookupError, SessionParseError
from ..history import load_history, parse_codex_history_line
from ..lines import SESSION_MAX_LINE, scan_lines
from ..provider import (
    PREVIEW_LENGTH,
    SessionSource,
    file_mtime,
    first_user_preview,
    later,
    parse_timestamp,
)
from ..resolver import glob_sorted, resolve_session_file
from ..search import search_messages

logger = logging.getLogger(__name__)

HISTORY_FILE = "history.jsonl"
SESSIONS_DIR = "sessions"
UUID_LENGTH = 36

# response_item roles; anything else (system, tool output, ...) is dropped.
RESPONSE_ITEM_ROLES = {
    "developer": Role.USER,
    "assistant": Role.ASSISTANT,
}


class CodexSource(SessionSource):
    """Source for Codex CLI sessions."""

    name = Tool.CODEX

    def get_base_path(self) -> Path:
        return get_codex_path()

    def list_sessions(self, opts: Optional[ListOptions] = None) -> list[Session]:
        opts = opts or ListOptions()
        entries = load_history(self.get_base_path() / HISTORY_FILE, parse_codex_history_line)
        running = self.tool_running()

        sessions = []
        for entry in entries:
            path = self._find_session_file(entry.session_id)

            updated_at = entry.updated_at
            project = ""
            if path is not None:
                updated_at = later(updated_at, file_mtime(path))
                project = read_session_cwd(path)

            preview = truncate(entry.display, PREVIEW_LENGTH)
            session = Session(
                id=entry.session_id,
                tool=Tool.CODEX,
                project=project,
                title=preview,
                preview=preview,
                started_at=entry.started_at,
                updated_at=updated_at,
                active=self.session_active(running, path),
            )
            if self.matches_filter(session, opts):
                sessions.append(session)

        return self.sort_and_limit(sessions, opts.limit)

    def get_session(self, session_id: str) -> Optional[Session]:
        resolved = resolve_session_file(
            self.get_base_path() / SESSIONS_DIR,
            session_id,
            _session_pattern,
            session_id_from_path,
        )
        if resolved is None:
            return None

        result = parse_session_file(resolved.path)
        if result.error is not None:
            raise SessionParseError(resolved.path, result.error, partial=result) from result.error

        stamps = [m.timestamp for m in result.messages if m.timestamp is not None]
        preview = first_user_preview(result.messages)

        return Session(
            id=resolved.session_id,
            tool=Tool.CODEX,
            project=result.cwd,
            branch=result.branch,
            model=result.model,
            title=preview,
            preview=preview,
            started_at=stamps[0] if stamps else None,
            updated_at=later(stamps[-1] if stamps else None, file_mtime(resolved.path)),
            active=self.session_active(self.tool_running(), resolved.path),
            messages=result.messages,
        )

    def search(self, query: str, opts: Optional[ListOptions] = None) -> list[SearchResult]:
        opts = opts or ListOptions()
        results = []

        for session in self.list_sessions(opts):
            path = self._find_session_file(session.id)
            if path is None:
                continue

            parsed = parse_session_file(path)
            if parsed.error is not None:
                logger.warning("Skipping codex session %s in search: %s", session.id, parsed.error)
                continue

            if not self.matches_project(parsed.cwd, opts.project):
                continue

            matches = search_messages(parsed.messages, query)
            if not matches:
                continue

            session.project = parsed.cwd or session.project
            session.branch = parsed.branch or session.branch
            session.model = parsed.model or session.model
            results.append(SearchResult(session=session, matches=matches))

        return results

    # ── Private helpers ──────────────────────────────────────────────

    def _find_session_file(self, session_id: str) -> Optional[Path]:
        try:
            matches = glob_sorted(
                self.get_base_path() / SESSIONS_DIR, _session_pattern(session_id, False)
            )
        except SessionLookupError as e:
            logger.warning("Finding codex session file for %s: %s", session_id, e)
            return None
        return matches[0] if matches else None


def _session_pattern(session_id: str, prefix: bool) -> str:
    # sessions/YYYY/MM/DD/rollout-<datetime>-<uuid>.jsonl
    if prefix:
        return f"*/*/*/*-{session_id}*.jsonl"
    return f"*/*/*/*-{session_id}.jsonl"


def session_id_from_path(path: Path) -> str:
    """Return the trailing UUID of a rollout file name, or the whole stem."""
    stem = path.name
    if stem.endswith(".jsonl"):
        stem = stem[: -len(".jsonl")]
    if len(stem) >= UUID_LENGTH:
        candidate = stem[-UUID_LENGTH:]
        if all(candidate[i] == "-" for i in (8, 13, 18, 23)):
            return candidate
    return stem


# ── Line parsing ─────────────────────────────────────────────────────


def map_response_item_role(role: Any) -> Optional[Role]:
    return RESPONSE_ITEM_ROLES.get(role) if isinstance(role, str) else None


def extract_response_content(content: Any) -> str:
    """Join the non-empty ``text`` fields of a response item's content."""
    if not isinstance(content, list):
        return ""
    parts = []
    for item in content:
        if isinstance(item, dict):
            text = item.get("text")
            if isinstance(text, str) and text:
                parts.append(text)
    return "\n".join(parts)


def response_item_to_message(line: dict) -> Optional[Message]:
    """Convert a "response_item" line to a Message, or None if it is not one."""
    if line.get("type") != "response_item":
        return None
    payload = line.get("payload")
    if not isinstance(payload, dict) or payload.get("type") != "message":
        return None
    role = map_response_item_role(payload.get("role"))
    if role is None:
        return None
    return Message(
        role=role,
        content=extract_response_content(payload.get("content")),
        timestamp=parse_timestamp(line.get("timestamp")),
    )


def _apply_metadata(line: dict, result: ParseResult) -> None:
    payload = line.get("payload")
    if not isinstance(payload, dict):
        return
    line_type = line.get("type")
    if line_type == "session_meta":
        cwd = payload.get("cwd")
        if not result.cwd and isinstance(cwd, str):
            result.cwd = cwd
        git = payload.get("git")
        if not result.branch and isinstance(git, dict) and isinstance(git.get("branch"), str):
            result.branch = git["branch"]
    elif line_type == "turn_context":
        model = payload.get("model")
        if not result.model and isinstance(model, str):
            result.model = model


def parse_session_file(path: Path) -> ParseResult:
    """Parse a rollout file into messages plus cwd, branch and model.

    On a read failure the returned result carries the error alongside the
    messages parsed up to that point.
    """
    result = ParseResult()
    try:
        f = path.open(encoding="utf-8", errors="replace")
    except OSError as e:
        result.error = e
        return result

    with f:
        try:
            for line_num, raw in scan_lines(f, path, SESSION_MAX_LINE):
                if not raw.strip():
                    continue
                try:
                    line = json.loads(raw)
                except json.JSONDecodeError as e:
                    logger.debug("Bad JSON at %s:%d: %s", path, line_num, e)
                    continue
                if not isinstance(line, dict):
                    continue

                if line.get("type") == "response_item":
                    msg = response_item_to_message(line)
                    if msg is not None:
                        result.messages.append(msg)
                else:
                    _apply_metadata(line, result)
        except (LineTooLongError, OSError) as e:
            result.error = e

    return result


def read_session_cwd(path: Path) -> str:
    """Return ``payload.cwd`` from the file's first line if it is session_meta."""
    try:
        with path.open(encoding="utf-8", errors="replace") as f:
            first = f.readline(SESSION_MAX_LINE)
    except OSError:
        return ""
    try:
        line = json.loads(first)
    except json.JSONDecodeError:
        return ""
    if not isinstance(line, dict) or line.get("type") != "session_meta":
        return ""
    payload = line.get("payload")
    if not isinstance(payload, dict):
        return ""
    cwd = payload.get("cwd")
    return cwd if isinstance(cwd, str) else ""
