"""Claude Code session backend.

Reads sessions from ~/.claude:

- ``history.jsonl``: one line per submitted prompt, with ``sessionId``,
  ``display`` (the prompt), ``project`` and ``timestamp`` (epoch ms).
- ``projects/<encoded-project>/<session-id>.jsonl``: full transcripts.
  The directory name is the project path with ``/`` and ``.`` turned
  into ``-`` (see pathcodec).

Transcript line types:
- "user" / "assistant": conversation turns. ``message.content`` is either
  a string or an array of blocks; "text" blocks carry the text and
  "tool_use" blocks on assistant lines are tool calls.
- "summary", "file-history-snapshot", "progress", "system", ...: skipped.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from ..config import get_claude_path
from ..core import (
    ListOptions,
    Message,
    ParseResult,
    Role,
    SearchResult,
    Session,
    Tool,
    ToolCall,
)
from ..detect import truncate
from ..errors import LineTooLongError, SessionLookupError, SessionParseError
from ..history import load_history, parse_claude_history_line
from ..lines import SESSION_MAX_LINE, scan_lines
from ..pathcodec import CLAUDE_CODEC
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
PROJECTS_DIR = "projects"
TOOL_INPUT_LIMIT = 200
METADATA_PEEK_LINES = 10
PREVIEW_PEEK_LINES = 20


class ClaudeCodeSource(SessionSource):
    """Source for Claude Code sessions."""

    name = Tool.CLAUDE

    def get_base_path(self) -> Path:
        return get_claude_path()

    def list_sessions(self, opts: Optional[ListOptions] = None) -> list[Session]:
        """List sessions from history.jsonl plus session files missing from it.

        Sessions started from other contexts (e.g. Claude Code embedded in
        an editor) never reach history.jsonl but still leave a transcript
        under projects/, so a second pass picks those up.
        """
        opts = opts or ListOptions()
        base = self.get_base_path()
        entries = load_history(base / HISTORY_FILE, parse_claude_history_line)
        running = self.tool_running()

        seen: set[str] = set()
        sessions = []

        for entry in entries:
            seen.add(entry.session_id)
            path = self._find_session_file(entry.session_id, entry.project)

            updated_at = entry.updated_at
            if path is not None:
                updated_at = later(updated_at, file_mtime(path))

            preview = truncate(entry.display, PREVIEW_LENGTH)
            session = Session(
                id=entry.session_id,
                tool=Tool.CLAUDE,
                project=entry.project,
                title=preview,
                preview=preview,
                started_at=entry.started_at,
                updated_at=updated_at,
                active=self.session_active(running, path),
            )
            if not self.matches_filter(session, opts):
                continue

            if path is not None:
                session.branch, session.model = peek_session_metadata(path)
            sessions.append(session)

        sessions.extend(
            s for s in self._orphan_sessions(seen, running)
            if self.matches_filter(s, opts)
        )

        return self.sort_and_limit(sessions, opts.limit)

    def get_session(self, session_id: str) -> Optional[Session]:
        resolved = resolve_session_file(
            self.get_base_path() / PROJECTS_DIR,
            session_id,
            _session_pattern,
            session_id_from_path,
        )
        if resolved is None:
            return None

        result = parse_session_file(resolved.path)
        if result.error is not None:
            raise SessionParseError(resolved.path, result.error, partial=result) from result.error

        messages = result.messages
        stamps = [m.timestamp for m in messages if m.timestamp is not None]
        started_at = stamps[0] if stamps else None
        updated_at = later(stamps[-1] if stamps else None, file_mtime(resolved.path))
        preview = first_user_preview(messages)

        return Session(
            id=resolved.session_id,
            tool=Tool.CLAUDE,
            project=project_from_session_path(resolved.path),
            branch=result.branch,
            title=preview,
            preview=preview,
            model=result.model,
            started_at=started_at,
            updated_at=updated_at,
            active=self.session_active(self.tool_running(), resolved.path),
            messages=messages,
        )

    def search(self, query: str, opts: Optional[ListOptions] = None) -> list[SearchResult]:
        results = []

        for session in self.list_sessions(opts):
            path = self._find_session_file(session.id, session.project)
            if path is None:
                continue

            parsed = parse_session_file(path)
            if parsed.error is not None:
                logger.warning("Skipping session %s in search: %s", session.id, parsed.error)
                continue

            matches = search_messages(parsed.messages, query)
            if not matches:
                continue

            if parsed.model:
                session.model = parsed.model
            if parsed.branch:
                session.branch = parsed.branch
            results.append(SearchResult(session=session, matches=matches))

        return results

    # ── Private helpers ──────────────────────────────────────────────

    def _find_session_file(self, session_id: str, project: str = "") -> Optional[Path]:
        """Locate a session's transcript, trying its own project dir first."""
        projects = self.get_base_path() / PROJECTS_DIR
        if project:
            candidate = projects / CLAUDE_CODEC.encode(project) / f"{session_id}.jsonl"
            if candidate.is_file():
                return candidate

        try:
            matches = glob_sorted(projects, _session_pattern(session_id, False))
        except SessionLookupError as e:
            logger.warning("Finding session file for %s: %s", session_id, e)
            return None
        return matches[0] if matches else None

    def _orphan_sessions(self, seen: set[str], running: bool) -> list[Session]:
        """Build sessions for transcripts whose ids are not in ``seen``."""
        projects = self.get_base_path() / PROJECTS_DIR
        try:
            paths = glob_sorted(projects, "*/*.jsonl")
        except SessionLookupError as e:
            logger.warning("Scanning orphan sessions: %s", e)
            return []

        decoded: dict[str, str] = {}
        orphans = []
        for path in paths:
            session_id = session_id_from_path(path)
            if not session_id or session_id in seen:
                continue
            seen.add(session_id)

            dir_name = path.parent.name
            if dir_name not in decoded:
                decoded[dir_name] = CLAUDE_CODEC.decode(dir_name)

            updated_at = file_mtime(path)
            branch, model = peek_session_metadata(path)
            preview = peek_first_user_message(path)
            orphans.append(Session(
                id=session_id,
                tool=Tool.CLAUDE,
                project=decoded[dir_name],
                branch=branch,
                model=model,
                title=preview,
                preview=preview,
                started_at=updated_at,
                updated_at=updated_at,
                active=self.session_active(running, path),
            ))
        return orphans


def _session_pattern(session_id: str, prefix: bool) -> str:
    if prefix:
        return f"*/{session_id}*.jsonl"
    return f"*/{session_id}.jsonl"


def session_id_from_path(path: Path) -> str:
    """``.../projects/-Users-foo/<id>.jsonl`` -> ``<id>``."""
    name = path.name
    if name.endswith(".jsonl"):
        return name[: -len(".jsonl")]
    return name


def project_from_session_path(path: Path) -> str:
    """``~/.claude/projects/-Users-foo-bar/<id>.jsonl`` -> ``/Users/foo/bar``."""
    return CLAUDE_CODEC.decode(path.parent.name)


# ── Line parsing ─────────────────────────────────────────────────────


def extract_content(content: Any) -> str:
    """Return the text of a string or block-array ``message.content``."""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""

    parts = []
    for block in content:
        if isinstance(block, dict) and block.get("type") == "text":
            text = block.get("text")
            if isinstance(text, str):
                parts.append(text)
    return "\n".join(parts)


def extract_tool_calls(content: Any) -> list[ToolCall]:
    """Return one ToolCall per "tool_use" block, with truncated JSON input."""
    if not isinstance(content, list):
        return []

    calls = []
    for block in content:
        if not isinstance(block, dict) or block.get("type") != "tool_use":
            continue
        name = block.get("name")
        tool_input = json.dumps(block.get("input"), separators=(",", ":"), ensure_ascii=False)
        if len(tool_input) > TOOL_INPUT_LIMIT:
            tool_input = tool_input[:TOOL_INPUT_LIMIT] + "..."
        calls.append(ToolCall(name=name if isinstance(name, str) else "", input=tool_input))
    return calls


def _entry_model(entry: dict) -> str:
    model = entry.get("model")
    if not model:
        payload = entry.get("message")
        if isinstance(payload, dict):
            model = payload.get("model")
    return model if isinstance(model, str) else ""


def entry_to_message(entry: dict) -> Optional[Message]:
    """Convert a "user"/"assistant" transcript line to a Message.

    Returns None for other line types, unusable payloads, and roles outside
    the canonical set.
    """
    entry_type = entry.get("type")
    if entry_type not in ("user", "assistant"):
        return None

    payload = entry.get("message")
    if not isinstance(payload, dict):
        return None

    try:
        role = Role(payload.get("role") or entry_type)
    except ValueError:
        return None

    content = payload.get("content")
    msg = Message(
        role=role,
        content=extract_content(content),
        timestamp=parse_timestamp(entry.get("timestamp")),
    )
    if entry_type == "assistant":
        msg.tool_calls = extract_tool_calls(content)
    return msg


def _iter_entries(f, path: Path, limit: Optional[int] = None):
    """Yield parsed JSON objects from at most ``limit`` lines."""
    for line_num, line in scan_lines(f, path, SESSION_MAX_LINE):
        if limit is not None and line_num > limit:
            return
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError as e:
            logger.debug("Bad JSON at %s:%d: %s", path, line_num, e)
            continue
        if isinstance(entry, dict):
            yield entry


def parse_session_file(path: Path) -> ParseResult:
    """Parse a transcript into messages plus the session's model and branch.

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
            for entry in _iter_entries(f, path):
                if entry.get("type") not in ("user", "assistant"):
                    continue

                if not result.branch:
                    branch = entry.get("gitBranch")
                    if isinstance(branch, str):
                        result.branch = branch
                if not result.model and entry.get("type") == "assistant":
                    result.model = _entry_model(entry)
                if not result.cwd:
                    cwd = entry.get("cwd")
                    if isinstance(cwd, str):
                        result.cwd = cwd

                msg = entry_to_message(entry)
                if msg is not None:
                    result.messages.append(msg)
        except (LineTooLongError, OSError) as e:
            result.error = e

    return result


def peek_session_metadata(path: Path) -> tuple[str, str]:
    """Read the first few lines of a transcript for its git branch and model."""
    branch = model = ""
    try:
        with path.open(encoding="utf-8", errors="replace") as f:
            for entry in _iter_entries(f, path, limit=METADATA_PEEK_LINES):
                if not branch:
                    value = entry.get("gitBranch")
                    if isinstance(value, str):
                        branch = value
                if not model and entry.get("type") == "assistant":
                    model = _entry_model(entry)
                if branch and model:
                    break
    except (LineTooLongError, OSError) as e:
        logger.debug("Peeking metadata of %s: %s", path, e)
    return branch, model


def peek_first_user_message(path: Path) -> str:
    """Return a preview of the first user message within the first lines."""
    try:
        with path.open(encoding="utf-8", errors="replace") as f:
            for entry in _iter_entries(f, path, limit=PREVIEW_PEEK_LINES):
                if entry.get("type") != "user":
                    continue
                payload = entry.get("message")
                if not isinstance(payload, dict):
                    continue
                content = extract_content(payload.get("content"))
                if content:
                    return truncate(content, PREVIEW_LENGTH)
    except (LineTooLongError, OSError) as e:
        logger.debug("Peeking first message of %s: %s", path, e)
    return ""
