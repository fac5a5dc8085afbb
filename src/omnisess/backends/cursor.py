"""Cursor agent session backend.

Reads sessions from ~/.cursor:

- ``projects/<encoded-project>/agent-transcripts/<conversation-id>.txt``:
  plain-text agent transcripts. The project directory name is the project
  path with ``/`` and ``.`` replaced by ``-`` and no leading dash.
- ``ai-tracking/ai-code-tracking.db``: SQLite table
  ``conversation_summaries`` with title, tldr and model per conversation.
- ``chats/<workspace>/<agent>/store.db``: SQLite ``meta`` table whose key
  "0" holds hex-encoded JSON (name, createdAt, lastUsedModel).

All database access is read-only.

Transcript format, one marker per line:
- ``user:`` / ``User:`` starts a user message (text may follow the colon)
- ``assistant:`` / ``A:`` starts an assistant message
- ``[Tool call: <name>]`` starts a tool call; the following lines are its input
- ``[Tool result]`` starts the output of the most recent tool call
"""

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from ..config import get_cursor_path
from ..core import (
    ListOptions,
    Message,
    ParseResult,
    Role,
    SearchResult,
    Session,
    Tool,
    ToolCall,
    TranscriptEntry,
)
from ..detect import truncate
from ..errors import LineTooLongError, SessionParseError
from ..lines import TRANSCRIPT_MAX_LINE, scan_lines
from ..pathcodec import CURSOR_CODEC
from ..provider import PREVIEW_LENGTH, SessionSource, file_mtime, first_user_preview
from ..resolver import resolve_session_file
from ..search import search_messages

logger = logging.getLogger(__name__)

PROJECTS_DIR = "projects"
TRANSCRIPTS_DIR = "agent-transcripts"
TRACKING_DB = Path("ai-tracking") / "ai-code-tracking.db"
CHATS_DIR = "chats"

# Stripped from finished message content.
CURSOR_MARKUP = ("<user_query>", "</user_query>", "[Thinking]")


@dataclass
class ConversationSummary:
    conversation_id: str
    title: str = ""
    tldr: str = ""
    model: str = ""
    updated_at: Optional[datetime] = None


@dataclass
class ChatMeta:
    agent_id: str
    name: str = ""
    created_at: Optional[datetime] = None
    model: str = ""


class CursorSource(SessionSource):
    """Source for Cursor agent sessions."""

    name = Tool.CURSOR
    project_filter_ignores_case = True

    def get_base_path(self) -> Path:
        return get_cursor_path()

    def list_sessions(self, opts: Optional[ListOptions] = None) -> list[Session]:
        """List sessions from the tracking DB, then transcripts it does not know."""
        opts = opts or ListOptions()
        base = self.get_base_path()
        running = self.tool_running()

        transcripts = {t.conversation_id: t for t in list_all_transcripts(base)}

        try:
            summaries = read_conversation_summaries(base / TRACKING_DB)
        except sqlite3.Error as e:
            logger.warning("Could not read Cursor tracking db: %s", e)
            summaries = []

        chat_metas = read_all_chat_meta(base)

        seen: set[str] = set()
        sessions = []

        for summary in summaries:
            seen.add(summary.conversation_id)
            session = Session(
                id=summary.conversation_id,
                tool=Tool.CURSOR,
                title=summary.title,
                summary=summary.tldr,
                model=summary.model,
                started_at=summary.updated_at,
                updated_at=summary.updated_at,
                preview=truncate(summary.title or summary.tldr, PREVIEW_LENGTH),
            )

            transcript = transcripts.get(summary.conversation_id)
            if transcript is not None:
                session.project = transcript.project_path
                session.active = self.session_active(running, transcript.file_path)
                mtime = file_mtime(transcript.file_path)
                if session.updated_at is None:
                    session.updated_at = mtime
                if session.started_at is None:
                    session.started_at = mtime

            if self.matches_filter(session, opts):
                sessions.append(session)

        for transcript in transcripts.values():
            if transcript.conversation_id in seen:
                continue
            session = self._transcript_session(transcript, chat_metas, running)
            if self.matches_filter(session, opts):
                sessions.append(session)

        return self.sort_and_limit(sessions, opts.limit)

    def get_session(self, session_id: str) -> Optional[Session]:
        base = self.get_base_path()
        resolved = resolve_session_file(
            base / PROJECTS_DIR, session_id, _transcript_pattern, _conversation_id
        )
        if resolved is None:
            return None

        result = parse_transcript(resolved.path)
        if result.error is not None:
            raise SessionParseError(resolved.path, result.error, partial=result) from result.error

        session = Session(
            id=resolved.session_id,
            tool=Tool.CURSOR,
            project=CURSOR_CODEC.decode(resolved.path.parent.parent.name),
            updated_at=file_mtime(resolved.path),
            active=self.session_active(self.tool_running(), resolved.path),
            messages=result.messages,
        )

        try:
            summaries = read_conversation_summaries(base / TRACKING_DB)
        except sqlite3.Error as e:
            logger.warning("Could not read Cursor tracking db: %s", e)
            summaries = []

        for summary in summaries:
            if summary.conversation_id == session.id:
                session.title = summary.title
                session.summary = summary.tldr
                session.model = summary.model
                if summary.updated_at is not None:
                    session.updated_at = summary.updated_at
                break

        meta = read_all_chat_meta(base).get(session.id)
        if meta is not None:
            if not session.title:
                session.title = meta.name
            if not session.model and meta.model != "default":
                session.model = meta.model
            session.started_at = meta.created_at
        if session.started_at is None:
            session.started_at = session.updated_at

        if not session.title:
            session.title = first_user_preview(result.messages)
        if session.title:
            session.preview = truncate(session.title, PREVIEW_LENGTH)
        elif session.summary:
            session.preview = truncate(session.summary, PREVIEW_LENGTH)
        return session

    def search(self, query: str, opts: Optional[ListOptions] = None) -> list[SearchResult]:
        transcripts = {
            t.conversation_id: t for t in list_all_transcripts(self.get_base_path())
        }
        results = []

        for session in self.list_sessions(opts):
            transcript = transcripts.get(session.id)
            if transcript is None:
                continue

            parsed = parse_transcript(transcript.file_path)
            if parsed.error is not None:
                logger.warning("Skipping cursor session %s in search: %s", session.id, parsed.error)
                continue

            matches = search_messages(parsed.messages, query)
            if matches:
                results.append(SearchResult(session=session, matches=matches))

        return results

    # ── Private helpers ──────────────────────────────────────────────

    def _transcript_session(
        self, transcript: TranscriptEntry, chat_metas: dict[str, ChatMeta], running: bool
    ) -> Session:
        """Build a session for a transcript the tracking DB does not know."""
        mtime = file_mtime(transcript.file_path)
        session = Session(
            id=transcript.conversation_id,
            tool=Tool.CURSOR,
            project=transcript.project_path,
            started_at=mtime,
            updated_at=mtime,
            active=self.session_active(running, transcript.file_path),
        )

        parsed = parse_transcript(transcript.file_path)
        for msg in parsed.messages:
            if msg.role == Role.USER and msg.content.strip():
                session.preview = truncate(msg.content, PREVIEW_LENGTH)
                if msg.timestamp is not None:
                    session.started_at = msg.timestamp
                break

        meta = chat_metas.get(transcript.conversation_id)
        if meta is not None:
            if meta.name:
                session.title = meta.name
                if not session.preview:
                    session.preview = truncate(meta.name, PREVIEW_LENGTH)
            if meta.created_at is not None:
                session.started_at = meta.created_at
            if meta.model and meta.model != "default":
                session.model = meta.model
        return session


def _transcript_pattern(conversation_id: str, prefix: bool) -> str:
    if prefix:
        return f"*/{TRANSCRIPTS_DIR}/{conversation_id}*.txt"
    return f"*/{TRANSCRIPTS_DIR}/{conversation_id}.txt"


def _conversation_id(path: Path) -> str:
    return path.stem


def list_all_transcripts(base: Path) -> list[TranscriptEntry]:
    """Return every transcript under ``base``/projects, with decoded projects."""
    projects = base / PROJECTS_DIR
    if not projects.is_dir():
        return []

    entries = []
    for project_dir in sorted(projects.iterdir()):
        transcripts_dir = project_dir / TRANSCRIPTS_DIR
        if not transcripts_dir.is_dir():
            continue

        project_path = CURSOR_CODEC.decode(project_dir.name)
        for f in sorted(transcripts_dir.iterdir()):
            if f.suffix != ".txt" or not f.is_file():
                continue
            entries.append(TranscriptEntry(
                project_dir_name=project_dir.name,
                project_path=project_path,
                conversation_id=f.stem,
                file_path=f,
            ))
    return entries


# ── Transcript parsing ───────────────────────────────────────────────


class _Section(Enum):
    NONE = 0
    USER = 1
    ASSISTANT = 2
    TOOL_CALL = 3
    TOOL_RESULT = 4


def is_user_marker(line: str) -> bool:
    return line in ("user:", "User:") or line.startswith(("user: ", "User: "))


def is_assistant_marker(line: str) -> bool:
    return line in ("assistant:", "A:") or line.startswith(("assistant: ", "A: "))


def is_tool_call_marker(line: str) -> bool:
    return line.startswith("[Tool call")


def is_tool_result_marker(line: str) -> bool:
    return line.startswith("[Tool result")


def inline_text(marker_line: str) -> str:
    """``user: fix the build`` -> ``fix the build``."""
    return marker_line.partition(":")[2].strip()


def tool_call_name(line: str) -> str:
    """``[Tool call: Bash]`` -> ``Bash``."""
    name = line[len("[Tool call"):] if line.startswith("[Tool call") else line
    name = name.removeprefix(":").strip()
    return name.removesuffix("]").strip()


def clean_cursor_markup(text: str) -> str:
    for markup in CURSOR_MARKUP:
        text = text.replace(markup, "")
    return text.strip()


class _TranscriptBuilder:
    """Accumulates transcript lines into messages."""

    def __init__(self):
        self.messages: list[Message] = []
        self.section = _Section.NONE
        self.buffer: list[str] = []
        self.tool_name = ""

    def start(self, section: _Section, inline: str = "") -> None:
        self.flush()
        self.section = section
        if inline:
            self.buffer.append(inline)

    def add_line(self, line: str) -> None:
        if self.section is not _Section.NONE:
            self.buffer.append(line)

    def flush(self) -> None:
        text = "\n".join(self.buffer).strip()
        section = self.section
        self.buffer = []
        self.section = _Section.NONE

        if section is _Section.USER:
            self.messages.append(Message(role=Role.USER, content=text))
        elif section is _Section.ASSISTANT:
            self.messages.append(Message(role=Role.ASSISTANT, content=text))
        elif section is _Section.TOOL_CALL:
            call = ToolCall(name=self.tool_name, input=text)
            self.tool_name = ""
            if self.messages and self.messages[-1].role == Role.ASSISTANT:
                self.messages[-1].tool_calls.append(call)
            else:
                self.messages.append(Message(role=Role.ASSISTANT, content="", tool_calls=[call]))
        elif section is _Section.TOOL_RESULT:
            self._attach_result(text)

    def _attach_result(self, text: str) -> None:
        assistant = next(
            (m for m in reversed(self.messages) if m.role == Role.ASSISTANT), None
        )
        if assistant is None:
            self.messages.append(Message(
                role=Role.ASSISTANT, content="", tool_calls=[ToolCall(name="", output=text)]
            ))
        elif assistant.tool_calls:
            assistant.tool_calls[-1].output = text
        # A result after an assistant turn without tool calls has nothing to attach to.

    def finish(self) -> list[Message]:
        self.flush()
        for msg in self.messages:
            msg.content = clean_cursor_markup(msg.content)
        return self.messages


def parse_transcript(path: Path) -> ParseResult:
    """Parse a Cursor agent transcript into messages.

    On a read failure the returned result carries the error alongside the
    messages parsed up to that point.
    """
    result = ParseResult()
    try:
        f = path.open(encoding="utf-8", errors="replace")
    except OSError as e:
        result.error = e
        return result

    builder = _TranscriptBuilder()
    with f:
        try:
            for _, line in scan_lines(f, path, TRANSCRIPT_MAX_LINE):
                trimmed = line.strip()
                if is_user_marker(trimmed):
                    builder.start(_Section.USER, inline_text(trimmed))
                elif is_assistant_marker(trimmed):
                    builder.start(_Section.ASSISTANT, inline_text(trimmed))
                elif is_tool_call_marker(trimmed):
                    builder.start(_Section.TOOL_CALL)
                    builder.tool_name = tool_call_name(trimmed)
                elif is_tool_result_marker(trimmed):
                    builder.start(_Section.TOOL_RESULT)
                else:
                    builder.add_line(line)
        except (LineTooLongError, OSError) as e:
            result.error = e

    result.messages = builder.finish()
    return result


# ── SQLite metadata ──────────────────────────────────────────────────


def _ms_to_datetime(ms: object) -> Optional[datetime]:
    """Convert a millisecond timestamp to datetime; None when absent or not a number."""
    if isinstance(ms, bool) or not isinstance(ms, (int, float)) or not ms:
        return None
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (ValueError, OSError, OverflowError):
        return None


def _text(value: object) -> str:
    return value if isinstance(value, str) else ""


def _meta_str(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"{key} is not a string")
    return value


def read_conversation_summaries(db_path: Path) -> list[ConversationSummary]:
    """Read conversation metadata from the tracking DB, most recent first.

    Returns an empty list when the database or its table does not exist.
    Columns holding the wrong type read as empty.
    """
    if not db_path.is_file():
        return []

    conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    try:
        cur = conn.cursor()
        cur.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='conversation_summaries'"
        )
        if cur.fetchone() is None:
            return []

        cur.execute(
            "SELECT conversationId, title, tldr, model, updatedAt "
            "FROM conversation_summaries ORDER BY updatedAt DESC"
        )
        return [
            ConversationSummary(
                conversation_id=row[0],
                title=_text(row[1]),
                tldr=_text(row[2]),
                model=_text(row[3]),
                updated_at=_ms_to_datetime(row[4]),
            )
            for row in cur.fetchall()
            if row[0] and isinstance(row[0], str)
        ]
    finally:
        conn.close()


def read_chat_store_meta(db_path: Path) -> ChatMeta:
    """Read the hex-encoded JSON under key "0" of a chat store.db meta table.

    Raises ValueError or TypeError when the row is missing or malformed.
    """
    conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    try:
        cur = conn.cursor()
        cur.execute("SELECT value FROM meta WHERE key = '0'")
        row = cur.fetchone()
    finally:
        conn.close()

    if row is None:
        raise ValueError(f"no meta row in {db_path}")
    value = row[0]
    if isinstance(value, bytes):
        value = value.decode("ascii")
    data = json.loads(bytes.fromhex(value))
    if not isinstance(data, dict):
        raise ValueError(f"meta in {db_path} is not an object")

    created = data.get("createdAt")
    if created is not None and (isinstance(created, bool) or not isinstance(created, int)):
        raise TypeError(f"createdAt in {db_path} is not an integer")

    return ChatMeta(
        agent_id=_meta_str(data, "agentId"),
        name=_meta_str(data, "name"),
        created_at=_ms_to_datetime(created),
        model=_meta_str(data, "lastUsedModel"),
    )


def read_all_chat_meta(base: Path) -> dict[str, ChatMeta]:
    """Map agent id to metadata for every chats/<workspace>/<agent>/store.db.

    Unreadable or malformed stores are skipped.
    """
    result: dict[str, ChatMeta] = {}
    for db_path in sorted((base / CHATS_DIR).glob("*/*/store.db")):
        try:
            meta = read_chat_store_meta(db_path)
        except (sqlite3.Error, ValueError, TypeError, UnicodeDecodeError) as e:
            logger.debug("Skipping chat store %s: %s", db_path, e)
            continue
        if meta.agent_id:
            result[meta.agent_id] = meta
    return result
