"""Abstract base class for session sources."""

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .core import ListOptions, Message, Role, SearchResult, Session, Tool
from .detect import is_session_tree_recently_modified, is_tool_running, truncate

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 120


class SessionSource(ABC):
    """Base class for AI coding tool session backends.

    Each backend (Claude Code, Codex, Cursor) implements this interface to
    provide unified, read-only access to that tool's sessions.
    """

    name: Tool
    project_filter_ignores_case = False

    @abstractmethod
    def get_base_path(self) -> Path:
        """Return the root directory where this tool stores its data."""
        ...

    def is_available(self) -> bool:
        """Return True if this tool's data exists on this machine."""
        return self.get_base_path().is_dir()

    @abstractmethod
    def list_sessions(self, opts: Optional[ListOptions] = None) -> list[Session]:
        """Return sessions, most recently updated first, without messages."""
        ...

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[Session]:
        """Return one session with full messages, or None if it does not exist.

        ``session_id`` may be a full id or an unambiguous prefix.
        """
        ...

    @abstractmethod
    def search(self, query: str, opts: Optional[ListOptions] = None) -> list[SearchResult]:
        """Return sessions whose messages contain ``query``."""
        ...

    # ── Shared helpers ───────────────────────────────────────────────

    def tool_running(self) -> bool:
        return is_tool_running(self.name.value)

    @staticmethod
    def session_active(running: bool, session_file: Optional[Path]) -> bool:
        if not running or session_file is None:
            return False
        return is_session_tree_recently_modified(session_file)

    def matches_project(self, project: str, wanted: str) -> bool:
        if not wanted:
            return True
        if self.project_filter_ignores_case:
            return wanted.lower() in project.lower()
        return wanted in project

    def matches_filter(self, session: Session, opts: ListOptions) -> bool:
        """Apply the since/project/active filters of ``opts`` to ``session``."""
        if opts.active and not session.active:
            return False
        if opts.since is not None:
            if session.updated_at is None:
                return False
            if datetime.now(timezone.utc) - session.updated_at > opts.since:
                return False
        return self.matches_project(session.project, opts.project)

    @staticmethod
    def sort_and_limit(sessions: list[Session], limit: int) -> list[Session]:
        sessions.sort(key=lambda s: s.updated_at or _EPOCH, reverse=True)
        if limit > 0:
            return sessions[:limit]
        return sessions


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Tried in order; the first layout that parses wins.
_TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
)
# strptime's %f takes at most 6 digits; logs may carry nanoseconds.
_EXTRA_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp; None when empty or unparseable."""
    if not value or not isinstance(value, str):
        return None
    value = _EXTRA_FRACTION_RE.sub(r"\1", value.strip())
    for layout in _TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(value, layout)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def file_mtime(path: Path) -> Optional[datetime]:
    """Return the modification time of ``path``, or None if it cannot be read."""
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except OSError:
        return None


def later(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def first_user_preview(messages: list[Message]) -> str:
    """Preview text taken from the first non-empty user message."""
    for msg in messages:
        if msg.role == Role.USER and msg.content.strip():
            return truncate(msg.content, PREVIEW_LENGTH)
    return ""
