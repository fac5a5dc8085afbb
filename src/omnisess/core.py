"""Core data models for omnisess."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Optional


class Tool(str, Enum):
    """AI coding tools whose sessions can be read."""

    CLAUDE = "claude"
    CODEX = "codex"
    CURSOR = "cursor"


class Role(str, Enum):
    """Canonical message roles. Source roles outside this set are dropped."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass
class ToolCall:
    """A tool invocation made by the assistant."""

    name: str
    input: str = ""  # truncated
    output: str = ""  # truncated


@dataclass
class Message:
    """A single message within a session, in file append order."""

    role: Role
    content: str
    timestamp: Optional[datetime] = None
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass
class Session:
    """A single conversation with one AI coding tool."""

    id: str
    tool: Tool
    project: str = ""  # absolute path to the project directory
    branch: str = ""
    title: str = ""  # first user message or tool-provided title
    summary: str = ""  # tool-provided summary (Cursor tldr)
    model: str = ""
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    active: bool = False
    messages: Optional[list[Message]] = None  # only populated by get_session()
    preview: str = ""

    @property
    def qualified_id(self) -> str:
        """Tool-prefixed id, e.g. ``claude:5c3f2742-...``."""
        return f"{self.tool.value}:{self.id}"

    @property
    def short_id(self) -> str:
        return self.id[:8]

    @property
    def short_project(self) -> str:
        """Last two path components, e.g. ``finn/b2b-orders-api``."""
        parts = [p for p in self.project.split("/") if p]
        if len(parts) >= 2:
            return f"{parts[-2]}/{parts[-1]}"
        if parts:
            return parts[0]
        return self.project


@dataclass
class SearchMatch:
    message_index: int
    role: Role
    snippet: str  # ~200 chars of context around the match


@dataclass
class SearchResult:
    session: Session
    matches: list[SearchMatch] = field(default_factory=list)


@dataclass
class ListOptions:
    """Filters shared by list_sessions() and search()."""

    since: Optional[timedelta] = None  # only sessions updated within this window
    limit: int = 0  # 0 = unlimited
    project: str = ""  # project path substring
    active: bool = False


@dataclass
class HistoryEntry:
    """One line of a tool's append-only history log."""

    session_id: str
    timestamp: datetime
    display: str = ""
    project: str = ""


@dataclass
class HistorySummary:
    """All history lines of one session folded together."""

    session_id: str
    display: str  # text of the earliest line
    project: str
    started_at: datetime
    updated_at: datetime


@dataclass
class TranscriptEntry:
    """A transcript file found under an encoded project directory."""

    project_dir_name: str
    project_path: str
    conversation_id: str
    file_path: Path


@dataclass
class ParseResult:
    """Messages parsed from a session file.

    ``error`` is set when the scan stopped early (unreadable file, oversized
    line). Messages parsed before the failure are still present.
    """

    messages: list[Message] = field(default_factory=list)
    model: str = ""
    branch: str = ""
    cwd: str = ""
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None
