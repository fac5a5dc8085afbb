"""Render sessions as terminal tables, Markdown and JSON."""

import json
from datetime import datetime
from typing import Optional

from .core import Message, SearchResult, Session
from .detect import truncate

TIME_FORMAT = "%Y-%m-%d %H:%M"
TABLE_PREVIEW_LENGTH = 60


def _format_time(dt: Optional[datetime]) -> str:
    if dt is None:
        return "-"
    return dt.astimezone().strftime(TIME_FORMAT)


def _isoformat(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _table(headers: list[str], rows: list[list[str]]) -> str:
    """Left-aligned columns separated by two spaces; the last column is not padded."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def fmt(cells: list[str]) -> str:
        padded = [cell.ljust(widths[i]) for i, cell in enumerate(cells[:-1])]
        return "  ".join(padded + [cells[-1]]).rstrip()

    return "\n".join([fmt(headers)] + [fmt(row) for row in rows])


# ── Dict conversion ──────────────────────────────────────────────────


def message_to_dict(msg: Message) -> dict:
    data = {
        "role": msg.role.value,
        "content": msg.content,
        "timestamp": _isoformat(msg.timestamp),
    }
    if msg.tool_calls:
        data["tool_calls"] = [
            {"name": tc.name, "input": tc.input, "output": tc.output}
            for tc in msg.tool_calls
        ]
    return data


def session_to_dict(session: Session) -> dict:
    """Convert a Session to a JSON-serializable dict."""
    data = {
        "id": session.id,
        "tool": session.tool.value,
        "qualified_id": session.qualified_id,
        "project": session.project,
        "branch": session.branch,
        "title": session.title,
        "summary": session.summary,
        "model": session.model,
        "started_at": _isoformat(session.started_at),
        "updated_at": _isoformat(session.updated_at),
        "active": session.active,
        "preview": session.preview,
    }
    if session.messages is not None:
        data["messages"] = [message_to_dict(m) for m in session.messages]
    return data


def search_result_to_dict(result: SearchResult) -> dict:
    return {
        "session": session_to_dict(result.session),
        "matches": [
            {"message_index": m.message_index, "role": m.role.value, "snippet": m.snippet}
            for m in result.matches
        ],
    }


def sessions_to_json(sessions: list[Session]) -> str:
    return json.dumps([session_to_dict(s) for s in sessions], indent=2, ensure_ascii=False)


def search_results_to_json(results: list[SearchResult]) -> str:
    return json.dumps([search_result_to_dict(r) for r in results], indent=2, ensure_ascii=False)


def session_to_json(session: Session) -> str:
    """Export a session and its messages as structured JSON."""
    return json.dumps(session_to_dict(session), indent=2, ensure_ascii=False)


# ── Text ─────────────────────────────────────────────────────────────


def render_session_table(sessions: list[Session]) -> str:
    rows = [
        [
            s.tool.value,
            s.short_id,
            "*" if s.active else "",
            s.short_project,
            s.branch,
            _format_time(s.updated_at),
            truncate(s.title or s.preview, TABLE_PREVIEW_LENGTH),
        ]
        for s in sessions
    ]
    return _table(["TOOL", "ID", "ACTIVE", "PROJECT", "BRANCH", "UPDATED", "TITLE"], rows)


def render_search_table(results: list[SearchResult]) -> str:
    rows = []
    for result in results:
        s = result.session
        for match in result.matches:
            rows.append([
                s.tool.value,
                s.short_id,
                s.short_project,
                match.role.value,
                truncate(match.snippet, 100),
            ])
    return _table(["TOOL", "ID", "PROJECT", "ROLE", "MATCH"], rows)


def render_session_detail(session: Session) -> str:
    """Plain-text view of a session's metadata followed by its messages."""
    lines = [f"Session:  {session.qualified_id}"]
    if session.title:
        lines.append(f"Title:    {session.title}")
    if session.summary:
        lines.append(f"Summary:  {session.summary}")
    if session.project:
        lines.append(f"Project:  {session.project}")
    if session.branch:
        lines.append(f"Branch:   {session.branch}")
    if session.model:
        lines.append(f"Model:    {session.model}")
    lines.append(f"Started:  {_format_time(session.started_at)}")
    lines.append(f"Updated:  {_format_time(session.updated_at)}")
    if session.active:
        lines.append("Status:   active")

    for msg in session.messages or []:
        ts = f" [{_format_time(msg.timestamp)}]" if msg.timestamp else ""
        lines.extend(["", f"--- {msg.role.value}{ts}"])
        if msg.content:
            lines.append(msg.content)
        for tc in msg.tool_calls:
            lines.append(f"  > {tc.name or 'tool'}: {tc.input}".rstrip())
            if tc.output:
                lines.append(f"    {truncate(tc.output, 200)}")

    return "\n".join(lines)


def session_to_markdown(session: Session) -> str:
    """Export a session and its messages as clean Markdown."""
    lines = [f"# {session.title or session.qualified_id}", ""]

    lines.append(f"**Tool:** {session.tool.value}")
    lines.append(f"**Session:** {session.id}")
    if session.project:
        lines.append(f"**Project:** {session.project}")
    if session.branch:
        lines.append(f"**Branch:** {session.branch}")
    if session.model:
        lines.append(f"**Model:** {session.model}")
    if session.started_at:
        lines.append(f"**Started:** {session.started_at.isoformat()}")
    if session.updated_at:
        lines.append(f"**Updated:** {session.updated_at.isoformat()}")
    messages = session.messages or []
    lines.append(f"**Messages:** {len(messages)}")
    lines.extend(["", "---", ""])

    for msg in messages:
        role_label = msg.role.value.capitalize()
        ts = ""
        if msg.timestamp:
            ts = f" ({msg.timestamp.strftime(TIME_FORMAT)})"
        lines.append(f"## {role_label}{ts}")
        lines.append("")
        if msg.content:
            lines.append(msg.content)
            lines.append("")
        for tc in msg.tool_calls:
            lines.append(f"- **{tc.name or 'tool'}** `{tc.input}`")
        if msg.tool_calls:
            lines.append("")
        lines.extend(["---", ""])

    return "\n".join(lines)
