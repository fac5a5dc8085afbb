"""Loading and deduplication of append-only history logs.

Claude Code and Codex both append one JSON line to a ``history.jsonl`` file
every time the user submits a prompt. A session therefore appears many
times; this module folds those lines into one summary per session.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from .core import HistoryEntry, HistorySummary
from .errors import HistoryReadError, LineTooLongError
from .lines import HISTORY_MAX_LINE, scan_lines

logger = logging.getLogger(__name__)

LineParser = Callable[[str], HistoryEntry]


class _Accumulator:
    __slots__ = ("session_id", "display", "project", "earliest", "latest")

    def __init__(self, entry: HistoryEntry):
        self.session_id = entry.session_id
        self.display = entry.display
        self.project = entry.project
        self.earliest = entry.timestamp
        self.latest = entry.timestamp

    def add(self, entry: HistoryEntry) -> None:
        if entry.timestamp < self.earliest:
            # The earliest line carries the session's opening prompt.
            self.earliest = entry.timestamp
            self.display = entry.display
            if entry.project:
                self.project = entry.project
        if entry.timestamp > self.latest:
            self.latest = entry.timestamp

    def summary(self) -> HistorySummary:
        return HistorySummary(
            session_id=self.session_id,
            display=self.display,
            project=self.project,
            started_at=self.earliest,
            updated_at=self.latest,
        )


def load_history(
    path: Path, parse_line: LineParser, max_line: int = HISTORY_MAX_LINE
) -> list[HistorySummary]:
    """Read a history log and return one summary per session.

    Results are ordered by ``updated_at``, most recent first. A missing file
    yields an empty list. Malformed lines and lines without a session id
    are skipped.
    """
    try:
        f = path.open(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return []
    except OSError as e:
        raise HistoryReadError(path, e) from e

    seen: dict[str, _Accumulator] = {}

    with f:
        try:
            for line_num, line in scan_lines(f, path, max_line):
                if not line.strip():
                    continue
                try:
                    entry = parse_line(line)
                except (ValueError, KeyError, TypeError) as e:
                    logger.debug("Bad history line at %s:%d: %s", path, line_num, e)
                    continue
                if not entry.session_id:
                    continue

                acc = seen.get(entry.session_id)
                if acc is None:
                    seen[entry.session_id] = _Accumulator(entry)
                else:
                    acc.add(entry)
        except LineTooLongError as e:
            logger.warning("Stopped scanning history %s: %s", path, e)
        except OSError as e:
            raise HistoryReadError(path, e) from e

    summaries = [acc.summary() for acc in seen.values()]
    summaries.sort(key=lambda s: s.updated_at, reverse=True)
    return summaries


def _json_object(line: str) -> dict:
    data = json.loads(line)
    if not isinstance(data, dict):
        raise TypeError(f"expected JSON object, got {type(data).__name__}")
    return data


def _str_field(data: dict, key: str) -> str:
    value = data.get(key) or ""
    if not isinstance(value, str):
        raise TypeError(f"{key} is not a string")
    return value


def _int_field(data: dict, key: str) -> int:
    value = data.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{key} is not a number")
    return int(value)


def _from_epoch(seconds: float) -> datetime:
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"timestamp out of range: {seconds}") from e


def parse_claude_history_line(line: str) -> HistoryEntry:
    """Parse a ~/.claude/history.jsonl line (``timestamp`` in epoch ms)."""
    data = _json_object(line)
    ms = _int_field(data, "timestamp")
    return HistoryEntry(
        session_id=_str_field(data, "sessionId"),
        timestamp=_from_epoch(ms / 1000),
        display=_str_field(data, "display"),
        project=_str_field(data, "project"),
    )


def parse_codex_history_line(line: str) -> HistoryEntry:
    """Parse a ~/.codex/history.jsonl line (``ts`` in epoch seconds)."""
    data = _json_object(line)
    ts = _int_field(data, "ts")
    return HistoryEntry(
        session_id=_str_field(data, "session_id"),
        timestamp=_from_epoch(ts),
        display=_str_field(data, "text"),
    )
