"""Best-effort detection of live sessions, and preview text helpers.

Nothing here raises: any uncertainty reads as "not active".
"""

import logging
import subprocess
import time
from datetime import timedelta
from pathlib import Path

logger = logging.getLogger(__name__)

# Long model responses and tool runs can leave a live session file
# untouched for several minutes.
ACTIVE_THRESHOLD = timedelta(minutes=10)

# pgrep arguments per tool. "-x" matches the exact process name so that
# e.g. Claude.app or its updater are not mistaken for the CLI.
_PGREP_ARGS = {
    "claude": ["-x", "claude"],
    "codex": ["-x", "codex"],
    "cursor": ["-f", "Cursor.app/Contents/MacOS/Cursor"],
}


def is_tool_running(tool_name: str) -> bool:
    """Return True if a process for ``tool_name`` is currently running."""
    args = _PGREP_ARGS.get(tool_name)
    if args is None:
        return False
    try:
        result = subprocess.run(
            ["pgrep", *args],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("pgrep for %s failed: %s", tool_name, e)
        return False
    return result.returncode == 0


def is_file_recently_modified(path: Path, threshold: timedelta = ACTIVE_THRESHOLD) -> bool:
    """Return True if ``path`` was modified less than ``threshold`` ago."""
    try:
        mtime = path.stat().st_mtime
    except OSError:
        return False
    return time.time() - mtime < threshold.total_seconds()


def is_session_tree_recently_modified(
    session_file: Path, threshold: timedelta = ACTIVE_THRESHOLD
) -> bool:
    """Check the session file and any subagent transcripts next to it."""
    if is_file_recently_modified(session_file, threshold):
        return True

    # Claude Code writes subagent transcripts to <session>/subagents/*.jsonl,
    # which are often the freshest files of a running session.
    subagents = session_file.with_suffix("") / "subagents"
    try:
        return any(
            is_file_recently_modified(p, threshold) for p in subagents.glob("*.jsonl")
        )
    except OSError:
        return False


def truncate(text: str, max_len: int) -> str:
    """Collapse ``text`` onto one line and cut it to ``max_len`` characters."""
    text = text.strip().replace("\n", " ").replace("\r", "")
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
