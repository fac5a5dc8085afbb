"""Path resolution for each tool's data directory, plus CLI value parsing."""

import os
import re
from datetime import timedelta
from pathlib import Path

from .errors import HomeDirError


def get_home_dir() -> Path:
    """Return the user's home directory.

    Raises HomeDirError when it cannot be determined.
    """
    try:
        return Path.home()
    except (RuntimeError, KeyError) as e:
        raise HomeDirError(f"resolve home dir: {e}") from e


def get_claude_path() -> Path:
    """Return the path to Claude Code's data directory (~/.claude)."""
    env = os.environ.get("OMNISESS_CLAUDE_PATH")
    if env:
        return Path(env)

    return get_home_dir() / ".claude"


def get_codex_path() -> Path:
    """Return the path to Codex CLI's data directory (~/.codex)."""
    env = os.environ.get("OMNISESS_CODEX_PATH")
    if env:
        return Path(env)

    return get_home_dir() / ".codex"


def get_cursor_path() -> Path:
    """Return the path to Cursor's per-user data directory (~/.cursor)."""
    env = os.environ.get("OMNISESS_CURSOR_PATH")
    if env:
        return Path(env)

    return get_home_dir() / ".cursor"


_DURATION_RE = re.compile(r"^(\d+)([smhdw])$")
_DURATION_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}


def parse_since(value: str) -> timedelta:
    """Parse a ``--since`` value such as ``90m``, ``24h``, ``7d`` or ``2w``."""
    match = _DURATION_RE.match(value.strip())
    if not match:
        raise ValueError(
            f"cannot parse {value!r} (use Ns, Nm, Nh, Nd for days, or Nw for weeks)"
        )
    count, unit = match.groups()
    return int(count) * _DURATION_UNITS[unit]
