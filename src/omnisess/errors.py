"""Exceptions raised by omnisess sources.

Absence (no history file, no matching session) is never an exception:
sources return empty lists or ``None`` instead.
"""

from pathlib import Path


class OmnisessError(Exception):
    """Base class for all omnisess errors."""


class HomeDirError(OmnisessError):
    """The user's home directory could not be determined."""


class HistoryReadError(OmnisessError):
    """A history log exists but could not be read."""

    def __init__(self, path: Path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"read history {path}: {cause}")


class SessionLookupError(OmnisessError):
    """Searching for a session file failed (bad glob pattern, unreadable root)."""


class AmbiguousPrefixError(SessionLookupError):
    """A session id prefix matched more than one session."""

    def __init__(self, prefix: str, matches: list[str]):
        self.prefix = prefix
        self.matches = matches
        super().__init__(
            f"ambiguous session prefix {prefix!r}, matches: {', '.join(matches)}"
        )


class SessionParseError(OmnisessError):
    """A session file could not be read to the end.

    ``partial`` holds whatever was parsed before the failure, so callers
    that can live with a truncated session may still use it.
    """

    def __init__(self, path: Path, cause: Exception, partial=None):
        self.path = path
        self.cause = cause
        self.partial = partial
        super().__init__(f"parse session file {path}: {cause}")


class LineTooLongError(OmnisessError):
    """A single line exceeded the scan limit."""

    def __init__(self, path: Path, line_num: int, limit: int):
        self.path = path
        self.line_num = line_num
        self.limit = limit
        super().__init__(f"{path}:{line_num}: line exceeds {limit} characters")
