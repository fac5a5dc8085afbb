"""Bounded line scanning for append-only log files."""

from pathlib import Path
from typing import IO, Iterator

from .errors import LineTooLongError

HISTORY_MAX_LINE = 1024 * 1024
SESSION_MAX_LINE = 10 * 1024 * 1024
TRANSCRIPT_MAX_LINE = 1024 * 1024


def scan_lines(f: IO[str], path: Path, max_line: int) -> Iterator[tuple[int, str]]:
    """Yield ``(line_num, line)`` pairs with the line ending removed.

    Raises LineTooLongError when a line is longer than ``max_line``
    characters. Lines yielded before that point are unaffected.
    """
    line_num = 0
    while True:
        line = f.readline(max_line + 1)
        if not line:
            return
        line_num += 1
        if len(line) > max_line and not line.endswith("\n"):
            raise LineTooLongError(path, line_num, max_line)
        yield line_num, line.rstrip("\r\n")
