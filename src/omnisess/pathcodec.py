"""Recover project paths from encoded project directory names.

Claude Code and Cursor keep per-project data under a directory named after
the project's absolute path, with every ``/`` and ``.`` replaced by ``-``::

    /Users/paolo.sacconier/prj/finn/b2b-orders-api
    -> -Users-paolo-sacconier-prj-finn-b2b-orders-api   (Claude Code)
    -> Users-paolo-sacconier-prj-finn-b2b-orders-api    (Cursor)

The encoding is lossy: a ``-`` may stand for a separator, a dot, or a dash
that was already in a folder name. Decoding therefore walks the real
filesystem, matching encoded child directory names against the remaining
encoded string, longest match first, and backtracks on dead ends.
"""

import logging
import os
from typing import Optional

from .config import get_home_dir
from .errors import HomeDirError

logger = logging.getLogger(__name__)


class ProjectPathCodec:
    """Encoder/decoder for one tool's project directory naming scheme."""

    def __init__(
        self,
        leading_delimiter: bool,
        substituted: tuple[str, ...] = ("/", "."),
        delimiter: str = "-",
        root_walk: bool = True,
    ):
        self.leading_delimiter = leading_delimiter
        self.substituted = substituted
        self.delimiter = delimiter
        self.root_walk = root_walk

    def encode_component(self, name: str) -> str:
        """Encode a single directory name."""
        for ch in self.substituted:
            name = name.replace(ch, self.delimiter)
        return name

    def encode(self, path: str) -> str:
        """Encode an absolute path into a project directory name."""
        body = self.encode_component(path.lstrip("/"))
        if self.leading_delimiter:
            return self.delimiter + body
        return body

    def decode(self, dir_name: str) -> str:
        """Best-effort recovery of the absolute path behind ``dir_name``.

        Tries a walk anchored at the home directory, then (when
        ``root_walk`` is set) one anchored at ``/``, and finally falls back
        to replacing every delimiter with ``/`` (which may not match the
        real path).
        """
        if not dir_name:
            return ""

        encoded = dir_name
        if self.leading_delimiter and encoded.startswith(self.delimiter):
            encoded = encoded[len(self.delimiter):]
        if not encoded:
            return "/"

        home = self._home()
        if home is not None:
            home_encoded = self.encode_component(home.lstrip("/"))
            if encoded == home_encoded:
                return home
            if home_encoded and encoded.startswith(home_encoded + self.delimiter):
                suffix = encoded[len(home_encoded) + len(self.delimiter):]
                result = self.resolve(home, suffix)
                if result is not None:
                    return result

        if self.root_walk:
            result = self.resolve("/", encoded)
            if result is not None:
                return result

        logger.debug("Falling back to naive decode for %s", dir_name)
        return "/" + encoded.replace(self.delimiter, "/")

    def resolve(self, base: str, encoded: str) -> Optional[str]:
        """Find the real directory under ``base`` whose encoded form is ``encoded``.

        Returns None when no combination of real subdirectories matches.
        """
        if not encoded:
            return base

        try:
            with os.scandir(base) as it:
                children = sorted(
                    e.name for e in it if e.is_dir(follow_symlinks=False)
                )
        except OSError:
            return None

        candidates = []
        for name in children:
            child_encoded = self.encode_component(name)
            if encoded == child_encoded:
                return os.path.join(base, name)
            if encoded.startswith(child_encoded + self.delimiter):
                remaining = encoded[len(child_encoded) + len(self.delimiter):]
                candidates.append((os.path.join(base, name), remaining))

        # Longest directory name first: it leaves the shortest remainder.
        candidates.sort(key=lambda c: len(c[1]))

        for path, remaining in candidates:
            result = self.resolve(path, remaining)
            if result is not None:
                return result

        return None

    @staticmethod
    def _home() -> Optional[str]:
        try:
            return str(get_home_dir())
        except HomeDirError:
            return None


CLAUDE_CODEC = ProjectPathCodec(leading_delimiter=True)
# Cursor project folders outside the home directory decode naively.
CURSOR_CODEC = ProjectPathCodec(leading_delimiter=False, root_walk=False)
