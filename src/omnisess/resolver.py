"""Map a full or prefix session id to the session file on disk."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .errors import AmbiguousPrefixError, SessionLookupError

logger = logging.getLogger(__name__)

# Builds a glob pattern (relative to the search root) for a session id.
# ``prefix`` is True for the second, prefix-matching pass.
PatternBuilder = Callable[[str, bool], str]
IdExtractor = Callable[[Path], str]


@dataclass
class ResolvedSession:
    path: Path
    session_id: str  # the full id, even when resolved from a prefix


def glob_sorted(root: Path, pattern: str) -> list[Path]:
    """Glob under ``root``, raising SessionLookupError on a malformed pattern."""
    try:
        return sorted(root.glob(pattern))
    except (ValueError, NotImplementedError) as e:
        raise SessionLookupError(f"glob {root / pattern}: {e}") from e


def resolve_session_file(
    root: Path,
    session_id: str,
    pattern_for: PatternBuilder,
    id_from_path: IdExtractor,
) -> Optional[ResolvedSession]:
    """Resolve ``session_id`` to exactly one file under ``root``.

    Tries an exact file name first, then any file whose id starts with
    ``session_id``. Returns None when nothing matches and raises
    AmbiguousPrefixError when more than one file does.
    """
    if not session_id:
        return None

    exact = [
        m for m in glob_sorted(root, pattern_for(session_id, False))
        if id_from_path(m) == session_id
    ]
    if exact:
        return ResolvedSession(path=exact[0], session_id=id_from_path(exact[0]))

    # A prefix pattern may also match other parts of a file name (e.g. the
    # timestamp of a Codex rollout), so only ids that start with it count.
    matches = [
        m for m in glob_sorted(root, pattern_for(session_id, True))
        if id_from_path(m).startswith(session_id)
    ]
    if not matches:
        return None

    if len(matches) == 1:
        return ResolvedSession(path=matches[0], session_id=id_from_path(matches[0]))

    ids = [id_from_path(m) for m in matches]
    logger.debug("Prefix %r matched %d sessions under %s", session_id, len(ids), root)
    raise AmbiguousPrefixError(session_id, ids)
