"""Detect installed AI coding tools and collect their sources in a registry."""

import logging
from typing import Iterable, Optional

from ..core import Tool
from ..errors import HomeDirError
from ..provider import SessionSource
from .claude_code import ClaudeCodeSource
from .codex import CodexSource
from .cursor import CursorSource

logger = logging.getLogger(__name__)

SOURCE_CLASSES = (ClaudeCodeSource, CodexSource, CursorSource)


class SourceRegistry:
    """An ordered, read-only collection of session sources."""

    def __init__(self, sources: Iterable[SessionSource] = ()):
        self._sources = list(sources)

    def all(self) -> list[SessionSource]:
        return list(self._sources)

    def by_name(self, name: str) -> Optional[SessionSource]:
        """Look up a source by its tool name ("claude", "codex", "cursor")."""
        try:
            tool = Tool(name)
        except ValueError:
            return None
        return self.get(tool)

    def get(self, tool: Tool) -> Optional[SessionSource]:
        for source in self._sources:
            if source.name == tool:
                return source
        return None

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self):
        return iter(self._sources)


def default_registry(only_available: bool = True) -> SourceRegistry:
    """Build a registry of every source whose data exists on this machine."""
    sources = []
    for source_class in SOURCE_CLASSES:
        source = source_class()
        try:
            available = source.is_available()
        except (OSError, HomeDirError) as e:
            logger.warning("Checking %s availability: %s", source.name.value, e)
            continue
        if available or not only_available:
            sources.append(source)
    logger.debug("Detected sources: %s", [s.name.value for s in sources])
    return SourceRegistry(sources)
