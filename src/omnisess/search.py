"""Case-insensitive substring search over parsed messages."""

from .core import Message, SearchMatch

SNIPPET_LENGTH = 200
ELLIPSIS = "..."


def extract_snippet(
    content: str, match_index: int, match_len: int, target_len: int = SNIPPET_LENGTH
) -> str:
    """Return about ``target_len`` characters of ``content`` centred on a match.

    Ellipsis markers show on the side(s) where content was cut.
    """
    if len(content) <= target_len:
        return content

    half_window = max(target_len - match_len, 0) // 2
    start = match_index - half_window
    end = match_index + match_len + half_window

    if start < 0:
        end -= start
        start = 0
    if end > len(content):
        start -= end - len(content)
        end = len(content)
    if start < 0:
        start = 0

    prefix = ELLIPSIS if start > 0 else ""
    suffix = ELLIPSIS if end < len(content) else ""
    return prefix + content[start:end] + suffix


def search_messages(messages: list[Message], query: str) -> list[SearchMatch]:
    """Return at most one match per message containing ``query``.

    An empty query is contained in every message and matches at offset 0.
    """
    query_lower = query.lower()
    matches = []
    for i, msg in enumerate(messages):
        idx = msg.content.lower().find(query_lower)
        if idx < 0:
            continue
        matches.append(SearchMatch(
            message_index=i,
            role=msg.role,
            snippet=extract_snippet(msg.content, idx, len(query)),
        ))
    return matches
