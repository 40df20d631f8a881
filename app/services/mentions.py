"""
@mention encoding used in comment text.

A mention is stored inline as ``@[Display Name](profile-id)``.  Any other
``@`` in the text is plain text.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from app.models.profile import Profile

MENTION_RE = re.compile(r"@\[([^\]\n]+)\]\(([0-9A-Fa-f-]+)\)")

# How far back from the cursor an ``@`` may be and still open a mention query
MAX_QUERY_DISTANCE = 50
MAX_CANDIDATES = 10


@dataclass(frozen=True)
class Mention:
    display_name: str
    profile_id: str
    start: int
    end: int


def extract_mentions(text: str) -> list[Mention]:
    return [
        Mention(m.group(1), m.group(2), m.start(), m.end())
        for m in MENTION_RE.finditer(text or "")
    ]


def split_mentions(text: str) -> list[str | Mention]:
    """Break *text* into plain-text and :class:`Mention` segments, in order."""
    parts: list[str | Mention] = []
    last = 0
    for mention in extract_mentions(text):
        if mention.start > last:
            parts.append(text[last : mention.start])
        parts.append(mention)
        last = mention.end
    if last < len(text or ""):
        parts.append(text[last:])
    return parts


def _plain_token(mention: Mention) -> str:
    return f"@{mention.display_name}"


def render_mentions(text: str, fmt: Callable[[Mention], str] = _plain_token) -> str:
    return "".join(
        fmt(part) if isinstance(part, Mention) else part for part in split_mentions(text)
    )


def format_mention(profile: Profile) -> str:
    name = profile.display_name.replace("]", "").replace("\n", " ")
    return f"@[{name}]({profile.id})"


def active_mention_query(text: str, cursor: int | None = None) -> str | None:
    """Return what the user has typed after the ``@`` they are completing.

    ``None`` when the cursor is not inside a mention query: no ``@`` before
    it, the ``@`` is escaped with a backslash, it is too far back, or
    whitespace follows it.
    """
    text = text or ""
    cursor = len(text) if cursor is None else cursor
    before = text[:cursor]
    at = before.rfind("@")
    if at == -1 or cursor - at > MAX_QUERY_DISTANCE:
        return None
    if at > 0 and before[at - 1] == "\\":
        return None
    query = before[at + 1 :]
    if any(ch.isspace() for ch in query):
        return None
    return query


def search_mention_candidates(
    profiles: Iterable[Profile],
    prefix: str | None,
    requester_id: str,
    limit: int = MAX_CANDIDATES,
) -> list[Profile]:
    needle = (prefix or "").lower()
    found = []
    for profile in profiles:
        if profile.id == requester_id:
            continue
        if needle and not (
            needle in (profile.full_name or "").lower()
            or needle in (profile.email or "").lower()
        ):
            continue
        found.append(profile)
        if len(found) >= limit:
            break
    return found
