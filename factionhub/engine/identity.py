"""
factionhub.engine.identity — Free-Text Name → Community Member
===============================================================

Encounter logs are typed by hand, so a kill might be recorded as
``Jon Smith`` in one log and ``@jonsmith`` in the next.  This module turns
such a name into a known :class:`Identity` from the guild roster, or
``None`` when nothing plausible matches.

Resolution runs an ordered list of strategies; the first one to return a
member wins:

1. :func:`match_exact` — case-insensitive equality against the username,
   the display name, or the username with its digits stripped
   (``drew1234`` → ``drew``).
2. :func:`match_containment` — substring containment in either direction.
   Permissive on purpose: source data is free text and often partial.

Everything here is pure; the roster is passed in, never fetched.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from factionhub.engine.names import normalize_name

__all__ = [
    "DEFAULT_STRATEGIES",
    "Identity",
    "RosterIndex",
    "match_containment",
    "match_exact",
    "resolve_identity",
]

_DIGITS = re.compile(r"\d+")

# Containment below this length matches almost anything
MIN_PARTIAL_LENGTH = 2


@dataclass(frozen=True, slots=True)
class Identity:
    """A community member as far as the scoreboard is concerned."""

    discord_id: str
    username: str
    display_name: str | None = None
    avatar: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.username

    def to_dict(self) -> dict:
        return {
            "discord_id": self.discord_id,
            "username": self.username,
            "display_name": self.display_name,
            "avatar": self.avatar,
        }


@dataclass(slots=True)
class RosterIndex:
    """Lookup tables over a roster, one entry per distinct Discord id.

    ``keys`` maps every lowercase lookup key (username, digit-stripped
    username) to its member.  The first member to claim a key keeps it.
    """

    members: list[Identity] = field(default_factory=list)
    keys: dict[str, Identity] = field(default_factory=dict)

    @classmethod
    def build(cls, roster: Iterable[Identity]) -> RosterIndex:
        index = cls()
        seen: set[str] = set()
        for member in roster:
            if not member.username or member.discord_id in seen:
                continue
            seen.add(member.discord_id)
            index.members.append(member)

            username = member.username.lower()
            index.keys.setdefault(username, member)
            stripped = _DIGITS.sub("", username).strip()
            if stripped and stripped != username:
                index.keys.setdefault(stripped, member)
        return index

    def __len__(self) -> int:
        return len(self.members)


Strategy = Callable[[str, RosterIndex], Identity | None]


def match_exact(name: str, index: RosterIndex) -> Identity | None:
    """Case-insensitive equality on username, display name or lookup key."""
    for member in index.members:
        if member.username.lower() == name:
            return member
        if member.display_name and member.display_name.lower() == name:
            return member
    return index.keys.get(name)


def match_containment(name: str, index: RosterIndex) -> Identity | None:
    """Substring containment between *name* and a known username.

    Checks the lookup keys in both directions first, then whether a
    display name contains *name*.
    """
    if len(name) < MIN_PARTIAL_LENGTH:
        return None
    for key, member in index.keys.items():
        if len(key) < MIN_PARTIAL_LENGTH:
            continue
        if key in name or name in key:
            return member
    for member in index.members:
        if member.display_name and name in member.display_name.lower():
            return member
    return None


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (match_exact, match_containment)


def resolve_identity(
    raw_name: str,
    roster: RosterIndex | Iterable[Identity],
    *,
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
) -> Identity | None:
    """Best-effort match of *raw_name* against *roster*.

    A leading ``@`` and surrounding whitespace are ignored; matching is
    case-insensitive.  Returns ``None`` for unregistered or badly
    misspelled names.
    """
    index = roster if isinstance(roster, RosterIndex) else RosterIndex.build(roster)
    name = normalize_name(raw_name).lower()
    if not name or not index.members:
        return None
    for strategy in strategies:
        member = strategy(name, index)
        if member is not None:
            return member
    return None
