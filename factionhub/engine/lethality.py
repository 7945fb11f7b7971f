"""
factionhub.engine.lethality — War Level State Machine
======================================================

A war is NON_LETHAL until an encounter records a kill (our member killed
or an enemy killed).  From then on it is LETHAL.  The only way back is for
a log edit or deletion to remove the last kill across the whole war.

The decision is a pure function of three inputs, so recomputing it any
number of times, in any order, with the same inputs gives the same level.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from factionhub.database.models import WarLevel

__all__ = [
    "LethalityChange",
    "any_kills",
    "log_has_kills",
    "resolve_war_level",
]


class _KillLists(Protocol):
    friends_involved: Sequence[str] | None
    players_killed: Sequence[str] | None


def log_has_kills(
    friends_involved: Sequence[str] | None, players_killed: Sequence[str] | None
) -> bool:
    return bool(friends_involved) or bool(players_killed)


def any_kills(logs: Iterable[_KillLists]) -> bool:
    """True if any log in *logs* records a kill on either side."""
    return any(log_has_kills(log.friends_involved, log.players_killed) for log in logs)


def resolve_war_level(current: str, *, had_kills: bool, has_kills: bool) -> WarLevel:
    """Level the war should be at after a log write, edit or delete.

    Parameters
    ----------
    current:
        The war's level before the mutation.
    had_kills:
        Whether any log of the war recorded a kill *before* the mutation.
    has_kills:
        Whether any log of the war records a kill *after* the mutation.

    Kills present → LETHAL.  Kills just removed from a LETHAL war →
    NON_LETHAL.  Otherwise the level is left alone, so a war an admin
    created as LETHAL is not downgraded by a kill-free encounter.
    """
    if has_kills:
        return WarLevel.LETHAL
    if had_kills and current == WarLevel.LETHAL:
        return WarLevel.NON_LETHAL
    return WarLevel(current)


@dataclass(frozen=True, slots=True)
class LethalityChange:
    previous: WarLevel
    current: WarLevel

    @property
    def changed(self) -> bool:
        return self.previous != self.current

    @property
    def changed_to_lethal(self) -> bool:
        return self.previous == WarLevel.NON_LETHAL and self.current == WarLevel.LETHAL

    @property
    def changed_to_non_lethal(self) -> bool:
        return self.previous == WarLevel.LETHAL and self.current == WarLevel.NON_LETHAL
