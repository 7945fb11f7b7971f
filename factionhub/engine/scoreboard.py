"""
factionhub.engine.scoreboard — PK Leaderboard Aggregation
==========================================================

The player-kill list is never stored.  It is folded from a war's full log
history on every read, so there is no second copy that can drift from
the logs.

Two tallies are kept per log:

* ``players_killed``   → side ``ENEMY`` (enemy players we killed)
* ``friends_involved`` → side ``FRIEND`` (our members who died)

Names are normalised (leading ``@`` and whitespace stripped) and tallied
case-sensitively.  Each tally is then resolved to a roster identity; when
two spellings resolve to the same Discord id on the same side they are
merged into the entry created first, so one member never takes two rows.
Unresolved names keep their own row with a placeholder id.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from factionhub.constants import ensure_utc
from factionhub.database.models import FactionSide
from factionhub.engine.identity import Identity, RosterIndex, resolve_identity
from factionhub.engine.names import normalize_name

__all__ = [
    "KillTotals",
    "PKEntry",
    "build_scoreboard",
    "kill_totals",
    "sort_scoreboard",
    "tally_kills",
]


class _LogRow(Protocol):
    id: int
    date_time: datetime
    friends_involved: Sequence[str] | None
    players_killed: Sequence[str] | None


@dataclass(slots=True)
class PKEntry:
    """One leaderboard row: a player on one side and how often they died."""

    id: str
    player_name: str
    faction: FactionSide
    kill_count: int
    last_killed_at: datetime
    identity: Identity | None = None
    aliases: list[str] = field(default_factory=list)

    @property
    def discord_id(self) -> str | None:
        return self.identity.discord_id if self.identity else None

    def key(self) -> tuple[str, str, int, str]:
        return (self.player_name, self.faction.value, self.kill_count,
                self.last_killed_at.isoformat())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "player_name": self.player_name,
            "faction": self.faction.value,
            "kill_count": self.kill_count,
            "last_killed_at": self.last_killed_at.isoformat(),
            "discord_id": self.discord_id,
            "discord_user": self.identity.to_dict() if self.identity else None,
            "aliases": list(self.aliases),
        }


@dataclass(slots=True)
class _Tally:
    name: str
    side: FactionSide
    count: int
    last: datetime


@dataclass(frozen=True, slots=True)
class KillTotals:
    """Enemy players we killed vs. our members who died."""

    kills: int
    deaths: int

    @property
    def difference(self) -> int:
        return self.kills - self.deaths


def _newest_first(logs: Iterable[_LogRow]) -> list[_LogRow]:
    return sorted(
        logs,
        key=lambda log: (ensure_utc(log.date_time), log.id or 0),
        reverse=True,
    )


def tally_kills(logs: Iterable[_LogRow]) -> list[_Tally]:
    """Fold every kill into one tally per ``(side, normalised name)``.

    Tallies come back in first-seen order with logs walked newest first,
    which keeps the output stable for an unchanged log set.
    """
    tallies: dict[tuple[FactionSide, str], _Tally] = {}
    for log in _newest_first(logs):
        when = ensure_utc(log.date_time)
        for side, names in (
            (FactionSide.ENEMY, log.players_killed or []),
            (FactionSide.FRIEND, log.friends_involved or []),
        ):
            for raw in names:
                name = normalize_name(raw)
                if not name:
                    continue
                tally = tallies.get((side, name))
                if tally is None:
                    tallies[(side, name)] = _Tally(name, side, 1, when)
                else:
                    tally.count += 1
                    if when > tally.last:
                        tally.last = when
    return list(tallies.values())


def kill_totals(logs: Iterable[_LogRow]) -> KillTotals:
    kills = deaths = 0
    for log in logs:
        kills += len(log.players_killed or [])
        deaths += len(log.friends_involved or [])
    return KillTotals(kills=kills, deaths=deaths)


def build_scoreboard(
    logs: Iterable[_LogRow], roster: RosterIndex | Iterable[Identity] = ()
) -> list[PKEntry]:
    """Derive the PK list for one war from its logs.

    The result is in creation order; callers choose the presentation
    order (usually :func:`sort_scoreboard`).
    """
    index = roster if isinstance(roster, RosterIndex) else RosterIndex.build(roster)
    entries: list[PKEntry] = []
    by_identity: dict[tuple[FactionSide, str], PKEntry] = {}

    for tally in tally_kills(logs):
        identity = resolve_identity(tally.name, index)
        if identity is not None:
            merged = by_identity.get((tally.side, identity.discord_id))
            if merged is not None:
                merged.kill_count += tally.count
                if tally.last > merged.last_killed_at:
                    merged.last_killed_at = tally.last
                if tally.name not in merged.aliases:
                    merged.aliases.append(tally.name)
                continue
            entry = PKEntry(
                id=f"{tally.side.value}-{identity.discord_id}",
                player_name=identity.label,
                faction=tally.side,
                kill_count=tally.count,
                last_killed_at=tally.last,
                identity=identity,
                aliases=[tally.name],
            )
            by_identity[(tally.side, identity.discord_id)] = entry
        else:
            entry = PKEntry(
                id=f"{tally.side.value}-{tally.name}-{len(entries)}",
                player_name=tally.name,
                faction=tally.side,
                kill_count=tally.count,
                last_killed_at=tally.last,
                aliases=[tally.name],
            )
        entries.append(entry)
    return entries


def sort_scoreboard(entries: Iterable[PKEntry]) -> list[PKEntry]:
    """Most kills first, then most recent, then by name."""
    return sorted(
        entries,
        key=lambda e: (-e.kill_count, -e.last_killed_at.timestamp(), e.player_name.lower()),
    )
