"""
factionhub.engine.stats — War Statistics, Heat & Cooldowns
===========================================================

Read-side helpers for the war page and the current-wars embed.  All pure:
logs and the derived scoreboard go in, plain data comes out.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from factionhub.constants import (
    HOT_WAR_MIN_ENCOUNTERS,
    HOT_WAR_RECENT_HOURS,
    HOT_WAR_WINDOW_DAYS,
    ensure_utc,
    utcnow,
)
from factionhub.database.models import FactionSide, LogType
from factionhub.engine.scoreboard import PKEntry, sort_scoreboard

__all__ = [
    "CooldownStatus",
    "WarStats",
    "compute_war_stats",
    "cooldown_status",
    "is_war_hot",
]

TOP_N = 5


@dataclass(slots=True)
class WarStats:
    log_counts: dict[str, int] = field(default_factory=dict)
    top_submitters: list[tuple[str, int]] = field(default_factory=list)
    top_deaths: list[tuple[str, int]] = field(default_factory=list)
    enemy_kills: int = 0
    friend_deaths: int = 0
    winner: str = "DRAW"

    def to_dict(self) -> dict:
        return {
            "log_counts": dict(self.log_counts),
            "top_submitters": [list(pair) for pair in self.top_submitters],
            "top_deaths": [list(pair) for pair in self.top_deaths],
            "enemy_kills": self.enemy_kills,
            "friend_deaths": self.friend_deaths,
            "winner": self.winner,
        }


def compute_war_stats(logs: Iterable, scoreboard: Sequence[PKEntry]) -> WarStats:
    """Summarise a war.

    ``winner`` is FRIEND when we killed more enemies than we lost members,
    ENEMY for the reverse, DRAW when level.
    """
    counts: Counter[str] = Counter({LogType.ATTACK.value: 0, LogType.DEFENSE.value: 0})
    submitters: Counter[str] = Counter()
    for log in logs:
        counts[str(log.log_type)] += 1
        submitters[log.submitted_by_display_name or "Unknown"] += 1

    friends = [e for e in sort_scoreboard(scoreboard) if e.faction == FactionSide.FRIEND]
    enemy_kills = sum(e.kill_count for e in scoreboard if e.faction == FactionSide.ENEMY)
    friend_deaths = sum(e.kill_count for e in friends)

    if enemy_kills > friend_deaths:
        winner = FactionSide.FRIEND.value
    elif friend_deaths > enemy_kills:
        winner = FactionSide.ENEMY.value
    else:
        winner = "DRAW"

    return WarStats(
        log_counts=dict(counts),
        top_submitters=sorted(submitters.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_N],
        top_deaths=[(e.player_name, e.kill_count) for e in friends[:TOP_N]],
        enemy_kills=enemy_kills,
        friend_deaths=friend_deaths,
        winner=winner,
    )


def is_war_hot(log_times: Iterable[datetime | None], now: datetime | None = None) -> bool:
    """At least six encounters in the last week, one in the last 36 hours."""
    now = now or utcnow()
    week_ago = now - timedelta(days=HOT_WAR_WINDOW_DAYS)
    recent_cutoff = now - timedelta(hours=HOT_WAR_RECENT_HOURS)

    recent = [t for t in (ensure_utc(t) for t in log_times) if t is not None and t >= week_ago]
    if len(recent) < HOT_WAR_MIN_ENCOUNTERS:
        return False
    return any(t >= recent_cutoff for t in recent)


@dataclass(frozen=True, slots=True)
class CooldownStatus:
    """When each side may attack next; ``None`` means now."""

    enemy_next_attack: datetime | None
    home_next_attack: datetime | None


def _next_attack(last: datetime | None, cooldown: timedelta, now: datetime) -> datetime | None:
    last = ensure_utc(last)
    if last is None:
        return None
    ready = last + cooldown
    return ready if ready > now else None


def cooldown_status(
    last_attack: datetime | None,
    last_defense: datetime | None,
    cooldown_hours: int,
    now: datetime | None = None,
) -> CooldownStatus:
    """Next attack time per side.

    Our last ATTACK starts our cooldown; our last DEFENSE means the enemy
    attacked, which starts theirs.
    """
    now = now or utcnow()
    cooldown = timedelta(hours=cooldown_hours)
    return CooldownStatus(
        enemy_next_attack=_next_attack(last_defense, cooldown, now),
        home_next_attack=_next_attack(last_attack, cooldown, now),
    )
