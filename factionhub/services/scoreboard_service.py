"""
factionhub.services.scoreboard_service — PK List & War Stats Read Path
=======================================================================

Loads a war's logs and the member roster, then hands both to the pure
aggregation in :mod:`factionhub.engine.scoreboard`.  Nothing is cached:
the logs are the single source of truth and every read recomputes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select

from factionhub.database.engine import get_session
from factionhub.database.models import War, WarLog
from factionhub.engine.identity import RosterIndex
from factionhub.engine.scoreboard import PKEntry, build_scoreboard, sort_scoreboard
from factionhub.engine.stats import WarStats, compute_war_stats, is_war_hot
from factionhub.services.member_service import get_roster
from factionhub.services.war_service import resolve_war


def _load_logs(engine, war_ref: str) -> tuple[War, list[WarLog]]:
    with get_session(engine) as session:
        war = resolve_war(session, war_ref)
        logs = session.scalars(
            select(WarLog)
            .where(WarLog.war_id == war.id)
            .order_by(WarLog.date_time.desc(), WarLog.id.desc())
        ).all()
        session.expunge_all()
        return war, list(logs)


def get_scoreboard(engine, war_ref: str) -> list[PKEntry]:
    """The PK list for a war, most kills first."""
    _, logs = _load_logs(engine, war_ref)
    roster = RosterIndex.build(get_roster(engine))
    return sort_scoreboard(build_scoreboard(logs, roster))


@dataclass(slots=True)
class WarOverview:
    war: War
    stats: WarStats
    is_hot: bool


def get_war_stats(engine, war_ref: str, now: datetime | None = None) -> WarOverview:
    war, logs = _load_logs(engine, war_ref)
    scoreboard = build_scoreboard(logs, RosterIndex.build(get_roster(engine)))
    return WarOverview(
        war=war,
        stats=compute_war_stats(logs, scoreboard),
        is_hot=is_war_hot((log.date_time for log in logs), now),
    )
