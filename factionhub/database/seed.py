"""
factionhub.database.seed — Default Regulations Seeder
======================================================

Uncontrolled wars copy the global regulations at creation time, so a
fresh database needs one row to copy from.

Idempotent — only inserts when the table is empty.  Rows edited by
leaders are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from factionhub.constants import DEFAULT_ATTACK_COOLDOWN_HOURS
from factionhub.database.models import GlobalWarRegulations

logger = logging.getLogger(__name__)


DEFAULT_REGULATIONS: dict[str, object] = {
    "attacking_cooldown_hours": DEFAULT_ATTACK_COOLDOWN_HOURS,
    "pk_cooldown_type": "days",
    "pk_cooldown_days": 3,
    "max_participants": 10,
    "max_assault_rifles": 2,
    "weapon_restrictions": [],
}


def seed_default_regulations(engine: Engine) -> bool:
    """Insert the default global regulations if none exist.

    Returns ``True`` if a row was written.
    """
    with Session(engine) as session:
        existing = session.scalar(
            select(func.count()).select_from(GlobalWarRegulations)
        ) or 0
        if existing:
            return False

        session.add(GlobalWarRegulations(**DEFAULT_REGULATIONS))
        session.commit()

    logger.info("Seeded default global war regulations.")
    return True
