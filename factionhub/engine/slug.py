"""
factionhub.engine.slug — Human-Readable War Slugs
==================================================

``West Side Crew`` started on 2026-10-17 → ``west-side-crew-20261017``.
A second war against the same faction on the same day gets ``-2``.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime

_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_APOSTROPHES = re.compile(r"['’]")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

UNKNOWN_FACTION_SEGMENT = "unknown"


def is_uuid(value: str) -> bool:
    return bool(_UUID.match(value))


def slugify_segment(text: str) -> str:
    """Lowercase, drop apostrophes, collapse everything else to hyphens."""
    lowered = _APOSTROPHES.sub("", text.lower().strip())
    return _NON_ALNUM.sub("-", lowered).strip("-")


def war_slug(enemy_faction: str, started_at: datetime, counter: int = 0) -> str:
    """Build the slug for a war; *counter* > 1 disambiguates same-day wars."""
    segment = slugify_segment(enemy_faction or "") or UNKNOWN_FACTION_SEGMENT
    if started_at.tzinfo is not None:
        started_at = started_at.astimezone(UTC)
    slug = f"{segment}-{started_at:%Y%m%d}"
    if counter > 1:
        slug = f"{slug}-{counter}"
    return slug
