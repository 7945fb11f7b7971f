"""
factionhub.constants — Shared Constants & Helpers
==================================================

Single source of truth for name patterns, role sets, embed colours and
the timestamp normalisation used everywhere rows come back from the DB.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
PRIVILEGED_ROLES: frozenset[str] = frozenset({"ADMIN", "LEADER", "MODERATOR"})

# Highest first; used when a member holds several mapped Discord roles
ROLE_PRECEDENCE: tuple[str, ...] = ("ADMIN", "LEADER", "MODERATOR", "MEMBER", "GUEST")


# ---------------------------------------------------------------------------
# Encounter name shapes
# ---------------------------------------------------------------------------
FULL_NAME_PATTERN = re.compile(r"^[A-Z][a-z]+ [A-Z][a-z]+$")
DISCORD_HANDLE_PATTERN = re.compile(r"^@[A-Za-z0-9_]{2,}$")

NAME_FORMAT_HINT = (
    'Must be "Firstname Lastname" (e.g. "John Doe") '
    "or @DiscordName (e.g. @Davion)"
)


# ---------------------------------------------------------------------------
# War heat / cooldown defaults
# ---------------------------------------------------------------------------
DEFAULT_ATTACK_COOLDOWN_HOURS = 6
HOT_WAR_MIN_ENCOUNTERS = 6
HOT_WAR_WINDOW_DAYS = 7
HOT_WAR_RECENT_HOURS = 36


# ---------------------------------------------------------------------------
# Embed presentation
# ---------------------------------------------------------------------------
EMBED_COLOR_LETHAL = 0xE74C3C
EMBED_COLOR_NON_LETHAL = 0x3498DB
EMBED_COLOR_ENCOUNTER = 0x252B32
VIDEO_THUMBNAIL_URL = (
    "https://support.discord.com/hc/user_images/v5lrcRh6xIijhePbuIfSgA.png"
)

_IMAGE_URL = re.compile(
    r"(\.(jpg|jpeg|png|gif|webp|bmp)(\?.*)?$|imgur\.com/[a-zA-Z0-9]+(\.[a-zA-Z]{3,4})?)",
    re.IGNORECASE,
)
_VIDEO_URL = re.compile(r"\.(mp4|webm|mov)(\?.*)?$", re.IGNORECASE)


def is_image_url(url: str) -> bool:
    """Direct image links and Imgur pages render as embed images."""
    return bool(_IMAGE_URL.search(url))


def is_video_url(url: str) -> bool:
    return bool(_VIDEO_URL.search(url))


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def ensure_utc(value: datetime | None) -> datetime | None:
    """Return *value* as an aware UTC datetime.

    SQLite hands back naive datetimes for ``DateTime(timezone=True)``
    columns; everything we store is UTC, so naive means UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utcnow() -> datetime:
    return datetime.now(UTC)
