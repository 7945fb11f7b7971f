"""
factionhub.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for **infrastructure and policy** settings (guild
identity, site URL, embed timezone, self-service rules).  Secrets such as
the bot token, webhook URLs and ``JWT_SECRET`` stay in ``.env``.

Usage::

    from factionhub.config import load_config

    cfg = load_config()               # reads ./config.yaml by default
    print(cfg.home_faction_name)      # "Low West Crew"
    print(cfg.allow_owner_log_edits)  # False
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class FactionHubConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str
    home_faction_name: str

    # Discord
    guild_id: int

    # Web
    site_url: str = ""
    server_timezone: str = "Europe/London"

    # Policy
    member_wars_require_approval: bool = False  # member wars start PENDING
    allow_owner_log_edits: bool = False  # submitters may edit their own logs
    owner_edit_window_hours: int = 24

    # Embeds
    recent_logs_in_embed: int = 3

    # Discord role id → hub role ("ADMIN", "LEADER", ...)
    role_map: dict[int, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> FactionHubConfig:
    """Read *path* and return a :class:`FactionHubConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return FactionHubConfig(
        community_name=raw["community_name"],
        home_faction_name=raw["home_faction_name"],
        guild_id=int(raw["guild_id"]),
        site_url=str(raw.get("site_url") or "").rstrip("/"),
        server_timezone=raw.get("server_timezone") or "Europe/London",
        member_wars_require_approval=bool(raw.get("member_wars_require_approval", False)),
        allow_owner_log_edits=bool(raw.get("allow_owner_log_edits", False)),
        owner_edit_window_hours=int(raw.get("owner_edit_window_hours", 24)),
        recent_logs_in_embed=int(raw.get("recent_logs_in_embed", 3)),
        role_map={
            int(role_id): str(role).upper()
            for role_id, role in (raw.get("role_map") or {}).items()
        },
    )
