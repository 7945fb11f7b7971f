"""
Faction Hub — War Tracking for a Discord Role-Play Community
=============================================================
Tracks conflicts ("wars") between the home crew and enemy factions,
records dated encounter logs, derives a player-kill leaderboard from
those logs, and mirrors live war state into Discord through webhooks.

Package layout::

    factionhub/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Name patterns, roles, embed colours, time helpers
    ├── errors.py          # Validation / permission / conflict / not-found
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # Members, wars, war logs, regulations, audit
    │   └── seed.py        # Default global regulations
    ├── engine/
    │   ├── lethality.py   # NON_LETHAL ↔ LETHAL decision
    │   ├── names.py       # "Firstname Lastname" / @handle validation
    │   ├── identity.py    # Free-text name → community member
    │   ├── scoreboard.py  # PK leaderboard aggregation
    │   ├── permissions.py # Actor, privilege and edit-window policy
    │   ├── slug.py        # Human-readable war slugs
    │   └── stats.py       # War stats, hot wars, cooldowns
    ├── services/
    │   ├── war_service.py        # War lifecycle
    │   ├── log_service.py        # Encounter log ledger
    │   ├── scoreboard_service.py # PK list read path
    │   ├── regulations_service.py
    │   ├── member_service.py     # Guild roster
    │   ├── discord_sync.py       # Webhook embed synchronizer
    │   └── embeds.py             # Embed builders
    └── api/
        ├── main.py        # FastAPI app
        ├── auth.py        # Discord OAuth2 → JWT
        └── routes/        # Wars, logs, regulations, members
"""

__version__ = "0.1.0"
