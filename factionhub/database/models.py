"""
factionhub.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- members                — Guild roster (Discord snowflake PK) with hub role
- wars                   — Conflicts with an enemy faction
- war_logs               — Dated ATTACK / DEFENSE encounters inside a war
- global_war_regulations — Default ruleset copied into uncontrolled wars
- admin_log              — Append-only audit trail of privileged mutations
- oauth_states           — One-time CSRF tokens for the OAuth callback

There is deliberately no leaderboard table: the PK list is derived from
``war_logs`` on every read.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Faction Hub ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class MemberRole(enum.StrEnum):
    ADMIN = "ADMIN"
    LEADER = "LEADER"
    MODERATOR = "MODERATOR"
    MEMBER = "MEMBER"
    GUEST = "GUEST"


class WarStatus(enum.StrEnum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"


class WarType(enum.StrEnum):
    UNCONTROLLED = "UNCONTROLLED"
    CONTROLLED = "CONTROLLED"


class WarLevel(enum.StrEnum):
    NON_LETHAL = "NON_LETHAL"
    LETHAL = "LETHAL"


class LogType(enum.StrEnum):
    ATTACK = "ATTACK"
    DEFENSE = "DEFENSE"


class FactionSide(enum.StrEnum):
    """Which side a PK entry belongs to: our crew or the enemy faction."""
    FRIEND = "FRIEND"
    ENEMY = "ENEMY"


# ---------------------------------------------------------------------------
# Members — one row per Discord guild member
# ---------------------------------------------------------------------------
class Member(Base):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)  # Discord snowflake
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    avatar_hash: Mapped[str | None] = mapped_column(String(100), default=None)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=MemberRole.GUEST)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_members_username", "username"),
    )

    def __repr__(self) -> str:
        return f"<Member id={self.id} username={self.username!r} role={self.role}>"


# ---------------------------------------------------------------------------
# Wars
# ---------------------------------------------------------------------------
class War(Base):
    """A tracked conflict between the home crew and an enemy faction.

    ``regulations`` is a snapshot: uncontrolled wars copy the global
    defaults at creation time, controlled wars carry custom rules.
    """
    __tablename__ = "wars"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    enemy_faction: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    slug: Mapped[str | None] = mapped_column(String(160), unique=True, default=None)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default=WarStatus.ACTIVE)
    war_type: Mapped[str] = mapped_column(
        String(15), nullable=False, default=WarType.UNCONTROLLED
    )
    war_level: Mapped[str] = mapped_column(
        String(15), nullable=False, default=WarLevel.NON_LETHAL
    )
    regulations: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    started_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("members.id", ondelete="SET NULL"), default=None
    )
    discord_message_id: Mapped[str | None] = mapped_column(String(32), default=None)
    discord_channel_id: Mapped[str | None] = mapped_column(String(32), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    logs: Mapped[list[WarLog]] = relationship(
        back_populates="war", cascade="all, delete-orphan", passive_deletes=True
    )
    starter: Mapped[Member | None] = relationship()

    __table_args__ = (
        Index("ix_wars_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<War id={self.id} faction={self.enemy_faction!r} "
            f"status={self.status} level={self.war_level}>"
        )


# ---------------------------------------------------------------------------
# WarLog — one dated encounter
# ---------------------------------------------------------------------------
class WarLog(Base):
    """A single ATTACK or DEFENSE encounter.

    ``friends_involved`` holds our members who died, ``players_killed`` the
    enemy players we killed.  Either list being non-empty means the
    encounter recorded a kill.
    """
    __tablename__ = "war_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    war_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("wars.id", ondelete="CASCADE"), nullable=False
    )
    log_type: Mapped[str] = mapped_column(String(10), nullable=False)
    date_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    members_involved: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    friends_involved: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    players_killed: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    evidence_url: Mapped[str | None] = mapped_column(Text, default=None)  # comma-joined
    submitted_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("members.id", ondelete="SET NULL"), default=None
    )
    submitted_by_display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    edited_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("members.id", ondelete="SET NULL"), default=None
    )
    edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    discord_message_id: Mapped[str | None] = mapped_column(String(32), default=None)
    discord_channel_id: Mapped[str | None] = mapped_column(String(32), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    war: Mapped[War] = relationship(back_populates="logs")
    submitter: Mapped[Member | None] = relationship(foreign_keys=[submitted_by])
    editor: Mapped[Member | None] = relationship(foreign_keys=[edited_by])

    __table_args__ = (
        Index("ix_war_logs_war_time", "war_id", "date_time"),
    )

    def __repr__(self) -> str:
        return f"<WarLog id={self.id} war={self.war_id} type={self.log_type}>"


# ---------------------------------------------------------------------------
# GlobalWarRegulations — defaults for uncontrolled wars
# ---------------------------------------------------------------------------
class GlobalWarRegulations(Base):
    """The most recently updated row is the one in force."""
    __tablename__ = "global_war_regulations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    attacking_cooldown_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    pk_cooldown_type: Mapped[str] = mapped_column(String(20), nullable=False, default="days")
    pk_cooldown_days: Mapped[int | None] = mapped_column(Integer, default=3)
    max_participants: Mapped[int | None] = mapped_column(Integer, default=None)
    max_assault_rifles: Mapped[int | None] = mapped_column(Integer, default=None)
    weapon_restrictions: Mapped[list | dict | str | None] = mapped_column(JSONB, nullable=True)
    updated_by: Mapped[int | None] = mapped_column(BigInteger, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<GlobalWarRegulations id={self.id} cooldown={self.attacking_cooldown_hours}h>"


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"


# ---------------------------------------------------------------------------
# OAuthState — one-time CSRF tokens for OAuth callback validation
# ---------------------------------------------------------------------------
class OAuthState(Base):
    __tablename__ = "oauth_states"

    state: Mapped[str] = mapped_column(String(128), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_oauth_states_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<OAuthState state={self.state[:8]!r}...>"
