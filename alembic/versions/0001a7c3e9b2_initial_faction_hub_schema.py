"""Initial Faction Hub schema

Revision ID: 0001a7c3e9b2
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001a7c3e9b2"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create members, wars, war_logs, regulations, audit and OAuth tables."""
    op.create_table(
        "members",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("avatar_hash", sa.String(100), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="GUEST"),
        *_timestamps(),
    )
    op.create_index("ix_members_username", "members", ["username"])

    op.create_table(
        "wars",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("enemy_faction", sa.String(100), nullable=False, server_default=""),
        sa.Column("slug", sa.String(160), nullable=True, unique=True),
        sa.Column("status", sa.String(10), nullable=False, server_default="ACTIVE"),
        sa.Column("war_type", sa.String(15), nullable=False, server_default="UNCONTROLLED"),
        sa.Column("war_level", sa.String(15), nullable=False, server_default="NON_LETHAL"),
        sa.Column("regulations", postgresql.JSONB(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "started_by",
            sa.BigInteger(),
            sa.ForeignKey("members.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("discord_message_id", sa.String(32), nullable=True),
        sa.Column("discord_channel_id", sa.String(32), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_wars_status_created", "wars", ["status", "created_at"])

    op.create_table(
        "war_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "war_id",
            sa.String(36),
            sa.ForeignKey("wars.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("log_type", sa.String(10), nullable=False),
        sa.Column("date_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("members_involved", postgresql.JSONB(), nullable=False,
                  server_default=sa.text("'[]'::jsonb")),
        sa.Column("friends_involved", postgresql.JSONB(), nullable=False,
                  server_default=sa.text("'[]'::jsonb")),
        sa.Column("players_killed", postgresql.JSONB(), nullable=False,
                  server_default=sa.text("'[]'::jsonb")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("evidence_url", sa.Text(), nullable=True),
        sa.Column(
            "submitted_by",
            sa.BigInteger(),
            sa.ForeignKey("members.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("submitted_by_display_name", sa.String(100), nullable=True),
        sa.Column(
            "edited_by",
            sa.BigInteger(),
            sa.ForeignKey("members.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("discord_message_id", sa.String(32), nullable=True),
        sa.Column("discord_channel_id", sa.String(32), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_war_logs_war_time", "war_logs", ["war_id", "date_time"])

    op.create_table(
        "global_war_regulations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("attacking_cooldown_hours", sa.Integer(), nullable=False, server_default="6"),
        sa.Column("pk_cooldown_type", sa.String(20), nullable=False, server_default="days"),
        sa.Column("pk_cooldown_days", sa.Integer(), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("max_assault_rifles", sa.Integer(), nullable=True),
        sa.Column("weapon_restrictions", postgresql.JSONB(), nullable=True),
        sa.Column("updated_by", sa.BigInteger(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.BigInteger(), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"]
    )

    op.create_table(
        "oauth_states",
        sa.Column("state", sa.String(128), primary_key=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_oauth_states_created_at", "oauth_states", ["created_at"])


def downgrade() -> None:
    """Drop every Faction Hub table."""
    op.drop_index("ix_oauth_states_created_at", table_name="oauth_states")
    op.drop_table("oauth_states")
    op.drop_index("ix_admin_log_target", table_name="admin_log")
    op.drop_index("ix_admin_log_actor_time", table_name="admin_log")
    op.drop_table("admin_log")
    op.drop_table("global_war_regulations")
    op.drop_index("ix_war_logs_war_time", table_name="war_logs")
    op.drop_table("war_logs")
    op.drop_index("ix_wars_status_created", table_name="wars")
    op.drop_table("wars")
    op.drop_index("ix_members_username", table_name="members")
    op.drop_table("members")
