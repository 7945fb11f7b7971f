"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
import itertools
import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of factionhub.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from factionhub.config import FactionHubConfig  # noqa: E402
from factionhub.database.engine import get_session  # noqa: E402
from factionhub.database.models import Base, Member, MemberRole  # noqa: E402
from factionhub.database.seed import seed_default_regulations  # noqa: E402
from factionhub.engine.permissions import Actor  # noqa: E402
from factionhub.services.discord_sync import PublishResult, SyncChannel  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


# Helper to run async services without pytest-asyncio
def run_async(coro):
    return asyncio.run(coro)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Faction Hub tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by ``run_db``).  The default
    global regulations are seeded, as ``init_db`` does in production.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    seed_default_regulations(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def cfg() -> FactionHubConfig:
    return FactionHubConfig(
        community_name="Low West Crew Hub",
        home_faction_name="Low West Crew",
        guild_id=100,
        site_url="https://hub.example.com",
        role_map={1: "ADMIN", 2: "LEADER", 3: "MODERATOR", 4: "MEMBER"},
    )


# ---------------------------------------------------------------------------
# Roster helpers
# ---------------------------------------------------------------------------
ADMIN_ID = 1001
LEADER_ID = 1002
MEMBER_ID = 2001
OTHER_MEMBER_ID = 2002
GUEST_ID = 3001


def add_member(
    engine: Engine,
    member_id: int,
    username: str,
    display_name: str | None = None,
    role: str = MemberRole.MEMBER,
    avatar_hash: str | None = None,
) -> None:
    with get_session(engine) as session:
        session.add(Member(
            id=member_id,
            username=username,
            display_name=display_name,
            role=role,
            avatar_hash=avatar_hash,
        ))


@pytest.fixture
def roster(db_engine: Engine) -> Engine:
    """A small crew: one admin, one leader, two members, one guest."""
    add_member(db_engine, ADMIN_ID, "drew", "Drew Carter", MemberRole.ADMIN)
    add_member(db_engine, LEADER_ID, "kayla", "Kayla West", MemberRole.LEADER)
    add_member(db_engine, MEMBER_ID, "jonsmith", "Jon Smith", MemberRole.MEMBER)
    add_member(db_engine, OTHER_MEMBER_ID, "mike_99", "Mike Rowe", MemberRole.MEMBER)
    add_member(db_engine, GUEST_ID, "visitor", None, MemberRole.GUEST)
    return db_engine


@pytest.fixture
def admin() -> Actor:
    return Actor(ADMIN_ID, MemberRole.ADMIN, "Drew Carter")


@pytest.fixture
def leader() -> Actor:
    return Actor(LEADER_ID, MemberRole.LEADER, "Kayla West")


@pytest.fixture
def member() -> Actor:
    return Actor(MEMBER_ID, MemberRole.MEMBER, "Jon Smith")


@pytest.fixture
def other_member() -> Actor:
    return Actor(OTHER_MEMBER_ID, MemberRole.MEMBER, "Mike Rowe")


@pytest.fixture
def guest() -> Actor:
    return Actor(GUEST_ID, MemberRole.GUEST, "visitor")


# ---------------------------------------------------------------------------
# Discord test double
# ---------------------------------------------------------------------------
class RecordingSynchronizer:
    """Records every publish/edit/delete and hands out fake message ids.

    With ``fail=True`` every call reports failure; with ``explode=True``
    every call raises, as a broken transport would.
    """

    def __init__(self, *, fail: bool = False, explode: bool = False) -> None:
        self.fail = fail
        self.explode = explode
        self.published: list[tuple[SyncChannel, dict]] = []
        self.edited: list[tuple[SyncChannel, str, dict]] = []
        self.deleted: list[tuple[SyncChannel, str]] = []
        self._ids = itertools.count(900_000)

    def _check(self) -> None:
        if self.explode:
            raise RuntimeError("discord is down")

    async def publish(self, channel, embed) -> PublishResult:
        self._check()
        self.published.append((channel, embed.to_dict()))
        if self.fail:
            return PublishResult(ok=False, error="webhook rejected")
        return PublishResult(ok=True, message_id=str(next(self._ids)), channel_id="555")

    async def edit(self, channel, message_id, embed) -> bool:
        self._check()
        self.edited.append((channel, message_id, embed.to_dict()))
        return not self.fail

    async def delete(self, channel, message_id) -> bool:
        self._check()
        self.deleted.append((channel, message_id))
        return not self.fail

    def published_to(self, channel: SyncChannel) -> list[dict]:
        return [embed for ch, embed in self.published if ch == channel]


@pytest.fixture
def sync() -> RecordingSynchronizer:
    return RecordingSynchronizer()


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------
def make_token(sub: int | str = ADMIN_ID, username: str = "FixtureUser") -> str:
    """Create a member JWT.  The role is read from the roster, not the token."""
    import jwt

    from factionhub.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": str(sub), "username": username},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )
