"""
factionhub.api.deps — FastAPI dependency injection
===================================================
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from factionhub.config import FactionHubConfig, load_config
from factionhub.database.engine import create_db_engine, run_db
from factionhub.engine.permissions import Actor
from factionhub.services.discord_sync import EmbedSynchronizer, WebhookSynchronizer
from factionhub.services.member_service import load_actor

_WEAK_SECRETS = frozenset({
    "factionhub-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> FactionHubConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_synchronizer() -> EmbedSynchronizer:
    return WebhookSynchronizer.from_env()


def decode_token(authorization: str | None) -> dict:
    """Validate a ``Bearer`` JWT and return its payload.  Raises 401."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not str(payload.get("sub", "")).isdigit():
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token subject")
    return payload


async def get_current_actor(
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> Actor:
    """Validate the JWT, then read the caller's role from the roster.

    The role is looked up on every request so a demotion in Discord takes
    effect at the next roster sync, not at token expiry.
    """
    payload = decode_token(authorization)
    actor = await run_db(load_actor, engine, int(payload["sub"]))
    if actor.display_name is None and payload.get("username"):
        actor = Actor(actor.member_id, actor.role, payload["username"])
    return actor


def get_privileged_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_privileged:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not privileged")
    return actor
