"""
factionhub.services.discord_sync — Webhook Embed Synchronizer
==============================================================

Mirrors war and encounter state into Discord channels through webhooks.
The database is always the source of truth; these messages are a view.

Three channels, one webhook each (URLs from ``.env``):

- ``CURRENT_WARS``  — one live embed per active war
- ``ATTACK_LOGS``   — one embed per ATTACK encounter
- ``DEFENSE_LOGS``  — one embed per DEFENSE encounter

Every call is best-effort: failures are logged and reported through the
return value, never raised, so a Discord outage cannot fail a write.

Usage::

    sync = WebhookSynchronizer.from_env()
    result = await sync.publish(SyncChannel.CURRENT_WARS, embed)
    if result.ok:
        war.discord_message_id = result.message_id
"""

from __future__ import annotations

import enum
import logging
import os
import re
from dataclasses import dataclass
from typing import Protocol

import discord
import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10

_WEBHOOK_SECRET = re.compile(r"webhooks/([^/]+)/[^/?]+")


class SyncChannel(enum.StrEnum):
    CURRENT_WARS = "CURRENT_WARS"
    ATTACK_LOGS = "ATTACK_LOGS"
    DEFENSE_LOGS = "DEFENSE_LOGS"


WEBHOOK_ENV_VARS: dict[SyncChannel, str] = {
    SyncChannel.CURRENT_WARS: "DISCORD_CURRENT_WARS_WEBHOOK",
    SyncChannel.ATTACK_LOGS: "DISCORD_ATTACK_LOGS_WEBHOOK",
    SyncChannel.DEFENSE_LOGS: "DISCORD_DEFENSE_LOGS_WEBHOOK",
}


def channel_for_log_type(log_type: str) -> SyncChannel:
    return SyncChannel.ATTACK_LOGS if log_type == "ATTACK" else SyncChannel.DEFENSE_LOGS


@dataclass(frozen=True, slots=True)
class PublishResult:
    ok: bool
    message_id: str | None = None
    channel_id: str | None = None
    error: str | None = None


class EmbedSynchronizer(Protocol):
    """What the war core needs from Discord: publish, edit, delete by id."""

    async def publish(self, channel: SyncChannel, embed: discord.Embed) -> PublishResult: ...

    async def edit(self, channel: SyncChannel, message_id: str, embed: discord.Embed) -> bool: ...

    async def delete(self, channel: SyncChannel, message_id: str) -> bool: ...


def _redact(url: str) -> str:
    return _WEBHOOK_SECRET.sub(r"webhooks/\1/***", url)


def _payload(embed: discord.Embed) -> dict:
    return {"embeds": [embed.to_dict()]}


class WebhookSynchronizer:
    """:class:`EmbedSynchronizer` backed by Discord webhooks over httpx."""

    def __init__(
        self,
        webhooks: dict[SyncChannel, str],
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._webhooks = {ch: url.strip() for ch, url in webhooks.items() if url and url.strip()}
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_env(cls) -> WebhookSynchronizer:
        webhooks = {ch: os.getenv(var, "") for ch, var in WEBHOOK_ENV_VARS.items()}
        missing = [WEBHOOK_ENV_VARS[ch] for ch, url in webhooks.items() if not url.strip()]
        if missing:
            logger.warning("Discord sync disabled for: %s", ", ".join(missing))
        return cls(webhooks)

    def _client(self) -> httpx.AsyncClient:
        transport = self._transport or httpx.AsyncHTTPTransport(retries=1)
        return httpx.AsyncClient(timeout=self._timeout, transport=transport)

    def _base_url(self, channel: SyncChannel) -> str | None:
        url = self._webhooks.get(channel)
        if not url:
            logger.warning("No webhook URL configured for %s", channel.value)
            return None
        return url.split("?", 1)[0].rstrip("/")

    async def publish(self, channel: SyncChannel, embed: discord.Embed) -> PublishResult:
        base = self._base_url(channel)
        if base is None:
            return PublishResult(ok=False, error=f"No webhook configured for {channel.value}")
        try:
            async with self._client() as client:
                resp = await client.post(base, params={"wait": "true"}, json=_payload(embed))
            resp.raise_for_status()
            data = resp.json() if resp.content else {}
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Webhook publish to %s failed: %s", _redact(base), exc)
            return PublishResult(ok=False, error=str(exc))

        message_id = data.get("id")
        channel_id = data.get("channel_id")
        logger.info("Published %s message %s", channel.value, message_id)
        return PublishResult(
            ok=True,
            message_id=str(message_id) if message_id else None,
            channel_id=str(channel_id) if channel_id else None,
        )

    async def edit(self, channel: SyncChannel, message_id: str, embed: discord.Embed) -> bool:
        base = self._base_url(channel)
        if base is None or not message_id:
            return False
        try:
            async with self._client() as client:
                resp = await client.patch(f"{base}/messages/{message_id}", json=_payload(embed))
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Webhook edit of %s message %s failed: %s", channel.value, message_id, exc)
            return False
        return True

    async def delete(self, channel: SyncChannel, message_id: str) -> bool:
        base = self._base_url(channel)
        if base is None or not message_id:
            return False
        try:
            async with self._client() as client:
                resp = await client.delete(f"{base}/messages/{message_id}")
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Webhook delete of %s message %s failed: %s", channel.value, message_id, exc)
            return False
        return True


class NullSynchronizer:
    """Accepts every call and does nothing.  Used when Discord sync is off."""

    async def publish(self, channel: SyncChannel, embed: discord.Embed) -> PublishResult:
        return PublishResult(ok=False, error="Discord sync disabled")

    async def edit(self, channel: SyncChannel, message_id: str, embed: discord.Embed) -> bool:
        return False

    async def delete(self, channel: SyncChannel, message_id: str) -> bool:
        return False
