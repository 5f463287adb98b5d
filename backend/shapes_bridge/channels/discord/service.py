"""Servicios del canal Discord: del mensaje entrante a la respuesta troceada."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from shapes_bridge.core.logging import get_logger, log_event
from shapes_bridge.relay.chunker import DISCORD_MAX, chunk_message
from shapes_bridge.relay.context import RelayContext
from shapes_bridge.relay.correlation import send_message
from shapes_bridge.relay.liveness import with_liveness
from shapes_bridge.relay.locks import is_held
from shapes_bridge.services import shapes, storage

from . import schemas

logger = get_logger("shapes_bridge.channels.discord")

ANONYMOUS_NAME = "Anonymous"


@dataclass(slots=True)
class DiscordBridge:
    """Dependencias compartidas por el manejo de mensajes y comandos."""

    relay: RelayContext
    backend: shapes.ShapesTransport
    shape_slug: str
    bot_user_id: str | None = None
    typing_interval: float = 4.0
    typing_failsafe: float = 30.0
    max_message: int = DISCORD_MAX


def display_name(user: storage.UserRecord | None, username: str) -> str:
    if user is not None and user.anonymous:
        return ANONYMOUS_NAME
    if user is not None and user.display_name:
        return user.display_name
    return username


def rewrite_bot_mentions(
    content: str, bot_user_id: str | None, shape_slug: str, shape_id: str | None
) -> str:
    """Reemplaza `<@bot>` por la mención nativa de la shape cuando se conoce su id."""
    if not shape_id or not bot_user_id:
        return content
    pattern = re.compile(rf"<@!?{re.escape(bot_user_id)}>")
    return pattern.sub(f"[@{shape_slug}](shape:{shape_id}|{shape_slug})", content)


async def resolve_conversation(
    bridge: DiscordBridge, guild_id: str, channel_id: str, channel_name: str
) -> storage.ChannelRecord | None:
    """Devuelve el mapeo del canal creando la sala del backend si aún no existe."""
    record = await storage.get_channel(guild_id, channel_id)
    if record is not None and record.chat_id:
        return record

    chat_id = await bridge.backend.create_chat(channel_name, channel_id)
    if not chat_id:
        return None
    await storage.upsert_channel(guild_id, channel_id, chat_id, active=False)
    log_event(logger, "discord.chat_created", guild_id=guild_id, channel_id=channel_id, chat_id=chat_id)

    if record is None:
        return storage.ChannelRecord(guild_id=guild_id, channel_id=channel_id, chat_id=chat_id)
    record.chat_id = chat_id
    return record


async def handle_message(
    bridge: DiscordBridge,
    message: schemas.InboundMessage,
    *,
    typing: Callable[[], Awaitable[Any]],
    reply: Callable[[str], Awaitable[Any]],
) -> list[str]:
    """Relaya un mensaje del canal y responde con los fragmentos de la shape.

    Retorna los fragmentos efectivamente enviados. Una petición descartada por
    el lock de la conversación se ignora en silencio.
    """
    try:
        record = await resolve_conversation(
            bridge, message.guild_id, message.channel_id, message.channel_name
        )
    except storage.StorageError:
        logger.exception("discord.channel_lookup_failed", extra={"channel_id": message.channel_id})
        return []

    if record is None or not record.chat_id:
        logger.warning("discord.chat_unavailable", extra={"channel_id": message.channel_id})
        return []
    if not record.active and not message.mentions_bot:
        return []

    chat_id = record.chat_id
    try:
        user = await storage.get_user(message.author_id)
    except storage.StorageError:
        logger.exception("discord.user_lookup_failed", extra={"author_id": message.author_id})
        user = None

    profile = await shapes.fetch_shape_profile(bridge.shape_slug)
    content = rewrite_bot_mentions(
        message.content, bridge.bot_user_id, bridge.shape_slug, profile.id
    )
    text = f">>>{display_name(user, message.author_name)}: {content}"

    if is_held(bridge.relay, chat_id):
        logger.debug("discord.request_dropped", extra={"chat_id": chat_id})
        return []

    try:
        answer = await with_liveness(
            typing,
            lambda: send_message(bridge.relay, chat_id, text, message.attachments),
            interval=bridge.typing_interval,
            failsafe=bridge.typing_failsafe,
        )
    except Exception:
        logger.exception("discord.exchange_failed", extra={"chat_id": chat_id})
        answer = None

    if not answer:
        logger.warning(
            "discord.no_response",
            extra={"chat_id": chat_id, "channel_id": message.channel_id},
        )
        return []

    sent: list[str] = []
    for chunk in chunk_message(answer, bridge.max_message):
        try:
            await reply(chunk)
        except Exception as exc:
            logger.warning(
                "discord.reply_failed",
                extra={"channel_id": message.channel_id, "error": str(exc)},
            )
            continue
        sent.append(chunk)

    try:
        await storage.increment_stats(message.guild_id, message.channel_id)
    except storage.StorageError:
        logger.exception("discord.stats_failed", extra={"channel_id": message.channel_id})

    return sent
