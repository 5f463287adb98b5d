"""Manejadores de los slash commands del bot, independientes de discord.py."""

from __future__ import annotations

import time
from typing import Any, Protocol

from shapes_bridge.core.errors import ConcurrentRequestDropped, PlatformReplyError
from shapes_bridge.core.logging import get_logger, log_event
from shapes_bridge.relay.chunker import chunk_message
from shapes_bridge.relay.correlation import run_command
from shapes_bridge.relay.locks import hold
from shapes_bridge.services import shapes, storage

from .service import DiscordBridge, resolve_conversation

logger = get_logger("shapes_bridge.channels.discord")

MAX_SAY_LENGTH = 1983
MAX_NAME_LENGTH = 1983
MAX_INSTRUCTIONS_LENGTH = 1500
MEMORY_COMMANDS = ("wack", "sleep", "reset")

BUSY_MESSAGE = "Shape is busy, try again in a moment."
NO_RESPONSE_MESSAGE = "No response from shape."
FAILURE_MESSAGE = "Something went wrong, please try again later."


class CommandInteraction(Protocol):
    """Superficie mínima de una interacción que usan los manejadores."""

    guild_id: str | None
    channel_id: str
    channel_name: str
    user_id: str
    user_name: str

    async def reply(self, content: str, *, ephemeral: bool = False) -> None: ...

    async def defer(self) -> None: ...

    async def follow_up(self, content: str, *, ephemeral: bool = False) -> None: ...

    def is_acknowledged(self) -> bool: ...


async def safe_reply(
    interaction: CommandInteraction, content: str, *, ephemeral: bool = False
) -> None:
    """Responde o hace follow-up según el estado de la interacción, sin propagar errores."""
    try:
        if interaction.is_acknowledged():
            await interaction.follow_up(content, ephemeral=ephemeral)
        else:
            await interaction.reply(content, ephemeral=ephemeral)
    except PlatformReplyError as exc:
        if exc.ignorable:
            return
        logger.warning("discord.interaction_reply_failed", extra={"code": exc.code, "error": str(exc)})


async def safe_defer(interaction: CommandInteraction) -> bool:
    """Difiere la respuesta; retorna `False` si la interacción ya no es válida."""
    try:
        await interaction.defer()
    except PlatformReplyError as exc:
        if not exc.ignorable:
            logger.warning("discord.interaction_defer_failed", extra={"code": exc.code, "error": str(exc)})
        return False
    return True


async def activate(bridge: DiscordBridge, interaction: CommandInteraction) -> None:
    record = await resolve_conversation(
        bridge, interaction.guild_id, interaction.channel_id, interaction.channel_name
    )
    if record is None:
        await safe_reply(interaction, "Failed to create chat")
        return
    await storage.set_active(interaction.guild_id, interaction.channel_id, True)

    profile = await shapes.fetch_shape_profile(bridge.shape_slug)
    await safe_reply(interaction, f"{profile.name} activated.")
    await safe_reply(interaction, profile.activation)


async def deactivate(bridge: DiscordBridge, interaction: CommandInteraction) -> None:
    await storage.set_active(interaction.guild_id, interaction.channel_id, False)
    profile = await shapes.fetch_shape_profile(bridge.shape_slug)
    await safe_reply(interaction, f"{profile.name} deactivated.")


async def memory_command(
    bridge: DiscordBridge, interaction: CommandInteraction, command: str
) -> None:
    """Ejecuta `!wack`, `!sleep` o `!reset` sobre la conversación del canal.

    Usa el lock de la conversación; si está ocupada se informa en lugar de esperar.
    """
    record = await storage.get_channel(interaction.guild_id, interaction.channel_id)
    if record is None or not record.chat_id:
        await safe_reply(interaction, "No active chat to do this")
        return

    if not await safe_defer(interaction):
        return
    try:
        async with hold(bridge.relay, record.chat_id):
            answer = await run_command(bridge.relay, record.chat_id, f"!{command}")
    except ConcurrentRequestDropped:
        log_event(logger, "discord.command_dropped", chat_id=record.chat_id, command=command)
        await safe_reply(interaction, BUSY_MESSAGE)
        return

    if not answer:
        await safe_reply(interaction, NO_RESPONSE_MESSAGE)
        return
    for chunk in chunk_message(answer, bridge.max_message):
        await safe_reply(interaction, chunk)


async def say(bridge: DiscordBridge, interaction: CommandInteraction, text: str) -> None:
    if len(text) > MAX_SAY_LENGTH:
        await safe_reply(
            interaction, "Text too long, please use something shorter", ephemeral=True
        )
        return
    await safe_reply(interaction, f"{text}\n`{interaction.user_name}`")


async def stats(bridge: DiscordBridge, interaction: CommandInteraction) -> None:
    values = await storage.fetch_stats()
    record = await storage.get_channel(interaction.guild_id, interaction.channel_id)

    start_time = values.get("start_time")
    if start_time:
        hours = f"{(int(time.time() * 1000) - start_time) / 3_600_000:.2f}h"
    else:
        hours = "unknown"
    total = values.get("messages", 0)
    percentage = f"{record.message_count / total * 100:.1f}" if record and total else "0"
    await safe_reply(
        interaction, f"Uptime: {hours}\nMessages: {total}\nChannel %: {percentage}%\n"
    )


async def rename(
    bridge: DiscordBridge,
    interaction: CommandInteraction,
    name: str,
    anonymous: bool | None = None,
) -> None:
    new_name = name.strip()
    if len(new_name) > MAX_NAME_LENGTH:
        await safe_reply(interaction, "Name too long, please try a shorter name", ephemeral=True)
        return
    await storage.upsert_user_name(interaction.user_id, new_name)
    await safe_reply(interaction, f"Your name is now {new_name}", ephemeral=bool(anonymous))


async def custom_instructions(
    bridge: DiscordBridge,
    interaction: CommandInteraction,
    action: str,
    text: str | None = None,
) -> None:
    """Subcomandos `set`, `clear` y `view` de las instrucciones del chat."""
    record = await storage.get_channel(interaction.guild_id, interaction.channel_id)
    if record is None or not record.chat_id:
        await safe_reply(interaction, "No active chat in this channel.", ephemeral=True)
        return

    if action == "set":
        instructions = (text or "").strip()
        if len(instructions) > MAX_INSTRUCTIONS_LENGTH:
            await safe_reply(
                interaction, "Instructions too long (max 1500 characters).", ephemeral=True
            )
            return
        await bridge.backend.update_instructions(record.chat_id, instructions)
        await storage.set_system_prompt(interaction.guild_id, interaction.channel_id, instructions)
        await safe_reply(interaction, "Custom instructions updated.")
        return

    if action == "clear":
        await bridge.backend.update_instructions(record.chat_id, "")
        await storage.set_system_prompt(interaction.guild_id, interaction.channel_id, None)
        await safe_reply(interaction, "Custom instructions cleared.")
        return

    if action == "view":
        if record.system_prompt:
            await safe_reply(interaction, f"Current instructions:\n{record.system_prompt}")
        else:
            await safe_reply(interaction, "No custom instructions set.")
        return

    raise ValueError(f"Subcomando desconocido: {action}")


async def dispatch(
    bridge: DiscordBridge, interaction: CommandInteraction, name: str, /, **options: Any
) -> None:
    """Punto único de entrada: enruta el comando y registra cualquier falla."""
    if interaction.guild_id is None:
        await safe_reply(interaction, "This command only works in a server.", ephemeral=True)
        return

    try:
        if name in MEMORY_COMMANDS:
            await memory_command(bridge, interaction, name)
        elif name == "activate":
            await activate(bridge, interaction)
        elif name == "deactivate":
            await deactivate(bridge, interaction)
        elif name == "say":
            await say(bridge, interaction, options["text"])
        elif name == "stats":
            await stats(bridge, interaction)
        elif name == "rename":
            await rename(bridge, interaction, options["name"], options.get("anonymous"))
        elif name == "custominstructions":
            await custom_instructions(bridge, interaction, options["action"], options.get("text"))
        else:
            logger.warning("discord.unknown_command", extra={"command": name})
    except Exception:
        logger.exception(
            "discord.command_failed",
            extra={"command": name, "channel_id": interaction.channel_id},
        )
        await safe_reply(interaction, FAILURE_MESSAGE, ephemeral=True)
