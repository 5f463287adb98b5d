"""Cliente de discord.py: eventos del gateway y registro de slash commands."""

from __future__ import annotations

import discord
from discord import app_commands

from shapes_bridge.core.errors import PlatformReplyError
from shapes_bridge.core.logging import get_logger, log_event
from shapes_bridge.relay.schemas import Attachment

from . import commands, schemas, service

logger = get_logger("shapes_bridge.channels.discord")

_STATUS_BY_CODE = {
    1: discord.Status.dnd,
    2: discord.Status.idle,
    3: discord.Status.invisible,
}


def resolve_status(code: int | None) -> discord.Status:
    return _STATUS_BY_CODE.get(code or 0, discord.Status.online)


class InteractionAdapter:
    """Adapta `discord.Interaction` a la interfaz que usan los manejadores."""

    def __init__(self, interaction: discord.Interaction) -> None:
        self._interaction = interaction
        self.guild_id = str(interaction.guild_id) if interaction.guild_id else None
        self.channel_id = str(interaction.channel_id)
        self.channel_name = getattr(interaction.channel, "name", None) or self.channel_id
        self.user_id = str(interaction.user.id)
        self.user_name = interaction.user.name

    async def reply(self, content: str, *, ephemeral: bool = False) -> None:
        try:
            await self._interaction.response.send_message(content, ephemeral=ephemeral)
        except discord.HTTPException as exc:
            raise PlatformReplyError(str(exc), code=exc.code) from exc

    async def defer(self) -> None:
        try:
            await self._interaction.response.defer()
        except discord.HTTPException as exc:
            raise PlatformReplyError(str(exc), code=exc.code) from exc

    async def follow_up(self, content: str, *, ephemeral: bool = False) -> None:
        try:
            await self._interaction.followup.send(content, ephemeral=ephemeral)
        except discord.HTTPException as exc:
            raise PlatformReplyError(str(exc), code=exc.code) from exc

    def is_acknowledged(self) -> bool:
        return self._interaction.response.is_done()


def build_inbound(message: discord.Message, bot_user: discord.ClientUser | None) -> schemas.InboundMessage:
    """Convierte un `discord.Message` al esquema del relay (sólo adjuntos de imagen)."""
    attachments = [
        Attachment(
            url=item.url,
            name=item.filename or "image",
            content_type=item.content_type,
            width=item.width,
            height=item.height,
        )
        for item in message.attachments
        if (item.content_type or "").startswith("image/")
    ]
    return schemas.InboundMessage(
        guild_id=str(message.guild.id),
        channel_id=str(message.channel.id),
        channel_name=getattr(message.channel, "name", None) or str(message.channel.id),
        author_id=str(message.author.id),
        author_name=message.author.name,
        content=message.content or "",
        attachments=attachments,
        mentions_bot=bot_user is not None and bot_user.mentioned_in(message),
    )


def register_commands(tree: app_commands.CommandTree, bridge: service.DiscordBridge) -> None:
    """Declara los slash commands y los enruta hacia `commands.dispatch`."""

    async def run(interaction: discord.Interaction, name: str, /, **options) -> None:
        await commands.dispatch(bridge, InteractionAdapter(interaction), name, **options)

    @tree.command(name="activate", description="Activate shape in this channel")
    async def activate(interaction: discord.Interaction) -> None:
        await run(interaction, "activate")

    @tree.command(name="deactivate", description="Deactivate shape in this channel")
    async def deactivate(interaction: discord.Interaction) -> None:
        await run(interaction, "deactivate")

    @tree.command(name="wack", description="Clear short term memory")
    async def wack(interaction: discord.Interaction) -> None:
        await run(interaction, "wack")

    @tree.command(name="sleep", description="Sleep (create memory now)")
    async def sleep(interaction: discord.Interaction) -> None:
        await run(interaction, "sleep")

    @tree.command(name="reset", description="Reset (delete all memories)")
    async def reset(interaction: discord.Interaction) -> None:
        await run(interaction, "reset")

    @tree.command(name="say", description="Say anything as the shape")
    @app_commands.describe(text="Text for the shape to say")
    async def say(interaction: discord.Interaction, text: str) -> None:
        await run(interaction, "say", text=text)

    @tree.command(name="stats", description="Show uptime and message statistics")
    async def stats(interaction: discord.Interaction) -> None:
        await run(interaction, "stats")

    @tree.command(name="rename", description="Rename yourself for the shape")
    @app_commands.describe(
        name="Name the shape will see",
        anonymous="Hide rename message (ephemeral)",
    )
    async def rename(
        interaction: discord.Interaction, name: str, anonymous: bool | None = None
    ) -> None:
        await run(interaction, "rename", name=name, anonymous=anonymous)

    instructions = app_commands.Group(
        name="custominstructions",
        description="Set, view, or clear custom instructions for this chat",
    )

    @instructions.command(name="set", description="Set custom instructions")
    @app_commands.describe(text="Instructions to set (max 1500 characters)")
    async def set_instructions(interaction: discord.Interaction, text: str) -> None:
        await run(interaction, "custominstructions", action="set", text=text)

    @instructions.command(name="clear", description="Clear custom instructions")
    async def clear_instructions(interaction: discord.Interaction) -> None:
        await run(interaction, "custominstructions", action="clear")

    @instructions.command(name="view", description="View current custom instructions")
    async def view_instructions(interaction: discord.Interaction) -> None:
        await run(interaction, "custominstructions", action="view")

    tree.add_command(instructions)


class ShapesBridgeClient(discord.Client):
    """Cliente del gateway que relaya mensajes de canal hacia la shape."""

    def __init__(
        self,
        bridge: service.DiscordBridge,
        *,
        custom_status: str | None = None,
        online_status: int | None = None,
        application_id: str | None = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.guild_messages = True
        intents.message_content = True
        # Sin `application_id` discord.py lo obtiene al iniciar sesión.
        super().__init__(
            intents=intents,
            application_id=int(application_id) if application_id else None,
        )
        self.bridge = bridge
        self.custom_status = custom_status
        self.online_status = online_status
        self.tree = app_commands.CommandTree(self)
        register_commands(self.tree, bridge)

    async def setup_hook(self) -> None:
        synced = await self.tree.sync()
        log_event(logger, "discord.commands_synced", count=len(synced))

    async def on_ready(self) -> None:
        if self.user is None:
            return
        self.bridge.bot_user_id = str(self.user.id)
        try:
            activity = discord.CustomActivity(name=self.custom_status) if self.custom_status else None
            await self.change_presence(activity=activity, status=resolve_status(self.online_status))
        except discord.DiscordException:
            logger.exception("discord.presence_failed")
        log_event(logger, "discord.ready", user=str(self.user))

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return
        permissions = message.channel.permissions_for(message.guild.me)
        if not permissions.send_messages:
            return

        inbound = build_inbound(message, self.user)
        await service.handle_message(
            self.bridge,
            inbound,
            typing=message.channel.typing,
            reply=message.reply,
        )
