"""Arranque y cierre ordenado de navegador, relay y cliente de Discord."""

from __future__ import annotations

import asyncio
import time
from contextlib import suppress
from dataclasses import dataclass
from functools import partial

from shapes_bridge.channels.discord.client import ShapesBridgeClient
from shapes_bridge.channels.discord.service import DiscordBridge
from shapes_bridge.core.config import Settings, settings
from shapes_bridge.core.logging import get_logger, log_event
from shapes_bridge.relay.context import RelayContext
from shapes_bridge.relay.multiplexer import dispatch
from shapes_bridge.services import storage
from shapes_bridge.services.browser import BrowserSession
from shapes_bridge.services.shapes import ShapesTransport

logger = get_logger("shapes_bridge.runtime")


@dataclass(slots=True)
class BridgeRuntime:
    """Recursos vivos del proceso; uno por aplicación."""

    session: BrowserSession
    relay: RelayContext
    bridge: DiscordBridge
    client: ShapesBridgeClient | None = None
    client_task: asyncio.Task | None = None

    def status(self) -> dict[str, object]:
        return {
            "running": self.client_task is not None and not self.client_task.done(),
            "session_alive": self.session.is_alive(),
            **self.relay.snapshot(),
        }


def _log_client_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("runtime.discord_client_crashed", exc_info=exc)


async def start_runtime(config: Settings = settings) -> BridgeRuntime:
    """Levanta la sesión del navegador, el contexto del relay y el bot."""
    session = BrowserSession(
        cookie_path=config.cookie_path,
        base_url=config.shapes_base_url,
        headless=config.browser_headless,
    )
    transport = ShapesTransport(
        session, shape_slug=config.shape_slug, base_url=config.shapes_base_url
    )
    relay = RelayContext(
        transport=transport,
        reply_timeout=config.reply_timeout_seconds,
        command_timeout=config.command_timeout_seconds,
    )
    await session.start(on_event=partial(dispatch, relay))

    try:
        await storage.ensure_start_time(int(time.time() * 1000))
    except storage.StorageError:
        logger.exception("runtime.stats_init_failed")

    bridge = DiscordBridge(
        relay=relay,
        backend=transport,
        shape_slug=config.shape_slug,
        typing_interval=config.typing_interval_seconds,
        typing_failsafe=config.typing_failsafe_seconds,
        max_message=config.discord_max_message,
    )
    runtime = BridgeRuntime(session=session, relay=relay, bridge=bridge)

    if not config.discord_bot_token:
        logger.warning("runtime.discord_disabled", extra={"reason": "missing DISCORD_BOT_TOKEN"})
        return runtime

    client = ShapesBridgeClient(
        bridge,
        custom_status=config.custom_status,
        online_status=config.online_status,
        application_id=config.discord_client_id,
    )
    runtime.client = client
    runtime.client_task = asyncio.create_task(
        client.start(config.discord_bot_token), name="discord-client"
    )
    runtime.client_task.add_done_callback(_log_client_exit)
    log_event(logger, "runtime.started", shape=config.shape_slug)
    return runtime


async def stop_runtime(runtime: BridgeRuntime) -> None:
    if runtime.client is not None:
        await runtime.client.close()
    if runtime.client_task is not None:
        runtime.client_task.cancel()
        with suppress(asyncio.CancelledError):
            await runtime.client_task
    runtime.relay.close()
    await runtime.session.close()
    log_event(logger, "runtime.stopped")
