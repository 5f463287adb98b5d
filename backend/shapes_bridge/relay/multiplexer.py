"""Multiplexor de streams SSE: una suscripción upstream por conversación."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from pydantic import ValidationError

from shapes_bridge.core.logging import get_logger

from .context import Listener, RelayContext, StreamEntry
from .schemas import StreamEvent

logger = get_logger("shapes_bridge.relay")


async def _open_upstream(ctx: RelayContext, entry: StreamEntry) -> None:
    try:
        opened = await ctx.transport.open_stream(entry.conversation_id)
    finally:
        entry.opening = None
    if opened:
        entry.opened = True
        logger.debug("relay.stream_opened", extra={"conversation_id": entry.conversation_id})
    else:
        logger.debug("relay.stream_unavailable", extra={"conversation_id": entry.conversation_id})


async def ensure_stream(ctx: RelayContext, conversation_id: str) -> StreamEntry:
    """Devuelve la entrada de la conversación abriendo el upstream si hace falta.

    La entrada se registra antes de abrir para que llamadas concurrentes la
    compartan y esperen la misma apertura. Si la sesión no está disponible la
    entrada queda sin abrir y la siguiente llamada reintenta; los listeners se
    conservan. La apertura corre en su propia tarea: cancelar a quien espera
    no la interrumpe.
    """
    entry = ctx.streams.get(conversation_id)
    if entry is None:
        entry = StreamEntry(conversation_id)
        ctx.streams[conversation_id] = entry
    if entry.opened:
        return entry

    if entry.opening is None:
        entry.opening = asyncio.create_task(
            _open_upstream(ctx, entry), name=f"open-stream-{conversation_id}"
        )
    await asyncio.shield(entry.opening)
    return entry


def subscribe(
    ctx: RelayContext, conversation_id: str, callback: Listener
) -> Callable[[], None]:
    """Registra un listener; crea la entrada sin abrir el upstream si aún no existe."""
    entry = ctx.streams.get(conversation_id)
    if entry is None:
        entry = StreamEntry(conversation_id)
        ctx.streams[conversation_id] = entry
    return entry.subscribe(callback)


def dispatch(ctx: RelayContext, payload: Any) -> None:
    """Entrega un evento crudo del navegador a los listeners de su conversación."""
    try:
        event = StreamEvent.model_validate(payload)
    except ValidationError:
        logger.debug("relay.event_invalid", extra={"payload": repr(payload)[:200]})
        return

    if not event.chat_id:
        return
    entry = ctx.streams.get(event.chat_id)
    if entry is None:
        logger.debug("relay.event_unrouted", extra={"conversation_id": event.chat_id})
        return

    for listener in entry.listeners():
        try:
            listener(event)
        except Exception:
            logger.exception(
                "relay.listener_failed", extra={"conversation_id": event.chat_id}
            )
