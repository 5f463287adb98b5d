"""Motor de correlación: empareja un mensaje enviado con la respuesta del stream."""

from __future__ import annotations

import asyncio
from typing import Sequence

from shapes_bridge.core.errors import CorrelationTimeout
from shapes_bridge.core.logging import get_logger, log_event

from .context import RelayContext
from .locks import with_lock
from .multiplexer import ensure_stream, subscribe
from .schemas import Attachment, OutboundMessage, StreamEvent

logger = get_logger("shapes_bridge.relay")


async def _settle(
    ctx: RelayContext,
    conversation_id: str,
    message: OutboundMessage,
    reply: asyncio.Future[str],
    timeout: float,
) -> str:
    async def open_send_and_wait() -> str:
        await ensure_stream(ctx, conversation_id)
        await ctx.transport.send(conversation_id, message)
        return await reply

    # La ventana cubre apertura del stream, envío y espera.
    try:
        return await asyncio.wait_for(open_send_and_wait(), timeout)
    except asyncio.TimeoutError as exc:
        raise CorrelationTimeout(conversation_id, timeout) from exc


async def exchange(
    ctx: RelayContext,
    conversation_id: str,
    text: str,
    attachments: Sequence[Attachment] | None = None,
    *,
    timeout: float | None = None,
) -> str | None:
    """Envía `text` y espera la respuesta del asistente posterior al eco del envío.

    Fase A: el backend re-emite nuestro mensaje de usuario con el mismo id.
    Fase B: el siguiente mensaje `assistant` es la respuesta. Un mensaje de
    asistente que llegue antes del eco se ignora; si el eco nunca llega la
    espera termina en timeout en lugar de emparejar mal.
    """
    window = ctx.reply_timeout if timeout is None else timeout
    message = OutboundMessage(text=text, attachments=list(attachments or []))

    loop = asyncio.get_running_loop()
    reply: asyncio.Future[str] = loop.create_future()
    echoed = False

    def on_event(event: StreamEvent) -> None:
        nonlocal echoed
        if reply.done() or not event.is_new_message:
            return
        incoming = event.message
        if incoming.id == message.id and incoming.role == "user":
            echoed = True
            return
        if echoed and incoming.role == "assistant":
            reply.set_result(incoming.text("\n\n"))

    # El listener queda instalado antes de emitir el envío.
    unsubscribe = subscribe(ctx, conversation_id, on_event)
    try:
        return await _settle(ctx, conversation_id, message, reply, window)
    except CorrelationTimeout:
        logger.warning(
            "relay.exchange_timeout",
            extra={
                "conversation_id": conversation_id,
                "message_id": message.id,
                "echoed": echoed,
                "timeout": window,
            },
        )
        return None
    finally:
        unsubscribe()
        if not reply.done():
            reply.cancel()


async def run_command(
    ctx: RelayContext,
    conversation_id: str | None,
    command_text: str,
    *,
    wait: float | None = None,
) -> str | None:
    """Envía un comando (`!wack`, `!sleep`...) y toma el primer mensaje de asistente.

    No espera el eco del mensaje enviado: responde antes pero puede emparejar
    mal si se emiten dos comandos seguidos sobre la misma conversación.
    """
    if not conversation_id:
        return None

    window = ctx.command_timeout if wait is None else wait

    loop = asyncio.get_running_loop()
    reply: asyncio.Future[str] = loop.create_future()

    def on_event(event: StreamEvent) -> None:
        if reply.done() or not event.is_new_message:
            return
        if event.message.role == "assistant":
            reply.set_result(event.message.text("\n"))

    unsubscribe = subscribe(ctx, conversation_id, on_event)
    try:
        result = await _settle(
            ctx, conversation_id, OutboundMessage(text=command_text), reply, window
        )
    except CorrelationTimeout:
        log_event(logger, "relay.command_timeout", conversation_id=conversation_id, command=command_text)
        return None
    finally:
        unsubscribe()
        if not reply.done():
            reply.cancel()
    return result


async def send_message(
    ctx: RelayContext,
    conversation_id: str,
    text: str,
    attachments: Sequence[Attachment] | None = None,
) -> str | None:
    """Intercambio serializado por conversación; `None` si ya había uno en curso."""
    return await with_lock(
        ctx,
        conversation_id,
        lambda: exchange(ctx, conversation_id, text, attachments),
    )
