"""Lock por conversación: serializa intercambios y descarta peticiones concurrentes."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from shapes_bridge.core.errors import ConcurrentRequestDropped
from shapes_bridge.core.logging import get_logger

from .context import RelayContext

logger = get_logger("shapes_bridge.relay")

T = TypeVar("T")


def is_held(ctx: RelayContext, conversation_id: str) -> bool:
    return conversation_id in ctx.locks


@asynccontextmanager
async def hold(ctx: RelayContext, conversation_id: str) -> AsyncIterator[None]:
    """Toma el lock o lanza `ConcurrentRequestDropped` sin esperar."""
    if conversation_id in ctx.locks:
        raise ConcurrentRequestDropped(conversation_id)
    ctx.locks.add(conversation_id)
    try:
        yield
    finally:
        ctx.locks.discard(conversation_id)


async def with_lock(
    ctx: RelayContext,
    conversation_id: str,
    fn: Callable[[], Awaitable[T]],
) -> T | None:
    """Ejecuta `fn` con el lock tomado; retorna `None` si ya estaba ocupado."""
    if conversation_id in ctx.locks:
        logger.debug("relay.request_dropped", extra={"conversation_id": conversation_id})
        return None
    async with hold(ctx, conversation_id):
        return await fn()
