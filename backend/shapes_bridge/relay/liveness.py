"""Indicador periódico de actividad ("escribiendo...") mientras corre un intercambio."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from shapes_bridge.core.logging import get_logger

logger = get_logger("shapes_bridge.relay")

T = TypeVar("T")


async def with_liveness(
    signal: Callable[[], Awaitable[Any]],
    task: Callable[[], Awaitable[T]],
    *,
    interval: float = 4.0,
    failsafe: float = 30.0,
) -> T:
    """Ejecuta `task()` emitiendo `signal()` cada `interval` segundos.

    Tras `failsafe` segundos deja de emitir aunque `task` siga pendiente; la
    tarea no se cancela. Los errores de `signal` se descartan.
    """
    loop = asyncio.get_running_loop()
    active = True

    def expire() -> None:
        nonlocal active
        active = False

    async def pulse() -> None:
        next_tick = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            next_tick += interval
            if not active:
                return
            try:
                await signal()
            except Exception as exc:
                logger.debug("relay.liveness_signal_failed", extra={"error": str(exc)})

    failsafe_handle = loop.call_later(failsafe, expire)
    pulse_task = loop.create_task(pulse(), name="liveness-pulse")
    try:
        return await task()
    finally:
        active = False
        pulse_task.cancel()
        failsafe_handle.cancel()
