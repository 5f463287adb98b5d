"""Estado compartido del relay: registro de streams y tabla de locks."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from itertools import count
from typing import Callable, Protocol

from .schemas import OutboundMessage, StreamEvent

Listener = Callable[[StreamEvent], None]


class Transport(Protocol):
    """Puerto de salida hacia el backend conversacional."""

    async def open_stream(self, conversation_id: str) -> bool: ...

    async def send(self, conversation_id: str, message: OutboundMessage) -> None: ...


class StreamEntry:
    """Suscripción upstream de una conversación con sus listeners locales."""

    __slots__ = ("conversation_id", "opened", "opening", "_listeners", "_ids")

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        # `opened` sólo se marca cuando el upstream confirmó la apertura
        self.opened = False
        self.opening: asyncio.Task[None] | None = None
        # dict conserva el orden de registro; la llave distingue callbacks repetidos
        self._listeners: dict[int, Listener] = {}
        self._ids = count()

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        token = next(self._ids)
        self._listeners[token] = callback

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    def listeners(self) -> list[Listener]:
        return list(self._listeners.values())

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)


@dataclass(slots=True)
class RelayContext:
    """Contexto explícito que se pasa a cada operación del relay."""

    transport: Transport
    reply_timeout: float = 20.0
    command_timeout: float = 15.0
    streams: dict[str, StreamEntry] = field(default_factory=dict)
    locks: set[str] = field(default_factory=set)

    def snapshot(self) -> dict[str, int]:
        return {
            "streams": len(self.streams),
            "listeners": sum(len(entry) for entry in self.streams.values()),
            "locks": len(self.locks),
        }

    def close(self) -> None:
        for entry in self.streams.values():
            if entry.opening is not None:
                entry.opening.cancel()
            entry.clear()
        self.streams.clear()
        self.locks.clear()
