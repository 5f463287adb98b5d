"""Fixtures compartidas para las pruebas."""

from __future__ import annotations

from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from shapes_bridge.main import app
from shapes_bridge.relay.context import RelayContext
from shapes_bridge.relay.multiplexer import dispatch
from shapes_bridge.relay.schemas import OutboundMessage


def new_message(chat_id: str, message_id: str, role: str, *texts: str) -> dict[str, Any]:
    """Evento SSE `new_message` tal como lo reenvía el binding del navegador."""
    return {
        "chatId": chat_id,
        "type": "new_message",
        "message": {
            "id": message_id,
            "role": role,
            "parts": [{"type": "text", "text": text} for text in texts],
        },
    }


class FakeBackend:
    """Transporte en memoria: registra llamadas y puede contestar por el stream."""

    def __init__(self) -> None:
        self.relay: RelayContext | None = None
        self.opened: list[str] = []
        self.sent: list[tuple[str, OutboundMessage]] = []
        self.created: list[tuple[str, str]] = []
        self.instructions: list[tuple[str, str]] = []
        self.replies: list[str] = []
        self.echo = True
        self.chat_id_to_create: str | None = "chat-new"

    async def open_stream(self, conversation_id: str) -> bool:
        self.opened.append(conversation_id)
        return True

    async def send(self, conversation_id: str, message: OutboundMessage) -> None:
        self.sent.append((conversation_id, message))
        if self.relay is None or not self.replies:
            return
        if self.echo:
            dispatch(self.relay, new_message(conversation_id, message.id, "user", message.text))
        dispatch(
            self.relay,
            new_message(conversation_id, f"reply-{len(self.sent)}", "assistant", self.replies.pop(0)),
        )

    async def create_chat(self, channel_name: str, channel_id: str) -> str | None:
        self.created.append((channel_name, channel_id))
        return self.chat_id_to_create

    async def update_instructions(self, conversation_id: str, text: str) -> bool:
        self.instructions.append((conversation_id, text))
        return True


@pytest.fixture(name="async_client")
async def fixture_async_client() -> AsyncClient:
    """Retorna un cliente asíncrono contra la app principal utilizando ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture(name="backend")
def fixture_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture(name="relay")
def fixture_relay(backend: FakeBackend) -> RelayContext:
    """Contexto del relay con ventanas cortas para que los timeouts no frenen la suite."""
    ctx = RelayContext(transport=backend, reply_timeout=0.2, command_timeout=0.2)
    backend.relay = ctx
    yield ctx
    ctx.close()
