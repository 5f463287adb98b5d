"""Pruebas del transporte hacia shapes.inc y del perfil público de la shape."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from shapes_bridge.core.config import settings
from shapes_bridge.relay.schemas import Attachment, OutboundMessage
from shapes_bridge.services import shapes
from shapes_bridge.services.shapes import (
    CREATE_ROOM_SCRIPT,
    SEND_MESSAGE_SCRIPT,
    UPDATE_SETTINGS_SCRIPT,
    ShapesTransport,
    fetch_shape_profile,
)


class RecordingSession:
    def __init__(self, result=True) -> None:
        self.result = result
        self.calls: list[tuple[str, tuple]] = []

    async def evaluate(self, script: str, *args):
        self.calls.append((script, args))
        return self.result


def _transport(session: RecordingSession) -> ShapesTransport:
    return ShapesTransport(session, shape_slug="nova", base_url="https://talk.example/")


@pytest.fixture(autouse=True)
def _clear_profile_cache():
    shapes._PROFILE_CACHE.clear()
    yield
    shapes._PROFILE_CACHE.clear()


def test_chat_body_targets_shape_model() -> None:
    transport = _transport(RecordingSession())
    message = OutboundMessage(
        id="m1",
        text="hola",
        created_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )

    body = transport.build_chat_body("abc", message)

    assert body["id"] == "abc"
    assert body["selectedChatModel"] == "shapesinc/nova"
    assert body["selectedVisibilityType"] == "private"
    assert body["initialInterlocutors"] == ["shapesinc/nova"]
    assert body["message"] == {
        "id": "m1",
        "role": "user",
        "content": "hola",
        "createdAt": "2024-05-01T12:00:00Z",
        "parts": [{"type": "text", "text": "hola"}],
    }


def test_empty_text_is_sent_as_single_space() -> None:
    wire = OutboundMessage(text="").to_wire()
    assert wire["content"] == " "
    assert wire["parts"] == [{"type": "text", "text": " "}]


def test_attachments_use_wire_field_names() -> None:
    image = Attachment(url="https://cdn.example/a.png", name="a.png", content_type="image/png", width=10)
    wire = OutboundMessage(text="mira", attachments=[image]).to_wire()
    assert wire["experimental_attachments"] == [
        {"url": "https://cdn.example/a.png", "name": "a.png", "contentType": "image/png", "width": 10}
    ]


@pytest.mark.asyncio
async def test_send_evaluates_post_script() -> None:
    session = RecordingSession()
    message = OutboundMessage(text="hola")

    await _transport(session).send("abc", message)

    script, (base_url, body) = session.calls[0]
    assert script == SEND_MESSAGE_SCRIPT
    assert base_url == "https://talk.example"
    assert body["message"]["id"] == message.id


@pytest.mark.asyncio
async def test_create_chat_returns_room_id() -> None:
    session = RecordingSession(result="room-9")

    chat_id = await _transport(session).create_chat("general", "c1")

    assert chat_id == "room-9"
    script, (_, payload) = session.calls[0]
    assert script == CREATE_ROOM_SCRIPT
    assert payload["title"] == "general (c1)"
    assert payload["shapes"] == ["nova"]


@pytest.mark.asyncio
async def test_create_chat_failure_returns_none() -> None:
    assert await _transport(RecordingSession(result=None)).create_chat("general", "c1") is None


@pytest.mark.asyncio
async def test_update_instructions_reports_result() -> None:
    session = RecordingSession(result=True)

    assert await _transport(session).update_instructions("abc", "") is True
    assert session.calls[0] == (UPDATE_SETTINGS_SCRIPT, ("https://talk.example", "abc", ""))
    assert await _transport(RecordingSession(result=None)).update_instructions("abc", "x") is False


def _mock_public_api(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    monkeypatch.setattr(settings, "shapes_public_api_url", "https://api.example/shapes")
    real_client = httpx.AsyncClient

    def client_factory(**kwargs) -> httpx.AsyncClient:
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(shapes.httpx, "AsyncClient", client_factory)


@pytest.mark.asyncio
async def test_fetch_shape_profile_parses_and_caches(monkeypatch: pytest.MonkeyPatch) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "id": "shape-1",
                "name": "Nova",
                "shape_settings": {"shape_initial_message": "¡Hola a todos!"},
            },
        )

    _mock_public_api(monkeypatch, handler)

    profile = await fetch_shape_profile("nova")
    again = await fetch_shape_profile("nova")

    assert profile == shapes.ShapeProfile(id="shape-1", name="Nova", activation="¡Hola a todos!")
    assert again is profile
    assert [str(request.url) for request in requests] == ["https://api.example/shapes/nova"]


@pytest.mark.asyncio
async def test_fetch_shape_profile_defaults_on_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(404, json={"error": "not found"})

    _mock_public_api(monkeypatch, handler)

    profile = await fetch_shape_profile("missing")
    await fetch_shape_profile("missing")

    assert profile == shapes.ShapeProfile(id=None, name="Shape", activation="hello")
    assert calls == 2


@pytest.mark.asyncio
async def test_fetch_shape_profile_handles_network_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("sin red", request=request)

    _mock_public_api(monkeypatch, handler)

    profile = await fetch_shape_profile("nova")
    assert profile.id is None
    assert profile.name == "Shape"
