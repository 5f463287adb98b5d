"""Pruebas de la capa de persistencia sobre Supabase REST."""

from __future__ import annotations

import json

import httpx
import pytest

from shapes_bridge.core.config import settings
from shapes_bridge.services import storage


class CapturedRequests(list):
    """Peticiones enviadas junto con las respuestas preparadas por ruta."""

    def __init__(self) -> None:
        super().__init__()
        self.responses: dict[str, httpx.Response] = {}


@pytest.fixture(name="supabase")
def fixture_supabase(monkeypatch: pytest.MonkeyPatch) -> CapturedRequests:
    """Dirige httpx hacia un transporte simulado y retorna las peticiones capturadas."""
    monkeypatch.setattr(settings, "supabase_url", "https://db.example/")
    monkeypatch.setattr(settings, "supabase_service_role", "service-key")
    captured = CapturedRequests()

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return captured.responses.get(request.url.path, httpx.Response(204))

    real_client = httpx.AsyncClient

    def client_factory(**kwargs) -> httpx.AsyncClient:
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(storage.httpx, "AsyncClient", client_factory)
    return captured


@pytest.mark.asyncio
async def test_get_channel_parses_row(supabase) -> None:
    supabase.responses["/rest/v1/channels"] = httpx.Response(
        200,
        json=[
            {
                "guild_id": "g1",
                "channel_id": "c1",
                "chat_id": "chat-1",
                "active": True,
                "system_prompt": None,
                "message_count": 12,
            }
        ],
    )

    record = await storage.get_channel("g1", "c1")

    assert record == storage.ChannelRecord("g1", "c1", "chat-1", True, None, 12)
    request = supabase[0]
    assert request.url.params["guild_id"] == "eq.g1"
    assert request.url.params["channel_id"] == "eq.c1"
    assert request.headers["apikey"] == "service-key"
    assert request.headers["Authorization"] == "Bearer service-key"


@pytest.mark.asyncio
async def test_get_channel_returns_none_when_missing(supabase) -> None:
    supabase.responses["/rest/v1/channels"] = httpx.Response(200, json=[])
    assert await storage.get_channel("g1", "c1") is None


@pytest.mark.asyncio
async def test_upsert_channel_calls_rpc(supabase) -> None:
    await storage.upsert_channel("g1", "c1", "chat-1")

    request = supabase[0]
    assert request.method == "POST"
    assert request.url.path == "/rest/v1/rpc/upsert_channel"
    assert json.loads(request.content) == {
        "p_guild_id": "g1",
        "p_channel_id": "c1",
        "p_chat_id": "chat-1",
        "p_active": False,
    }


@pytest.mark.asyncio
async def test_set_active_patches_channel(supabase) -> None:
    await storage.set_active("g1", "c1", True)

    request = supabase[0]
    assert request.method == "PATCH"
    assert request.headers["Prefer"] == "return=minimal"
    assert json.loads(request.content) == {"active": True}


@pytest.mark.asyncio
async def test_increment_stats_uses_single_rpc(supabase) -> None:
    await storage.increment_stats("g1", "c1")

    assert [request.url.path for request in supabase] == ["/rest/v1/rpc/increment_message_stats"]


@pytest.mark.asyncio
async def test_upsert_user_name_merges_duplicates(supabase) -> None:
    await storage.upsert_user_name("u1", "Ana")

    request = supabase[0]
    assert request.url.params["on_conflict"] == "user_id"
    assert "merge-duplicates" in request.headers["Prefer"]
    assert json.loads(request.content) == {"user_id": "u1", "display_name": "Ana"}


@pytest.mark.asyncio
async def test_ensure_start_time_ignores_existing_rows(supabase) -> None:
    await storage.ensure_start_time(1_700_000_000_000)

    request = supabase[0]
    assert "ignore-duplicates" in request.headers["Prefer"]
    rows = json.loads(request.content)
    assert {"key": "start_time", "value": 1_700_000_000_000} in rows


@pytest.mark.asyncio
async def test_fetch_stats_builds_mapping(supabase) -> None:
    supabase.responses["/rest/v1/stats"] = httpx.Response(
        200, json=[{"key": "messages", "value": 40}, {"key": "start_time", "value": 1000}]
    )
    assert await storage.fetch_stats() == {"messages": 40, "start_time": 1000}


@pytest.mark.asyncio
async def test_error_status_raises_storage_error(supabase) -> None:
    supabase.responses["/rest/v1/users"] = httpx.Response(500, text="boom")
    with pytest.raises(storage.StorageError):
        await storage.get_user("u1")


@pytest.mark.asyncio
async def test_missing_configuration_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "supabase_url", None)
    with pytest.raises(storage.StorageError):
        await storage.fetch_stats()
