"""Persistencia de canales, usuarios y estadísticas en Supabase vía REST."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from shapes_bridge.core.config import settings
from shapes_bridge.core.logging import get_logger

logger = get_logger(__name__)


class StorageError(RuntimeError):
    """Errores de persistencia para servicios externos."""


@dataclass(slots=True)
class ChannelRecord:
    """Mapeo canal de Discord → conversación del backend."""

    guild_id: str
    channel_id: str
    chat_id: str | None
    active: bool = False
    system_prompt: str | None = None
    message_count: int = 0

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ChannelRecord":
        return cls(
            guild_id=str(row.get("guild_id")),
            channel_id=str(row.get("channel_id")),
            chat_id=row.get("chat_id"),
            active=bool(row.get("active")),
            system_prompt=row.get("system_prompt"),
            message_count=int(row.get("message_count") or 0),
        )


@dataclass(slots=True)
class UserRecord:
    user_id: str
    display_name: str | None = None
    anonymous: bool = False


def _headers(prefer: str | None, *, has_body: bool) -> dict[str, str]:
    if not settings.supabase_service_role:
        raise StorageError("Supabase no está configurado (SUPABASE_SERVICE_ROLE)")
    headers = {
        "apikey": settings.supabase_service_role,
        "Authorization": f"Bearer {settings.supabase_service_role}",
        "Accept": "application/json",
    }
    if has_body:
        headers["Content-Type"] = "application/json"
    if prefer:
        headers["Prefer"] = prefer
    return headers


async def _sb_request(
    method: str,
    path: str,
    *,
    params: dict[str, str] | None = None,
    json: Any = None,
    prefer: str | None = None,
) -> httpx.Response:
    if not settings.supabase_url:
        raise StorageError("Supabase no está configurado (SUPABASE_URL)")
    url = f"{settings.supabase_url.rstrip('/')}{path}"
    headers = _headers(prefer, has_body=json is not None)
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.request(method, url, params=params, json=json, headers=headers)
    except httpx.RequestError as exc:
        logger.exception("supabase.request_failed", extra={"path": path, "error": str(exc)})
        raise StorageError(f"Error de red al consultar Supabase: {exc}") from exc

    if response.status_code >= 400:
        logger.error(
            "supabase.response_error",
            extra={"path": path, "status": response.status_code, "body": response.text},
        )
        raise StorageError(f"Supabase respondió {response.status_code}: {response.text}")
    return response


def _json_list(response: httpx.Response) -> list[dict[str, Any]]:
    payload = response.json() if response.content else []
    if not isinstance(payload, list):
        raise StorageError(f"Respuesta inesperada de Supabase: {payload!r}")
    return [row for row in payload if isinstance(row, dict)]


def _channel_filter(guild_id: str, channel_id: str) -> dict[str, str]:
    return {"guild_id": f"eq.{guild_id}", "channel_id": f"eq.{channel_id}"}


async def get_channel(guild_id: str, channel_id: str) -> ChannelRecord | None:
    """Recupera el mapeo del canal, o `None` si aún no existe."""
    params = {
        "select": "guild_id,channel_id,chat_id,active,system_prompt,message_count",
        "limit": "1",
        **_channel_filter(guild_id, channel_id),
    }
    rows = _json_list(await _sb_request("GET", "/rest/v1/channels", params=params))
    return ChannelRecord.from_row(rows[0]) if rows else None


async def upsert_channel(
    guild_id: str, channel_id: str, chat_id: str, *, active: bool = False
) -> None:
    """Inserta el canal o, si ya existe, sólo actualiza su `chat_id` (RPC `upsert_channel`)."""
    await _sb_request(
        "POST",
        "/rest/v1/rpc/upsert_channel",
        json={
            "p_guild_id": guild_id,
            "p_channel_id": channel_id,
            "p_chat_id": chat_id,
            "p_active": active,
        },
    )


async def set_active(guild_id: str, channel_id: str, active: bool) -> None:
    await _sb_request(
        "PATCH",
        "/rest/v1/channels",
        params=_channel_filter(guild_id, channel_id),
        json={"active": bool(active)},
        prefer="return=minimal",
    )


async def set_system_prompt(guild_id: str, channel_id: str, prompt: str | None) -> None:
    await _sb_request(
        "PATCH",
        "/rest/v1/channels",
        params=_channel_filter(guild_id, channel_id),
        json={"system_prompt": prompt},
        prefer="return=minimal",
    )


async def increment_stats(guild_id: str, channel_id: str) -> None:
    """Suma un mensaje al canal y al contador global en una sola transacción."""
    await _sb_request(
        "POST",
        "/rest/v1/rpc/increment_message_stats",
        json={"p_guild_id": guild_id, "p_channel_id": channel_id},
    )


async def get_user(user_id: str) -> UserRecord | None:
    params = {
        "select": "user_id,display_name,anonymous",
        "user_id": f"eq.{user_id}",
        "limit": "1",
    }
    rows = _json_list(await _sb_request("GET", "/rest/v1/users", params=params))
    if not rows:
        return None
    row = rows[0]
    return UserRecord(
        user_id=str(row.get("user_id")),
        display_name=row.get("display_name"),
        anonymous=bool(row.get("anonymous")),
    )


async def upsert_user_name(user_id: str, display_name: str) -> None:
    await _sb_request(
        "POST",
        "/rest/v1/users",
        params={"on_conflict": "user_id"},
        json={"user_id": user_id, "display_name": display_name},
        prefer="resolution=merge-duplicates,return=minimal",
    )


async def ensure_start_time(now_ms: int) -> None:
    """Registra `start_time` y el contador de mensajes si todavía no existen."""
    await _sb_request(
        "POST",
        "/rest/v1/stats",
        params={"on_conflict": "key"},
        json=[{"key": "messages", "value": 0}, {"key": "start_time", "value": now_ms}],
        prefer="resolution=ignore-duplicates,return=minimal",
    )


async def fetch_stats() -> dict[str, int]:
    rows = _json_list(await _sb_request("GET", "/rest/v1/stats", params={"select": "key,value"}))
    return {str(row["key"]): int(row.get("value") or 0) for row in rows if row.get("key")}
