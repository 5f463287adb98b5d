"""Integración con el backend de shapes.inc: transporte del relay y perfil público."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from shapes_bridge.core.config import settings
from shapes_bridge.core.logging import get_logger
from shapes_bridge.relay.schemas import OutboundMessage

logger = get_logger(__name__)

# Abre un EventSource por conversación y reenvía cada evento al binding de Python.
OPEN_STREAM_SCRIPT = """([chatId, baseUrl]) => {
  window.__sse = window.__sse || {};
  if (window.__sse[chatId]) return false;
  const es = new EventSource(`${baseUrl}/api/chat/${chatId}/stream`, { withCredentials: true });
  es.onmessage = (e) => {
    try { window.emitSSE({ chatId, ...JSON.parse(e.data) }); } catch (err) {}
  };
  window.__sse[chatId] = es;
  return true;
}"""

# No espera el fetch: la respuesta llega por el stream, no por el POST.
SEND_MESSAGE_SCRIPT = """([baseUrl, body]) => {
  fetch(`${baseUrl}/api/chat`, {
    method: 'POST',
    headers: { 'content-type': 'application/json' },
    credentials: 'include',
    body: JSON.stringify(body),
  });
  return true;
}"""

CREATE_ROOM_SCRIPT = """async ([baseUrl, payload]) => {
  const res = await fetch(`${baseUrl}/api/rooms`, {
    method: 'POST',
    headers: { 'content-type': 'application/json', accept: '*/*' },
    credentials: 'include',
    body: JSON.stringify(payload),
  });
  const data = await res.json();
  return (data && (data.id || (data.room && data.room.id))) || null;
}"""

UPDATE_SETTINGS_SCRIPT = """async ([baseUrl, chatId, preset]) => {
  const res = await fetch(`${baseUrl}/api/chat/${chatId}/settings`, {
    method: 'PATCH',
    headers: { 'content-type': 'application/json', accept: '*/*' },
    credentials: 'include',
    body: JSON.stringify({ preset }),
  });
  return res.ok;
}"""


class SessionProvider(Protocol):
    async def evaluate(self, script: str, *args: Any) -> Any | None: ...


@dataclass(slots=True)
class ShapeProfile:
    """Datos públicos de la shape usados en respuestas y menciones."""

    id: str | None
    name: str = "Shape"
    activation: str = "hello"


_PROFILE_CACHE: dict[str, ShapeProfile] = {}


class ShapesTransport:
    """Transporte del relay sobre la sesión autenticada del navegador."""

    def __init__(self, session: SessionProvider, *, shape_slug: str, base_url: str) -> None:
        self.session = session
        self.shape_slug = shape_slug
        self.base_url = base_url.rstrip("/")

    @property
    def model_ref(self) -> str:
        return f"shapesinc/{self.shape_slug}"

    def build_chat_body(self, conversation_id: str, message: OutboundMessage) -> dict[str, Any]:
        return {
            "id": conversation_id,
            "message": message.to_wire(),
            "selectedChatModel": self.model_ref,
            "selectedVisibilityType": "private",
            "initialInterlocutors": [self.model_ref],
        }

    async def open_stream(self, conversation_id: str) -> bool:
        """`True` si la página evaluó el script; `false` del script indica un stream ya abierto."""
        result = await self.session.evaluate(OPEN_STREAM_SCRIPT, conversation_id, self.base_url)
        return result is not None

    async def send(self, conversation_id: str, message: OutboundMessage) -> None:
        body = self.build_chat_body(conversation_id, message)
        await self.session.evaluate(SEND_MESSAGE_SCRIPT, self.base_url, body)

    async def create_chat(self, channel_name: str, channel_id: str) -> str | None:
        """Crea una sala privada para el canal y retorna su id, o `None` si falla."""
        payload = {
            "title": f"{channel_name} ({channel_id})",
            "shapes": [self.shape_slug],
            "visibility": "private",
            "isPrivate": True,
            "useCase": "roleplay",
            "freeWillMode": "low",
        }
        chat_id = await self.session.evaluate(CREATE_ROOM_SCRIPT, self.base_url, payload)
        if not chat_id:
            logger.warning(
                "shapes.create_chat_failed",
                extra={"channel_id": channel_id, "channel_name": channel_name},
            )
            return None
        return str(chat_id)

    async def update_instructions(self, conversation_id: str, text: str) -> bool:
        """Actualiza (o limpia con "") las instrucciones personalizadas del chat."""
        result = await self.session.evaluate(
            UPDATE_SETTINGS_SCRIPT, self.base_url, conversation_id, text
        )
        return bool(result)


async def fetch_shape_profile(slug: str) -> ShapeProfile:
    """Obtiene nombre, id y mensaje inicial de la shape desde la API pública.

    Si la consulta falla retorna valores por defecto sin lanzar.
    """
    cached = _PROFILE_CACHE.get(slug)
    if cached:
        return cached

    url = f"{settings.shapes_public_api_url.rstrip('/')}/{slug}"
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(url)
    except httpx.RequestError as exc:
        logger.warning("shapes.profile_request_failed", extra={"slug": slug, "error": str(exc)})
        return ShapeProfile(id=None)

    if response.status_code >= 400:
        logger.warning(
            "shapes.profile_response_error", extra={"slug": slug, "status": response.status_code}
        )
        return ShapeProfile(id=None)

    try:
        data = response.json()
    except ValueError:
        return ShapeProfile(id=None)
    if not isinstance(data, dict):
        return ShapeProfile(id=None)

    shape_settings = data.get("shape_settings") or {}
    profile = ShapeProfile(
        id=str(data["id"]) if data.get("id") else None,
        name=data.get("name") or "Shape",
        activation=shape_settings.get("shape_initial_message") or "hello",
    )
    if profile.id:
        _PROFILE_CACHE[slug] = profile
    return profile
