"""Modelos de los mensajes que cruzan el relay."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

NEW_MESSAGE = "new_message"


class MessagePart(BaseModel):
    """Fragmento de un mensaje del stream; sólo los de tipo `text` importan."""

    model_config = ConfigDict(extra="allow")

    type: str
    text: str | None = None


class StreamMessage(BaseModel):
    """Mensaje contenido en un evento `new_message`."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    role: str | None = None
    parts: list[MessagePart] = Field(default_factory=list)

    def text(self, separator: str = "\n\n") -> str:
        return separator.join(part.text or "" for part in self.parts if part.type == "text")


class StreamEvent(BaseModel):
    """Evento SSE reenviado por el binding `emitSSE` del navegador."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str | None = None
    chat_id: str | None = Field(default=None, alias="chatId")
    message: StreamMessage | None = None

    @property
    def is_new_message(self) -> bool:
        return self.type == NEW_MESSAGE and self.message is not None


class Attachment(BaseModel):
    """Adjunto de imagen reenviado al backend tal como lo publica Discord."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    name: str = "image"
    content_type: str | None = Field(default=None, alias="contentType")
    width: int | None = None
    height: int | None = None


class OutboundMessage(BaseModel):
    """Mensaje de usuario enviado a una conversación del backend."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    role: Literal["user"] = "user"
    text: str = ""
    attachments: list[Attachment] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_wire(self) -> dict[str, Any]:
        """Forma del campo `message` que espera `POST /api/chat`."""
        content = self.text or " "
        payload: dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": content,
            "createdAt": self.created_at.isoformat().replace("+00:00", "Z"),
            "parts": [{"type": "text", "text": content}],
        }
        if self.attachments:
            payload["experimental_attachments"] = [
                attachment.model_dump(by_alias=True, exclude_none=True)
                for attachment in self.attachments
            ]
        return payload
