"""Esquemas de datos para el canal Discord."""

from __future__ import annotations

from pydantic import BaseModel, Field

from shapes_bridge.relay.schemas import Attachment


class InboundMessage(BaseModel):
    """Mensaje de un canal de Discord reducido a lo que necesita el relay."""

    guild_id: str
    channel_id: str
    channel_name: str = Field(..., description="Nombre usado para titular la sala en el backend.")
    author_id: str
    author_name: str = Field(..., description="Username de Discord; respaldo del nombre visible.")
    content: str = ""
    attachments: list[Attachment] = Field(
        default_factory=list,
        description="Sólo adjuntos de imagen.",
    )
    mentions_bot: bool = False
