"""Endpoint de salud para el orquestador de contenedores."""
from fastapi import APIRouter

from shapes_bridge.core.config import settings

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", summary="Estado del proceso")
def healthcheck() -> dict[str, str]:
    """Indica que el proceso responde y qué shape está relayando."""
    return {"status": "ok", "shape": settings.shape_slug}
