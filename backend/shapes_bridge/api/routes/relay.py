"""Estado del relay para monitoreo."""

from fastapi import APIRouter, Request

router = APIRouter(prefix="/relay", tags=["relay"])


@router.get("/status", summary="Streams, listeners y locks activos")
def relay_status(request: Request) -> dict[str, object]:
    """Retorna contadores del relay; todo en cero cuando el runtime no corre."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        return {
            "running": False,
            "session_alive": False,
            "streams": 0,
            "listeners": 0,
            "locks": 0,
        }
    return runtime.status()
