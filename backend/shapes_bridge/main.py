"""Punto de entrada principal: FastAPI hospeda el loop del bot y expone salud."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from shapes_bridge.api.routes.health import router as health_router
from shapes_bridge.api.routes.relay import router as relay_router
from shapes_bridge.core.config import settings
from shapes_bridge.core.logging import configure_logging, get_logger, resolve_log_level
from shapes_bridge.runtime import start_runtime, stop_runtime


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Levanta el runtime del puente mientras viva la aplicación."""
    log = get_logger("shapes_bridge")
    if not settings.runtime_enabled:
        log.warning("runtime.skipped", extra={"reason": "runtime_enabled=false"})
        yield
        return

    runtime = await start_runtime(settings)
    app.state.runtime = runtime
    try:
        yield
    finally:
        app.state.runtime = None
        await stop_runtime(runtime)


def create_app() -> FastAPI:
    """Crea y configura la instancia de FastAPI."""
    default_log_level = logging.DEBUG if settings.environment != "production" else logging.INFO
    configure_logging(
        level=resolve_log_level(settings.log_level, default=default_log_level),
        log_file=settings.log_file_path,
    )

    app = FastAPI(title="Shapes Bridge", version="0.1.0", root_path="/api", lifespan=lifespan)
    app.state.runtime = None
    app.include_router(health_router)
    app.include_router(relay_router)
    return app


app = create_app()
