"""Configuración central basada en variables de entorno."""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Valores globales leídos desde `.env` o el entorno."""

    environment: str = "development"
    log_level: str | None = Field(
        default=None,
        description="Nivel de logging global (ej. debug, info, warning). Cuando no se define, usa un valor por ambiente.",
    )
    log_file_path: str | None = Field(
        default=None,
        description="Archivo rotativo opcional; sin valor sólo se registra en stdout.",
    )
    runtime_enabled: bool = Field(
        default=True,
        description="Arranca navegador y bot de Discord dentro del lifespan de FastAPI.",
    )

    # Discord
    discord_bot_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SHAPES_BRIDGE_DISCORD_BOT_TOKEN", "DISCORD_BOT_TOKEN"),
    )
    discord_client_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SHAPES_BRIDGE_DISCORD_CLIENT_ID", "CLIENT_ID"),
    )
    custom_status: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SHAPES_BRIDGE_CUSTOM_STATUS", "CUSTOM_STATUS"),
    )
    online_status: int | None = Field(
        default=None,
        description="0 online, 1 dnd, 2 idle, 3 invisible.",
        validation_alias=AliasChoices("SHAPES_BRIDGE_ONLINE_STATUS", "ONLINE_STATUS"),
    )
    discord_max_message: int = 2000

    # Backend de shapes
    shape_slug: str = Field(
        default="shape",
        validation_alias=AliasChoices("SHAPES_BRIDGE_SHAPE_SLUG", "SHAPE"),
    )
    shapes_base_url: str = "https://talk.shapes.inc"
    shapes_public_api_url: str = "https://shapes.inc/api/public/shapes"
    cookie_path: str = "./shapes_cookies.json"
    browser_headless: bool = True

    # Relay
    reply_timeout_seconds: float = Field(
        default=20.0,
        description="Ventana máxima para recibir la respuesta correlacionada de un mensaje.",
    )
    command_timeout_seconds: float = Field(
        default=15.0,
        description="Ventana para comandos `!wack`, `!sleep` y `!reset`.",
    )
    typing_interval_seconds: float = 4.0
    typing_failsafe_seconds: float = 30.0

    # Persistencia
    supabase_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SHAPES_BRIDGE_SUPABASE_URL", "SUPABASE_URL"),
    )
    supabase_service_role: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SHAPES_BRIDGE_SUPABASE_SERVICE_ROLE", "SUPABASE_SERVICE_ROLE"),
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="SHAPES_BRIDGE_", extra="allow", populate_by_name=True
    )


settings = Settings()
