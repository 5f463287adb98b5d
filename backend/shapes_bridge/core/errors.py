"""Taxonomía de errores del relay.

Ninguna de estas excepciones debe llegar al loop de eventos: cada frontera
las convierte en `None` o en un registro de log.
"""

# Códigos de Discord para interacciones expiradas o sin permisos; se ignoran en silencio.
IGNORED_INTERACTION_CODES = frozenset({10062, 50001, 50013})


class BridgeError(RuntimeError):
    """Error base del puente Discord ↔ shapes."""


class TransportUnavailable(BridgeError):
    """La sesión del navegador no está lista para evaluar llamadas."""


class CorrelationTimeout(BridgeError):
    """No llegó una respuesta emparejada dentro de la ventana configurada."""

    def __init__(self, conversation_id: str, timeout: float) -> None:
        super().__init__(f"Sin respuesta para {conversation_id} en {timeout:.1f}s")
        self.conversation_id = conversation_id
        self.timeout = timeout


class ConcurrentRequestDropped(BridgeError):
    """La conversación ya tiene un intercambio en curso; la petición se descarta."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversación ocupada: {conversation_id}")
        self.conversation_id = conversation_id


class PlatformReplyError(BridgeError):
    """Falló el acuse de una interacción de Discord (expirada o ya respondida)."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code

    @property
    def ignorable(self) -> bool:
        return self.code in IGNORED_INTERACTION_CODES
