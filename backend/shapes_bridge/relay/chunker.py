"""Particionado de respuestas largas al límite de mensajes de Discord."""

DISCORD_MAX = 2000


def chunk_message(text: str, max_size: int = DISCORD_MAX) -> list[str]:
    """Divide `text` en fragmentos de a lo sumo `max_size` caracteres.

    Corta en el último salto de línea o, si no hay, en el último espacio de la
    ventana. Si ese punto cae antes de la mitad de la ventana se corta en
    seco para no dejar fragmentos diminutos. El espacio inicial del resto se
    descarta.
    """
    if max_size <= 0:
        raise ValueError("max_size debe ser positivo")

    chunks: list[str] = []
    remaining = text

    while len(remaining) > max_size:
        window = remaining[:max_size]
        split_index = window.rfind("\n")
        if split_index == -1:
            split_index = window.rfind(" ")
        if split_index == -1 or split_index < max_size * 0.5:
            split_index = max_size

        chunks.append(remaining[:split_index])
        remaining = remaining[split_index:].lstrip()

    if remaining:
        chunks.append(remaining)
    return chunks
