"""Pruebas del particionado de respuestas."""

import random

import pytest

from shapes_bridge.relay.chunker import DISCORD_MAX, chunk_message


def _strip_whitespace(text: str) -> str:
    return "".join(text.split())


def test_long_run_without_breaks_is_hard_split() -> None:
    chunks = chunk_message("a" * 5000, 2000)
    assert [len(chunk) for chunk in chunks] == [2000, 2000, 1000]


def test_short_text_is_single_chunk() -> None:
    assert chunk_message("hola") == ["hola"]


def test_empty_text_yields_nothing() -> None:
    assert chunk_message("") == []


def test_prefers_last_newline_in_window() -> None:
    text = "a" * 12 + "\n" + "b" * 3 + " " + "c" * 10
    chunks = chunk_message(text, 20)
    assert chunks[0] == "a" * 12
    assert chunks[1] == "b" * 3 + " " + "c" * 10


def test_falls_back_to_last_space() -> None:
    text = "word " * 10
    chunks = chunk_message(text, 12)
    assert chunks[0] == "word word"
    assert all(len(chunk) <= 12 for chunk in chunks)
    assert not any(chunk.startswith(" ") for chunk in chunks[1:])


def test_split_point_before_half_forces_hard_split() -> None:
    text = "ab " + "c" * 30
    chunks = chunk_message(text, 10)
    assert chunks[0] == "ab " + "c" * 7
    assert len(chunks[0]) == 10


def test_default_limit_is_discord_max() -> None:
    chunks = chunk_message("x" * (DISCORD_MAX + 1))
    assert [len(chunk) for chunk in chunks] == [DISCORD_MAX, 1]


def test_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        chunk_message("hola", 0)


@pytest.mark.parametrize("max_size", [1, 2, 7, 40, 2000])
def test_chunks_respect_limit_and_preserve_content(max_size: int) -> None:
    rng = random.Random(max_size)
    words = ["hola", "shape", "a", "", "relay", "x" * 55, "multiplexor"]
    separators = [" ", "\n", "  ", "\n\n", ""]
    for _ in range(25):
        text = "".join(
            rng.choice(words) + rng.choice(separators) for _ in range(rng.randint(0, 300))
        )
        chunks = chunk_message(text, max_size)
        assert all(0 < len(chunk) <= max_size for chunk in chunks)
        assert _strip_whitespace("".join(chunks)) == _strip_whitespace(text)
