"""Text shaping for replies that should read like a person typed them."""

from __future__ import annotations

import random
import re

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def post_process(text: str, rng: random.Random, comma_drop_probability: float = 0.25) -> str:
    """Strip a single trailing period and drop a share of the commas.

    An ellipsis at the end is kept as is.
    """
    result = text.strip()
    if result.endswith(".") and not result.endswith(".."):
        result = result[:-1]

    if comma_drop_probability > 0 and "," in result:
        result = "".join(
            ch for ch in result if ch != "," or rng.random() >= comma_drop_probability
        )

    return result.strip()


def split_into_chunks(text: str, rng: random.Random, flush_probability: float = 0.6) -> list[str]:
    """Split *text* at sentence ends into one or more messages.

    At each boundary the accumulated sentences are flushed with
    *flush_probability*; the last sentence always closes a chunk. Sentence
    punctuation stays attached to its sentence.
    """
    stripped = text.strip()
    if not stripped:
        return []

    sentences = [s for s in _SENTENCE_BOUNDARY.split(stripped) if s]
    chunks: list[str] = []
    current: list[str] = []

    for index, sentence in enumerate(sentences):
        current.append(sentence)
        is_last = index == len(sentences) - 1
        if is_last or rng.random() < flush_probability:
            chunks.append(" ".join(current))
            current = []

    return chunks


def typing_duration(
    chunk: str,
    chars_per_second: float = 50.0,
    minimum: float = 1.0,
    maximum: float = 10.0,
) -> float:
    """Seconds of "typing..." to show before sending *chunk*."""
    return max(minimum, min(len(chunk) / chars_per_second, maximum))
