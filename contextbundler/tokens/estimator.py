"""Length-based token estimate used for every token count in the engine."""

from __future__ import annotations

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Return ``ceil(len(text) / 4)``; empty text is zero tokens.

    This approximates language-model tokenization; it is not a tokenizer.
    """
    if not text:
        return 0
    return (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


__all__ = ["CHARS_PER_TOKEN", "estimate_tokens"]
