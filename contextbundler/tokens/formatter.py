"""Display strings for token counts."""

from __future__ import annotations

CALCULATING_LABEL = "calculating..."


def format_tokens(token_count: int) -> str:
    """Format a count for display.

    Counts below 1000 are shown exactly (``"847 tokens"``). Larger counts are
    shown in thousands rounded half-up to one decimal, dropping a trailing
    ``.0`` (``"1k tokens"``, ``"1.6k tokens"``, ``"601.4k tokens"``).
    """
    if token_count < 1000:
        return f"{token_count} tokens"
    tenths = (token_count + 50) // 100
    whole, fraction = divmod(tenths, 10)
    if fraction == 0:
        return f"{whole}k tokens"
    return f"{whole}.{fraction}k tokens"


def format_tokens_safe(token_count: int | None) -> str:
    """Like ``format_tokens`` but shows a placeholder for missing/zero counts."""
    if not token_count:
        return CALCULATING_LABEL
    return format_tokens(token_count)


__all__ = ["CALCULATING_LABEL", "format_tokens", "format_tokens_safe"]
