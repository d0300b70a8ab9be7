"""Code-fence language hints derived from Pygments lexer metadata."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

PLAIN_TEXT_ALIASES = frozenset({"text"})


@lru_cache(maxsize=512)
def _hint_for_filename(filename: str) -> str:
    from pygments.lexers import find_lexer_class_for_filename

    lexer_class = find_lexer_class_for_filename(filename)
    if lexer_class is None or not lexer_class.aliases:
        return ""
    alias = lexer_class.aliases[0]
    return "" if alias in PLAIN_TEXT_ALIASES else alias


def language_hint(path: Path | str) -> str:
    """Return the fence hint for ``path`` (``"python"``, ``"typescript"``...).

    Unknown and plain-text files get ``""``.
    """
    return _hint_for_filename(Path(path).name.lower())


__all__ = ["language_hint"]
