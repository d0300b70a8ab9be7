"""Filesystem listing helpers shared by the token index, tree, and bundler.

All functions here are synchronous and blocking; async callers run them
through ``asyncio.to_thread``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BINARY_SAMPLE_BYTES = 8192


@dataclass(frozen=True)
class DirectoryChild:
    """One directory child row plus cached stat metadata."""

    name: str
    path: Path
    is_dir: bool
    mtime_ns: int | None


def safe_mtime_ns(path: Path) -> int | None:
    """Return ``st_mtime_ns`` for ``path`` or ``None`` on stat failure."""
    try:
        return int(path.stat().st_mtime_ns)
    except OSError:
        return None


def list_directory_children(directory: Path) -> tuple[list[DirectoryChild], Exception | None]:
    """List children of ``directory`` with stat metadata in display order.

    Returns ``(children, scan_error)``. ``scan_error`` is set when the
    directory cannot be scanned; per-entry stat failures leave ``mtime_ns``
    as ``None`` instead of aborting the listing. Children are ordered
    directories first, then by case-insensitive name.
    """
    children: list[DirectoryChild] = []
    try:
        with os.scandir(directory) as entries:
            for child in entries:
                try:
                    is_dir = child.is_dir(follow_symlinks=False)
                except OSError:
                    is_dir = False

                mtime_ns: int | None = None
                try:
                    mtime_ns = int(child.stat(follow_symlinks=False).st_mtime_ns)
                except OSError:
                    pass

                children.append(
                    DirectoryChild(
                        name=child.name,
                        path=Path(directory) / child.name,
                        is_dir=is_dir,
                        mtime_ns=mtime_ns,
                    )
                )
    except (PermissionError, OSError) as exc:
        return [], exc

    children.sort(key=lambda item: (not item.is_dir, item.name.lower()))
    return children, None


def decode_text(data: bytes) -> str:
    """Decode bytes using tolerant encoding fallback order.

    Attempts UTF-8, UTF-8 with BOM, then latin-1; as a final fallback decodes
    with UTF-8 replacement semantics.
    """
    for encoding in ("utf-8", "utf-8-sig", "latin-1"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("utf-8", errors="replace")


def read_source_text(path: Path) -> str | None:
    """Read a file as text, or return ``None`` when it looks binary.

    A NUL byte in the leading sample marks the file as binary. Token counts
    and bundle output both read through here so they agree on every file.
    """
    data = path.read_bytes()
    if b"\x00" in data[:BINARY_SAMPLE_BYTES]:
        return None
    return decode_text(data)


__all__ = [
    "DirectoryChild",
    "safe_mtime_ns",
    "list_directory_children",
    "decode_text",
    "read_source_text",
]
