"""Domain helpers for filesystem-backed file trees.

This package contains non-UI primitives:
- sorted directory listings with stat metadata
- binary-aware tolerant text reader
"""

from __future__ import annotations

from .fs import DirectoryChild, decode_text, list_directory_children, read_source_text, safe_mtime_ns

__all__ = [
    "DirectoryChild",
    "decode_text",
    "list_directory_children",
    "read_source_text",
    "safe_mtime_ns",
]
