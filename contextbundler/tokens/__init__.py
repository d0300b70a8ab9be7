"""Token estimation, display formatting, and the per-root token index."""

from __future__ import annotations

from .estimator import estimate_tokens
from .formatter import format_tokens, format_tokens_safe
from .index import CacheStats, IndexingTask, TokenCacheEntry, TokenIndex
from .store import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "CacheStats",
    "IndexingTask",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "TokenCacheEntry",
    "TokenIndex",
    "estimate_tokens",
    "format_tokens",
    "format_tokens_safe",
]
