"""Per-root incremental token-count index with background indexing.

Each path moves ``unknown -> queued -> indexed``. Counts are computed lazily
(on lookup) or by a background drain of a priority queue, kept consistent up
the directory chain after every change, and persisted to a key-value store so
a new process starts warm.
"""

from __future__ import annotations

import asyncio
import bisect
import logging
import os
import stat
import time
from dataclasses import dataclass
from pathlib import Path

from ..events import Event
from ..file_tree_model.fs import list_directory_children, read_source_text, safe_mtime_ns
from ..gitignore import IgnoreMatcher
from .estimator import estimate_tokens
from .store import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

TOKEN_CACHE_KEY = "tokenCache"
ROOT_PRIORITY = 0
DIRECTORY_PRIORITY_PENALTY = 10
DEFAULT_YIELD_SECONDS = 0.001


@dataclass(frozen=True)
class TokenCacheEntry:
    """Cached token count for one path.

    ``mtime`` is the observed ``st_mtime_ns`` when the count was computed.
    """

    token_count: int
    mtime: int
    is_indexed: bool
    is_directory: bool

    def to_record(self) -> dict[str, object]:
        """Serialize to the persisted record shape."""
        return {
            "tokenCount": self.token_count,
            "mtime": self.mtime,
            "isIndexed": self.is_indexed,
            "isDirectory": self.is_directory,
        }

    @classmethod
    def from_record(cls, raw: object) -> TokenCacheEntry | None:
        """Parse a persisted record, returning ``None`` when it is malformed."""
        if not isinstance(raw, dict):
            return None
        token_count = raw.get("tokenCount")
        mtime = raw.get("mtime")
        is_indexed = raw.get("isIndexed")
        is_directory = raw.get("isDirectory")
        if isinstance(token_count, bool) or not isinstance(token_count, int) or token_count < 0:
            return None
        if isinstance(mtime, bool) or not isinstance(mtime, (int, float)):
            return None
        if not isinstance(is_indexed, bool) or not isinstance(is_directory, bool):
            return None
        return cls(
            token_count=token_count,
            mtime=int(mtime),
            is_indexed=is_indexed,
            is_directory=is_directory,
        )


@dataclass(frozen=True)
class IndexingTask:
    """One queued path; lower ``priority`` is processed first."""

    path: Path
    priority: int


@dataclass(frozen=True)
class CacheStats:
    """Read-only diagnostics snapshot."""

    total: int
    indexed: int
    pending: int


def _normalize(path: Path | str) -> Path:
    return Path(os.path.abspath(path))


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


class TokenIndex:
    """Eventually-consistent, persisted path -> token count map for one root.

    All mutation happens on the event loop thread; blocking filesystem calls
    are pushed to worker threads with ``asyncio.to_thread``. Exactly one
    background drain loop runs at a time.
    """

    def __init__(
        self,
        root: Path,
        ignore_matcher: IgnoreMatcher,
        store: KeyValueStore | None = None,
        *,
        yield_seconds: float = DEFAULT_YIELD_SECONDS,
    ) -> None:
        self.root = _normalize(root)
        self.ignore_matcher = ignore_matcher
        self._store: KeyValueStore = store if store is not None else MemoryStore()
        self._yield_seconds = yield_seconds
        self._cache: dict[Path, TokenCacheEntry] = {}
        self._queue: list[IndexingTask] = []
        self._queued: set[Path] = set()
        self._is_indexing = False
        self._generation = 0
        self.on_tokens_updated: Event[list[Path]] = Event("tokens-updated")
        self._load_cache()

    @property
    def is_indexing(self) -> bool:
        return self._is_indexing

    def get_entry(self, path: Path | str) -> TokenCacheEntry | None:
        return self._cache.get(_normalize(path))

    def get_token_count(self, path: Path | str, is_directory: bool | None = None) -> int | None:
        """Return the cached count, or queue ``path`` and return ``None``.

        Never blocks. ``is_directory`` only feeds the queue priority; when it
        is unknown the cached kind is used, else the path is treated as a file.
        Ignored paths are never queued since they are never indexed.
        Queueing does not start a drain: paths queued after a drain finished
        stay pending until ``start_background_indexing`` runs again.
        """
        key = _normalize(path)
        entry = self._cache.get(key)
        if entry is not None and entry.is_indexed:
            return entry.token_count

        if key not in self._queued:
            if is_directory is None:
                is_directory = entry.is_directory if entry is not None else False
            if not self.ignore_matcher.is_ignored(key, is_dir=is_directory):
                self._enqueue(key, self.calculate_priority(key, is_directory))
        return None

    def get_token_count_sync(self, path: Path | str) -> int:
        """Return the cached count, or ``0`` when not yet indexed."""
        entry = self._cache.get(_normalize(path))
        return entry.token_count if entry is not None and entry.is_indexed else 0

    def is_indexed(self, path: Path | str) -> bool:
        entry = self._cache.get(_normalize(path))
        return entry.is_indexed if entry is not None else False

    def calculate_priority(self, path: Path, is_directory: bool) -> int:
        """Return path depth below the root, plus a penalty for directories."""
        try:
            depth = len(path.relative_to(self.root).parts)
        except ValueError:
            depth = len(path.parts)
        return depth + (DIRECTORY_PRIORITY_PENALTY if is_directory else 0)

    def queued_paths(self) -> list[Path]:
        """Return queued paths in processing order."""
        return [task.path for task in self._queue]

    def _enqueue(self, path: Path, priority: int) -> None:
        # insort keeps equal priorities in insertion order.
        bisect.insort(self._queue, IndexingTask(path=path, priority=priority), key=lambda task: task.priority)
        self._queued.add(path)

    def _dequeue(self, path: Path) -> None:
        if path not in self._queued:
            return
        self._queue = [task for task in self._queue if task.path != path]
        self._queued.discard(path)

    async def start_background_indexing(self) -> None:
        """Seed the root and drain the queue to completion.

        A call while a drain is running is a no-op. The cache is persisted
        when the queue empties.
        """
        if self._is_indexing:
            return

        self._is_indexing = True
        self._generation += 1
        generation = self._generation
        if self.root not in self._queued:
            self._enqueue(self.root, ROOT_PRIORITY)
        try:
            await self._process_queue(generation)
        finally:
            if generation == self._generation:
                self._is_indexing = False

    async def _process_queue(self, generation: int) -> None:
        while self._queue and self._is_indexing and generation == self._generation:
            task = self._queue.pop(0)
            self._queued.discard(task.path)
            await self.index_path(task.path)
            await asyncio.sleep(self._yield_seconds)

        if generation == self._generation:
            await self.save_cache()

    def stop_background_indexing(self) -> None:
        """Abandon the queue; an in-flight ``index_path`` still completes."""
        self._is_indexing = False
        self._queue.clear()
        self._queued.clear()

    async def index_path(self, path: Path | str, force: bool = False) -> int:
        """Compute, cache, and return the token count for ``path``.

        Files whose cached mtime is still fresh are not re-read unless
        ``force`` is set. Directories are always re-summed, reusing fresh
        cached file entries below them. Ignored paths return 0 uncached.
        A path that no longer exists is evicted as if deleted; other failures
        cache 0 as indexed and are never raised. Ancestor totals are
        recomputed before ``on_tokens_updated`` fires.
        """
        key = _normalize(path)
        try:
            stat_result = await asyncio.to_thread(os.stat, key)
        except FileNotFoundError:
            logger.debug("Path vanished before indexing: %s", key)
            await self._evict(key)
            return 0
        except OSError as exc:
            logger.warning("Failed to index %s: %s", key, exc)
            existing = self._cache.get(key)
            self._cache[key] = TokenCacheEntry(
                token_count=0,
                mtime=time.time_ns(),
                is_indexed=True,
                is_directory=existing.is_directory if existing is not None else False,
            )
            updated = [key]
            updated.extend(await self._update_parent_directories(key))
            self.on_tokens_updated.fire(updated)
            return 0

        is_directory = stat.S_ISDIR(stat_result.st_mode)
        existing = self._cache.get(key)
        if (
            not force
            and not is_directory
            and existing is not None
            and existing.is_indexed
            and existing.mtime >= stat_result.st_mtime_ns
        ):
            return existing.token_count

        if self.ignore_matcher.is_ignored(key, is_dir=is_directory):
            return 0

        if is_directory:
            token_count = await self._index_directory(key, force=force)
        else:
            token_count = await self._index_file(key)

        self._cache[key] = TokenCacheEntry(
            token_count=token_count,
            mtime=stat_result.st_mtime_ns,
            is_indexed=True,
            is_directory=is_directory,
        )
        updated = [key]
        updated.extend(await self._update_parent_directories(key))
        self.on_tokens_updated.fire(updated)
        return token_count

    async def _index_file(self, path: Path) -> int:
        try:
            content = await asyncio.to_thread(read_source_text, path)
        except OSError as exc:
            logger.warning("Failed to read %s: %s", path, exc)
            return 0
        if content is None:
            logger.debug("Skipping binary file %s", path)
            return 0
        return estimate_tokens(content)

    async def _index_directory(self, directory: Path, *, force: bool = False, trust_cache: bool = False) -> int:
        """Sum non-ignored children of ``directory``, caching each child.

        ``trust_cache`` reuses any indexed child entry as-is (used when only
        one descendant changed); otherwise only files with a fresh mtime are
        reused and subdirectories are walked.
        """
        children, scan_error = await asyncio.to_thread(list_directory_children, directory)
        if scan_error is not None:
            logger.warning("Failed to index directory %s: %s", directory, scan_error)
            return 0

        total = 0
        for child in children:
            if self.ignore_matcher.is_ignored(child.path, is_dir=child.is_dir):
                continue

            cached = self._cache.get(child.path)
            if not force and cached is not None and cached.is_indexed:
                if trust_cache:
                    total += cached.token_count
                    continue
                if not child.is_dir and child.mtime_ns is not None and cached.mtime >= child.mtime_ns:
                    total += cached.token_count
                    continue

            if child.is_dir:
                child_tokens = await self._index_directory(child.path, force=force)
            else:
                child_tokens = await self._index_file(child.path)

            self._cache[child.path] = TokenCacheEntry(
                token_count=child_tokens,
                mtime=child.mtime_ns if child.mtime_ns is not None else time.time_ns(),
                is_indexed=True,
                is_directory=child.is_dir,
            )
            total += child_tokens
        return total

    async def _update_parent_directories(self, path: Path) -> list[Path]:
        """Recompute every ancestor of ``path`` up to and including the root."""
        updated: list[Path] = []
        current = path
        while current != self.root:
            parent = current.parent
            if parent == current or not _is_within(parent, self.root):
                break
            token_count = await self._index_directory(parent, trust_cache=True)
            mtime_ns = await asyncio.to_thread(safe_mtime_ns, parent)
            self._cache[parent] = TokenCacheEntry(
                token_count=token_count,
                mtime=mtime_ns if mtime_ns is not None else time.time_ns(),
                is_indexed=True,
                is_directory=True,
            )
            updated.append(parent)
            current = parent
        return updated

    async def on_file_created(self, path: Path | str) -> None:
        await self.on_file_changed(path)

    async def on_file_changed(self, path: Path | str) -> None:
        """Force-reindex ``path``; rule-file changes reset the whole index."""
        key = _normalize(path)
        if self.ignore_matcher.is_rule_file(key):
            await self._handle_ignore_file_change()
            return
        await self.index_path(key, force=True)

    async def on_file_deleted(self, path: Path | str) -> None:
        """Evict ``path`` (and cached descendants) and fix ancestor totals."""
        key = _normalize(path)
        if self.ignore_matcher.is_rule_file(key):
            await self._handle_ignore_file_change()
            return
        await self._evict(key)

    async def _evict(self, key: Path) -> None:
        """Drop ``key`` and its cached descendants, then fix ancestor totals.

        The notification names the ancestors, never the vanished path.
        """
        for cached_path in [p for p in self._cache if p == key or _is_within(p, key)]:
            del self._cache[cached_path]
        self._dequeue(key)
        updated = await self._update_parent_directories(key)
        self.on_tokens_updated.fire(updated or [key.parent])

    async def _handle_ignore_file_change(self) -> None:
        """Reload rules, drop every cached count, and re-index from the root."""
        self.stop_background_indexing()
        self.ignore_matcher.reload()
        await self.clear_cache()
        await self.start_background_indexing()

    async def save_cache(self) -> None:
        serializable = {str(path): entry.to_record() for path, entry in self._cache.items()}
        await self._store.update(TOKEN_CACHE_KEY, serializable)

    def _load_cache(self) -> None:
        saved = self._store.get(TOKEN_CACHE_KEY)
        if not isinstance(saved, dict):
            return
        for raw_path, raw_entry in saved.items():
            if not isinstance(raw_path, str) or not raw_path:
                continue
            entry = TokenCacheEntry.from_record(raw_entry)
            if entry is None:
                continue
            self._cache[_normalize(raw_path)] = entry

    async def clear_cache(self) -> None:
        """Drop every in-memory entry and the persisted snapshot."""
        self._cache.clear()
        await self._store.update(TOKEN_CACHE_KEY, None)

    def cache_stats(self) -> CacheStats:
        return CacheStats(
            total=len(self._cache),
            indexed=sum(1 for entry in self._cache.values() if entry.is_indexed),
            pending=len(self._queue),
        )


__all__ = [
    "DIRECTORY_PRIORITY_PENALTY",
    "ROOT_PRIORITY",
    "TOKEN_CACHE_KEY",
    "CacheStats",
    "IndexingTask",
    "TokenCacheEntry",
    "TokenIndex",
]
