"""Durable key-value stores for persisted per-root token caches.

Reads are synchronous so an index can warm itself during construction;
writes are awaited so they act as suspension points on the event loop.
Missing or malformed data always reads as absent (cold start).
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from pathlib import Path
from typing import Protocol

from platformdirs import user_cache_dir

logger = logging.getLogger(__name__)

APP_NAME = "contextbundler"
DEFAULT_CACHE_DIR = Path(user_cache_dir(APP_NAME, appauthor=False))


class KeyValueStore(Protocol):
    """Named-blob storage scoped to one workspace root."""

    def get(self, key: str) -> object | None:
        ...

    async def update(self, key: str, value: object | None) -> None:
        ...


class MemoryStore:
    """In-process store; survives index reconstruction but not the process."""

    def __init__(self, initial: dict[str, object] | None = None) -> None:
        self.data: dict[str, object] = dict(initial or {})

    def get(self, key: str) -> object | None:
        return self.data.get(key)

    async def update(self, key: str, value: object | None) -> None:
        if value is None:
            self.data.pop(key, None)
            return
        self.data[key] = value


def _root_digest(root: Path) -> str:
    """Return a short stable file stem for ``root``."""
    digest = hashlib.blake2b(str(root).encode("utf-8", errors="surrogateescape"), digest_size=12)
    return digest.hexdigest()


class JsonFileStore:
    """One JSON object file per root under the user cache directory.

    The file holds ``{key: value}``; writes go through a temp file and an
    atomic replace.
    """

    def __init__(self, root: Path, cache_dir: Path | None = None) -> None:
        self.root = Path(root)
        base = cache_dir if cache_dir is not None else DEFAULT_CACHE_DIR
        self.path = base / f"{_root_digest(self.root)}.json"

    def _load(self) -> dict[str, object]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Discarding unreadable token cache %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> object | None:
        return self._load().get(key)

    def _write(self, key: str, value: object | None) -> None:
        data = self._load()
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, sort_keys=True)
            handle.write("\n")
        tmp.replace(self.path)

    async def update(self, key: str, value: object | None) -> None:
        """Persist ``value`` under ``key``; write failures are logged, not raised."""
        try:
            await asyncio.to_thread(self._write, key, value)
        except OSError as exc:
            logger.warning("Failed to persist token cache %s: %s", self.path, exc)


__all__ = [
    "APP_NAME",
    "DEFAULT_CACHE_DIR",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
]
