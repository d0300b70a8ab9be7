"""Host-side wiring of matchers, token indexes, and the selection tree.

A ``Workspace`` owns one ``IgnoreMatcher`` and one ``TokenIndex`` per root
plus a single ``SelectionTree`` spanning all roots. The host feeds it
file-system events; it never watches the file system itself.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Sequence
from pathlib import Path

from .bundler import build_bundle
from .config import BundlerSettings
from .errors import NoSelectionError
from .gitignore import IgnoreMatcher
from .selection import (
    CHECKED,
    ContextNode,
    SelectionTree,
    WorkspaceRoot,
    normalized_workspace_roots,
    root_for_path,
)
from .tokens import CacheStats, KeyValueStore, MemoryStore, TokenIndex

logger = logging.getLogger(__name__)

StoreFactory = Callable[[Path], KeyValueStore]


def memory_store_factory(root: Path) -> KeyValueStore:
    return MemoryStore()


class Workspace:
    """Per-root components for a set of roots and the shared selection tree."""

    def __init__(
        self,
        roots: Sequence[Path | str],
        settings: BundlerSettings | None = None,
        store_factory: StoreFactory | None = None,
    ) -> None:
        self._settings = settings if settings is not None else BundlerSettings()
        self._store_factory = store_factory if store_factory is not None else memory_store_factory
        self._stores: dict[Path, KeyValueStore] = {}
        self.roots: list[WorkspaceRoot] = []
        self.matchers: dict[Path, IgnoreMatcher] = {}
        self.indexes: dict[Path, TokenIndex] = {}
        self.tree = SelectionTree([], {}, {}, self._settings.tree_settings())
        self.set_roots(roots)

    @property
    def settings(self) -> BundlerSettings:
        return self._settings

    def set_roots(self, roots: Sequence[Path | str]) -> None:
        """Replace every root; matchers and indexes are rebuilt from scratch.

        Stores are kept per root path so a re-added root starts warm.
        """
        for index in self.indexes.values():
            index.stop_background_indexing()

        self.roots = normalized_workspace_roots(roots)
        self.matchers = {}
        self.indexes = {}
        for root in self.roots:
            matcher = IgnoreMatcher(root.path, self._settings.default_ignore_patterns)
            store = self._stores.get(root.path)
            if store is None:
                store = self._store_factory(root.path)
                self._stores[root.path] = store
            self.matchers[root.path] = matcher
            self.indexes[root.path] = TokenIndex(root.path, matcher, store)
        self.tree.set_roots(self.roots, self.matchers, self.indexes)

    def root_for_path(self, path: Path | str) -> WorkspaceRoot | None:
        return root_for_path(self.roots, Path(path))

    async def start_indexing(self) -> None:
        """Drain every root's index concurrently."""
        await asyncio.gather(*(index.start_background_indexing() for index in self.indexes.values()))

    def stop_indexing(self) -> None:
        for index in self.indexes.values():
            index.stop_background_indexing()

    def _route(self, path: Path | str) -> tuple[Path, WorkspaceRoot | None]:
        absolute = Path(os.path.abspath(path))
        root = root_for_path(self.roots, absolute)
        if root is None:
            logger.debug("Ignoring event outside every root: %s", absolute)
        return absolute, root

    async def on_file_created(self, path: Path | str) -> None:
        absolute, root = self._route(path)
        if root is None:
            return
        await self.indexes[root.path].on_file_created(absolute)
        self.tree.refresh()

    async def on_file_changed(self, path: Path | str) -> None:
        absolute, root = self._route(path)
        if root is None:
            return
        is_rule_file = self.matchers[root.path].is_rule_file(absolute)
        await self.indexes[root.path].on_file_changed(absolute)
        if is_rule_file:
            self.tree.refresh()

    async def on_file_deleted(self, path: Path | str) -> None:
        absolute, root = self._route(path)
        if root is None:
            return
        await self.indexes[root.path].on_file_deleted(absolute)
        self.tree.refresh()

    async def update_settings(self, settings: BundlerSettings) -> None:
        """Apply a new settings snapshot.

        Changed default patterns reload every matcher and clear every index;
        indexing is not restarted. Any change refreshes the tree.
        """
        previous = self._settings
        self._settings = settings
        if settings.default_ignore_patterns != previous.default_ignore_patterns:
            for root in self.roots:
                index = self.indexes[root.path]
                index.stop_background_indexing()
                self.matchers[root.path].reload(settings.default_ignore_patterns)
                await index.clear_cache()
        self.tree.update_settings(settings.tree_settings())

    def cache_stats(self) -> dict[Path, CacheStats]:
        return {root.path: self.indexes[root.path].cache_stats() for root in self.roots}

    async def select_path(self, path: Path | str) -> ContextNode | None:
        """Ensure the node for ``path`` is checked; ``None`` if it is not shown."""
        node = await self.tree.find_node(path)
        if node is None or node.is_ignored:
            return None
        if node.selection_state != CHECKED:
            if node.is_dir and not node.children_loaded:
                await self.tree.get_children(node)
            self.tree.toggle_node(node)
        return node

    async def bundle(
        self,
        prompt: str | None = None,
        system_prompt: str | None = None,
        tree_mode: str | None = None,
    ) -> str:
        """Render the current selection; raises ``NoSelectionError`` if empty."""
        selected = await self.tree.get_selected_nodes()
        if not selected:
            raise NoSelectionError("No files selected")
        return await build_bundle(
            selected,
            self.roots,
            self.matchers,
            tree_mode=tree_mode or self._settings.file_tree_mode,
            prompt=prompt,
            system_prompt=system_prompt,
        )


__all__ = ["StoreFactory", "Workspace", "memory_store_factory"]
