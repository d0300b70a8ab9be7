"""Lazily materialized selection tree with tri-state propagation.

The tree mirrors only the part of each root's hierarchy that has been listed
so far. Selection state lives on nodes and is mirrored into a path-keyed
cache that outlives node eviction, so ``refresh`` can drop every node and
re-expansion restores what the user had selected.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

from ..config import TreeSettings
from ..events import Event
from ..file_tree_model.fs import list_directory_children
from ..gitignore import IgnoreMatcher
from ..tokens.index import TokenIndex
from .types import (
    CHECKED,
    INDETERMINATE,
    UNCHECKED,
    ContextNode,
    OwningRootError,
    SelectionState,
    WorkspaceRoot,
)
from .workspace_roots import root_for_path

logger = logging.getLogger(__name__)


def is_selectable(node: ContextNode) -> bool:
    """Return whether ``node`` can ever be checked.

    Ignored nodes and directories with no non-ignored file below them are
    always unchecked and never count toward a parent's state.
    """
    return not node.is_ignored and (not node.is_dir or node.has_selectable_files)


def aggregate_state(children: Sequence[ContextNode]) -> SelectionState:
    """Derive a directory state from its selectable children.

    A directory without selectable children is unchecked.
    """
    states = {child.selection_state for child in children if is_selectable(child)}
    if not states or states == {UNCHECKED}:
        return UNCHECKED
    if states == {CHECKED}:
        return CHECKED
    return INDETERMINATE


class SelectionTree:
    """Browsed node hierarchy plus tri-state selection across workspace roots.

    ``on_did_change_tree_data`` fires with the changed node, or ``None`` when
    consumers should re-render everything. ``on_selection_change`` fires with
    the aggregate selected token total after every toggle.
    """

    def __init__(
        self,
        roots: Sequence[WorkspaceRoot],
        ignore_matchers: Mapping[Path, IgnoreMatcher],
        token_indexes: Mapping[Path, TokenIndex] | None = None,
        settings: TreeSettings | None = None,
    ) -> None:
        self._settings = settings if settings is not None else TreeSettings()
        self._roots: list[WorkspaceRoot] = []
        self._ignore_matchers: dict[Path, IgnoreMatcher] = {}
        self._token_indexes: dict[Path, TokenIndex] = {}
        self._token_subscriptions: list[Callable[[], None]] = []
        self._nodes: dict[Path, ContextNode] = {}
        self._selection_cache: dict[Path, SelectionState] = {}
        self.on_did_change_tree_data: Event[ContextNode | None] = Event("tree-changed")
        self.on_selection_change: Event[int] = Event("selection-changed")
        self.set_roots(roots, ignore_matchers, token_indexes)

    @property
    def roots(self) -> tuple[WorkspaceRoot, ...]:
        return tuple(self._roots)

    @property
    def settings(self) -> TreeSettings:
        return self._settings

    def set_roots(
        self,
        roots: Sequence[WorkspaceRoot],
        ignore_matchers: Mapping[Path, IgnoreMatcher],
        token_indexes: Mapping[Path, TokenIndex] | None = None,
    ) -> None:
        """Replace the registered roots and their per-root components wholesale."""
        for unsubscribe in self._token_subscriptions:
            unsubscribe()
        self._token_subscriptions = []

        self._roots = list(roots)
        self._ignore_matchers = dict(ignore_matchers)
        self._token_indexes = dict(token_indexes or {})
        for index in self._token_indexes.values():
            self._token_subscriptions.append(index.on_tokens_updated.subscribe(self._on_tokens_updated))
        self.refresh()

    def update_settings(self, settings: TreeSettings) -> None:
        """Swap the settings snapshot and re-list on next ``get_children``."""
        self._settings = settings
        self.refresh()

    def owning_root(self, path: Path) -> WorkspaceRoot:
        """Return the deepest registered root containing ``path``."""
        root = root_for_path(self._roots, path)
        if root is None:
            raise OwningRootError(f"No workspace root contains {path}")
        return root

    def _matcher_for_path(self, path: Path) -> IgnoreMatcher | None:
        root = root_for_path(self._roots, path)
        if root is None:
            return None
        return self._ignore_matchers.get(root.path)

    def _is_ignored(self, path: Path, is_dir: bool) -> bool:
        matcher = self._matcher_for_path(path)
        return matcher is not None and matcher.is_ignored(path, is_dir=is_dir)

    def get_node(self, path: Path | str) -> ContextNode | None:
        return self._nodes.get(Path(os.path.abspath(path)))

    def refresh(self) -> None:
        """Snapshot selection, drop every materialized node, request a re-render."""
        for path, node in self._nodes.items():
            if not node.is_ignored:
                self._selection_cache[path] = node.selection_state
        self._nodes.clear()
        self.on_did_change_tree_data.fire(None)

    async def get_children(self, node: ContextNode | None = None) -> list[ContextNode]:
        """Return root nodes, or the visible children of a directory node."""
        if node is None:
            return [self._root_node(root) for root in self._roots]
        if not node.is_dir:
            return []
        return await self._get_directory_children(node)

    def _root_node(self, root: WorkspaceRoot) -> ContextNode:
        existing = self._nodes.get(root.path)
        if existing is not None:
            return existing
        return self._materialize(root.path, root.name, True, root, None, False)

    async def _get_directory_children(self, parent: ContextNode) -> list[ContextNode]:
        children, scan_error = await asyncio.to_thread(list_directory_children, parent.path)
        if scan_error is not None:
            logger.warning("Unable to list %s: %s", parent.path, scan_error)

        show_ignored = self._settings.show_ignored_nodes
        nodes: list[ContextNode] = []
        for child in children:
            root = self.owning_root(child.path)
            is_ignored = self._is_ignored(child.path, child.is_dir)
            if is_ignored and not show_ignored:
                continue

            has_selectable_files = not is_ignored
            if child.is_dir and not is_ignored:
                # Walk below the directory; one that only holds ignored
                # content must not show up as an empty-looking folder.
                has_selectable_files = await self._has_selectable_files(child.path)
                if not has_selectable_files and not show_ignored:
                    continue

            node = self._materialize(child.path, child.name, child.is_dir, root, parent, is_ignored)
            node.has_selectable_files = has_selectable_files
            if not has_selectable_files:
                node.selection_state = UNCHECKED
            nodes.append(node)

        kept = {node.path for node in nodes}
        for stale in parent.children:
            if stale.path not in kept:
                self._evict_subtree(stale)
        parent.children = nodes
        parent.children_loaded = True
        return list(nodes)

    async def _has_selectable_files(self, directory: Path) -> bool:
        """Return whether any non-ignored file exists below ``directory``."""
        children, scan_error = await asyncio.to_thread(list_directory_children, directory)
        if scan_error is not None:
            logger.debug("Unable to scan %s: %s", directory, scan_error)
            return False

        subdirectories: list[Path] = []
        for child in children:
            if self._is_ignored(child.path, child.is_dir):
                continue
            if not child.is_dir:
                return True
            subdirectories.append(child.path)

        for subdirectory in subdirectories:
            if await self._has_selectable_files(subdirectory):
                return True
        return False

    def _materialize(
        self,
        path: Path,
        label: str,
        is_dir: bool,
        root: WorkspaceRoot,
        parent: ContextNode | None,
        is_ignored: bool,
    ) -> ContextNode:
        node = self._nodes.get(path)
        if node is None:
            node = ContextNode(path=path, label=label, is_dir=is_dir, root=root, parent=parent)
            cached = self._selection_cache.get(path)
            if cached is not None:
                node.selection_state = cached
            elif parent is not None and parent.selection_state != INDETERMINATE:
                node.selection_state = parent.selection_state
            self._nodes[path] = node
        elif parent is not None:
            node.parent = parent

        node.is_ignored = is_ignored
        if is_ignored:
            node.selection_state = UNCHECKED
        else:
            self._load_token_count(node)
        return node

    def _evict_subtree(self, node: ContextNode) -> None:
        stack = [node]
        while stack:
            current = stack.pop()
            if not current.is_ignored:
                self._selection_cache[current.path] = current.selection_state
            if self._nodes.get(current.path) is current:
                del self._nodes[current.path]
            stack.extend(current.children)

    def _load_token_count(self, node: ContextNode) -> None:
        index = self._token_indexes.get(node.root.path)
        if index is None:
            return
        token_count = index.get_token_count(node.path, is_directory=node.is_dir)
        node.token_count = token_count if token_count is not None else 0

    def toggle_node(self, node: ContextNode) -> None:
        """Flip a node between checked and unchecked and propagate both ways.

        Ignored nodes are never toggled. A directory that holds nothing
        selectable stays unchecked.
        """
        if node.is_ignored:
            return

        new_state = UNCHECKED if node.selection_state == CHECKED else CHECKED
        self._set_subtree_state(node, new_state)
        self._settle_own_state(node)
        self.on_did_change_tree_data.fire(node)
        self._propagate_state_up(node)
        self._emit_selection_tokens()

    def _set_subtree_state(self, node: ContextNode, state: SelectionState) -> None:
        if node.is_dir:
            # Unmaterialized descendants restored from the cache must agree
            # with the new state.
            for cached_path in self._selection_cache:
                if cached_path != node.path and cached_path.is_relative_to(node.path):
                    self._selection_cache[cached_path] = state

        stack = [node]
        while stack:
            current = stack.pop()
            current.selection_state = state
            self._selection_cache[current.path] = state
            if current.is_dir:
                stack.extend(child for child in current.children if is_selectable(child))

    def _settle_own_state(self, node: ContextNode) -> None:
        if not node.is_dir:
            return
        if not node.has_selectable_files:
            state: SelectionState = UNCHECKED
        elif node.children_loaded:
            state = aggregate_state(node.children)
        else:
            return
        node.selection_state = state
        self._selection_cache[node.path] = state

    def _propagate_state_up(self, node: ContextNode) -> None:
        parent = node.parent
        while parent is not None:
            parent.selection_state = aggregate_state(parent.children)
            self._selection_cache[parent.path] = parent.selection_state
            self.on_did_change_tree_data.fire(parent)
            parent = parent.parent

    def selection_token_total(self) -> int:
        """Sum token counts of checked nodes without double-counting nesting.

        Checked paths are visited shallowest first, and any path inside an
        already counted checked path is skipped.
        """
        checked = [
            node
            for node in self._nodes.values()
            if node.selection_state == CHECKED and not node.is_ignored
        ]
        checked.sort(key=lambda node: len(node.path.parts))

        counted: list[Path] = []
        total = 0
        for node in checked:
            if any(node.path.is_relative_to(counted_path) for counted_path in counted):
                continue
            index = self._token_indexes.get(node.root.path)
            if index is not None:
                total += index.get_token_count_sync(node.path)
            else:
                total += node.token_count
            counted.append(node.path)
        return total

    def _emit_selection_tokens(self) -> None:
        self.on_selection_change.fire(self.selection_token_total())

    def _on_tokens_updated(self, updated_paths: list[Path]) -> None:
        # Indexing a directory also caches its descendants without naming
        # them, so every materialized node is re-read from its index.
        if not updated_paths or not self._nodes:
            return
        for node in self._nodes.values():
            if node.is_ignored:
                continue
            index = self._token_indexes.get(node.root.path)
            if index is not None:
                node.token_count = index.get_token_count_sync(node.path)
        self.on_did_change_tree_data.fire(None)
        self._emit_selection_tokens()

    async def get_selected_nodes(self) -> list[ContextNode]:
        """Return every selected file, including unexpanded ones.

        Checked file nodes are combined with the non-ignored files found by
        walking checked directories on disk. Results are unique per path and
        ordered by root registration order, then path. Toggles made while the
        walk is suspended may or may not be reflected.
        """
        selected: dict[Path, ContextNode] = {}
        checked_directories: list[ContextNode] = []
        for node in list(self._nodes.values()):
            if node.selection_state != CHECKED or node.is_ignored:
                continue
            if node.is_dir:
                checked_directories.append(node)
            else:
                selected.setdefault(node.path, node)

        checked_directories.sort(key=lambda node: len(node.path.parts))
        walked: list[Path] = []
        for directory in checked_directories:
            if any(directory.path.is_relative_to(walked_path) for walked_path in walked):
                continue
            walked.append(directory.path)
            for file_node in await self._discover_files(directory):
                selected.setdefault(file_node.path, file_node)

        root_order = {root.path: position for position, root in enumerate(self._roots)}
        return sorted(
            selected.values(),
            key=lambda node: (root_order.get(node.root.path, len(root_order)), node.path.parts),
        )

    async def _discover_files(self, directory: ContextNode) -> list[ContextNode]:
        """Recursively collect non-ignored files below a checked directory."""
        files: list[ContextNode] = []

        async def discover(current: Path) -> None:
            children, scan_error = await asyncio.to_thread(list_directory_children, current)
            if scan_error is not None:
                logger.warning("Error discovering files in %s: %s", current, scan_error)
                return
            for child in children:
                if self._is_ignored(child.path, child.is_dir):
                    continue
                if child.is_dir:
                    await discover(child.path)
                    continue

                existing = self._nodes.get(child.path)
                if existing is not None:
                    if existing.selection_state == CHECKED:
                        files.append(existing)
                    continue

                root = root_for_path(self._roots, child.path) or directory.root
                index = self._token_indexes.get(root.path)
                files.append(
                    ContextNode(
                        path=child.path,
                        label=child.name,
                        is_dir=False,
                        root=root,
                        selection_state=CHECKED,
                        token_count=index.get_token_count_sync(child.path) if index is not None else 0,
                    )
                )

        await discover(directory.path)
        return files

    async def find_node(self, path: Path | str) -> ContextNode | None:
        """Materialize and return the node for ``path``.

        Lists each ancestor directory from the owning root down. Returns
        ``None`` when the path is missing or hidden by the display mode.
        """
        target = Path(os.path.abspath(path))
        root = self.owning_root(target)
        current = self._root_node(root)
        for part in target.relative_to(root.path).parts:
            if not current.is_dir:
                return None
            expected = current.path / part
            match = next((child for child in current.children if child.path == expected), None)
            if match is None:
                children = await self.get_children(current)
                match = next((child for child in children if child.path == expected), None)
            if match is None:
                return None
            current = match
        return current


__all__ = ["SelectionTree", "aggregate_state", "is_selectable"]
