"""Workspace wiring: event routing, settings changes, and bundling."""

from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from contextbundler.config import BundlerSettings
from contextbundler.errors import NoSelectionError
from contextbundler.tokens import MemoryStore
from contextbundler.workspace import Workspace


def _write(path: Path, text: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class WorkspaceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.base = Path(os.path.abspath(self._tmp.name))
        self.one = self.base / "one"
        self.two = self.base / "two"
        self.a = _write(self.one / "a.py", "print(1)\n")
        self.b = _write(self.two / "notes.md", "# notes\n")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_bundle_covers_selected_paths_in_every_root(self) -> None:
        workspace = Workspace([self.one, self.two], BundlerSettings(file_tree_mode="relevant"))
        await workspace.start_indexing()

        await workspace.select_path(self.a)
        await workspace.select_path(self.two)
        bundle = await workspace.bundle(prompt="Review")

        self.assertIn("2 separate directories", bundle)
        self.assertLess(bundle.index("#### File: a.py"), bundle.index("#### File: notes.md"))
        self.assertTrue(bundle.endswith("**User Request:**\n\nReview\n"))
        self.assertEqual(workspace.tree.selection_token_total(), 3 + 2)

    async def test_empty_selection_raises(self) -> None:
        workspace = Workspace([self.one])

        with self.assertRaises(NoSelectionError):
            await workspace.bundle()

    async def test_created_file_is_indexed_and_tree_refreshed(self) -> None:
        workspace = Workspace([self.one])
        await workspace.start_indexing()
        changes: list[object] = []
        workspace.tree.on_did_change_tree_data.subscribe(changes.append)

        created = _write(self.one / "b.py", "x" * 8)
        await workspace.on_file_created(created)

        index = workspace.indexes[workspace.roots[0].path]
        self.assertEqual(index.get_token_count_sync(created), 2)
        self.assertEqual(index.get_token_count_sync(self.one), 3 + 2)
        self.assertIn(None, changes)

    async def test_rule_file_change_hides_newly_ignored_paths(self) -> None:
        workspace = Workspace([self.one])
        await workspace.start_indexing()
        self.assertIsNotNone(await workspace.tree.find_node(self.a))

        gitignore = _write(self.one / ".gitignore", "a.py\n")
        await workspace.on_file_changed(gitignore)

        self.assertTrue(workspace.matchers[self.one].is_ignored(self.a))
        self.assertIsNone(await workspace.tree.find_node(self.a))

    async def test_events_outside_every_root_are_ignored(self) -> None:
        workspace = Workspace([self.one])

        await workspace.on_file_changed(self.base / "stray.txt")
        await workspace.on_file_deleted(self.base / "stray.txt")

        self.assertEqual(workspace.cache_stats()[self.one].total, 0)

    async def test_default_pattern_change_reloads_and_resets(self) -> None:
        workspace = Workspace([self.one, self.two])
        await workspace.start_indexing()
        self.assertGreater(workspace.cache_stats()[self.two].total, 0)

        await workspace.update_settings(BundlerSettings(default_ignore_patterns=("*.md",)))

        self.assertTrue(workspace.matchers[self.two].is_ignored(self.b))
        self.assertEqual(workspace.cache_stats()[self.two].total, 0)
        self.assertIsNone(await workspace.tree.find_node(self.b))

    def test_stop_indexing_drops_pending_work(self) -> None:
        workspace = Workspace([self.one, self.two])
        for index in workspace.indexes.values():
            index.get_token_count(index.root / "pending.txt")

        workspace.stop_indexing()

        self.assertEqual([stats.pending for stats in workspace.cache_stats().values()], [0, 0])

    def test_set_roots_reuses_stores_per_root(self) -> None:
        factory = mock.Mock(side_effect=lambda root: MemoryStore())
        workspace = Workspace([self.one], store_factory=factory)

        workspace.set_roots([self.one, self.two])

        self.assertEqual([call.args[0] for call in factory.call_args_list], [self.one, self.two])
        self.assertEqual([root.name for root in workspace.roots], ["one", "two"])
        self.assertEqual(workspace.root_for_path(self.b).path, self.two)


if __name__ == "__main__":
    unittest.main()
