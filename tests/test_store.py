"""Key-value store persistence tests."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from contextbundler.tokens.store import JsonFileStore, MemoryStore


class MemoryStoreTests(unittest.IsolatedAsyncioTestCase):
    async def test_update_and_delete(self) -> None:
        store = MemoryStore()

        await store.update("tokenCache", {"a": 1})
        self.assertEqual(store.get("tokenCache"), {"a": 1})

        await store.update("tokenCache", None)
        self.assertIsNone(store.get("tokenCache"))


class JsonFileStoreTests(unittest.IsolatedAsyncioTestCase):
    async def test_values_survive_a_new_store_instance(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            cache_dir = Path(tmp) / "cache"
            root = Path(tmp) / "project"

            await JsonFileStore(root, cache_dir).update("tokenCache", {"x": {"tokenCount": 2}})
            reopened = JsonFileStore(root, cache_dir)

            self.assertEqual(reopened.get("tokenCache"), {"x": {"tokenCount": 2}})
            self.assertEqual(reopened.path.parent, cache_dir)
            self.assertFalse(reopened.path.with_suffix(".json.tmp").exists())

    async def test_roots_use_separate_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            first = JsonFileStore(Path(tmp) / "one", Path(tmp))
            second = JsonFileStore(Path(tmp) / "two", Path(tmp))

            await first.update("tokenCache", {"a": 1})

            self.assertNotEqual(first.path, second.path)
            self.assertIsNone(second.get("tokenCache"))

    async def test_delete_removes_key_only(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = JsonFileStore(Path(tmp) / "project", Path(tmp))
            await store.update("tokenCache", {"a": 1})
            await store.update("other", [1, 2])

            await store.update("tokenCache", None)

            self.assertIsNone(store.get("tokenCache"))
            self.assertEqual(store.get("other"), [1, 2])

    def test_malformed_file_reads_as_absent(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = JsonFileStore(Path(tmp) / "project", Path(tmp))
            store.path.write_text("{not json", encoding="utf-8")

            with self.assertLogs("contextbundler.tokens.store", level="WARNING"):
                self.assertIsNone(store.get("tokenCache"))

    async def test_write_failure_is_logged_not_raised(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            blocker = Path(tmp) / "blocker"
            blocker.write_text("", encoding="utf-8")
            store = JsonFileStore(Path(tmp) / "project", blocker / "cache")

            with self.assertLogs("contextbundler.tokens.store", level="WARNING"):
                await store.update("tokenCache", {"a": 1})


if __name__ == "__main__":
    unittest.main()
