"""Bundle document, file-structure diagram, and language-hint tests."""

from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path

from contextbundler.bundler import build_bundle, generate_file_tree, language_hint
from contextbundler.bundler.bundle import BUNDLE_HEADING, SINGLE_ROOT_INTRO, code_fence
from contextbundler.gitignore import IgnoreMatcher
from contextbundler.selection import CHECKED, ContextNode, WorkspaceRoot


def _write(path: Path, text: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _file_node(path: Path, root: WorkspaceRoot) -> ContextNode:
    return ContextNode(path=path, label=path.name, is_dir=False, root=root, selection_state=CHECKED)


class FileTreeTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(os.path.abspath(self._tmp.name)) / "proj"
        self.readme = _write(self.root / "README.md", "# proj\n")
        self.index = _write(self.root / "src" / "index.ts", "export {};\n")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_none_mode_renders_nothing(self) -> None:
        self.assertEqual(generate_file_tree("none", [self.readme], self.root), "")

    def test_full_mode_lists_directories_first(self) -> None:
        tree = generate_file_tree("full", [], self.root, IgnoreMatcher(self.root))

        self.assertEqual(
            tree.splitlines(),
            ["proj/", "├── src/", "    └── index.ts", "└── README.md"],
        )

    def test_full_mode_prunes_ignored_and_empty_directories(self) -> None:
        _write(self.root / ".gitignore", "dist/\n*.log\n")
        _write(self.root / "dist" / "bundle.js", "x")
        _write(self.root / "logs" / "run.log", "x")
        _write(self.root / ".git" / "HEAD", "ref")

        lines = generate_file_tree("full", [], self.root, IgnoreMatcher(self.root)).splitlines()

        self.assertNotIn("├── dist/", lines)
        self.assertNotIn("├── logs/", lines)
        self.assertNotIn("├── .git/", lines)
        self.assertIn("├── .gitignore", lines)

    def test_relevant_mode_shows_only_selected_branches(self) -> None:
        _write(self.root / "other.txt", "unused")

        tree = generate_file_tree("relevant", [self.readme, self.index], self.root)

        self.assertEqual(tree, "proj/\n├── README.md\n└── src/\n    └── index.ts")

    def test_unknown_mode_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            generate_file_tree("sideways", [], self.root)


class LanguageHintTests(unittest.TestCase):
    def test_known_extensions_map_to_lexer_alias(self) -> None:
        self.assertEqual(language_hint("pkg/module.py"), "python")
        self.assertEqual(language_hint(Path("UPPER.PY")), "python")

    def test_plain_and_unknown_files_have_no_hint(self) -> None:
        self.assertEqual(language_hint("notes.txt"), "")
        self.assertEqual(language_hint("data.zz-unknown-ext"), "")


class BuildBundleTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.base = Path(os.path.abspath(self._tmp.name))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_single_root_document_layout(self) -> None:
        root = WorkspaceRoot(self.base / "proj", "proj")
        source = _write(root.path / "app" / "main.py", "print('hi')\n")

        bundle = await build_bundle(
            [_file_node(source, root)],
            [root],
            tree_mode="relevant",
            prompt="  Explain this.  ",
            system_prompt="Be brief.",
        )

        self.assertTrue(bundle.startswith(f"{BUNDLE_HEADING}\n\n{SINGLE_ROOT_INTRO}\n\n---\n\n## Project: proj\n\n"))
        self.assertIn("### Project File Structure\n\n```\nproj/\n└── app/\n    └── main.py\n```\n\n", bundle)
        self.assertIn("### Source Code Files\n\n#### File: app/main.py\n\n```python\nprint('hi')\n```\n\n", bundle)
        self.assertTrue(
            bundle.endswith("---\n\n**System Prompt:**\n\nBe brief.\n\n**User Request:**\n\nExplain this.\n")
        )

    async def test_multiple_roots_get_a_note_and_one_section_each(self) -> None:
        one = WorkspaceRoot(self.base / "one", "one")
        two = WorkspaceRoot(self.base / "two", "two")
        a = _write(one.path / "a.txt", "alpha")
        b = _write(two.path / "b.txt", "beta")

        bundle = await build_bundle(
            [_file_node(b, two), _file_node(a, one)],
            [one, two],
            tree_mode="none",
        )

        self.assertIn("*Note: The user has selected files from 2 separate directories.", bundle)
        self.assertLess(bundle.index("## Project: one"), bundle.index("## Project: two"))
        self.assertNotIn("### Project File Structure", bundle)
        self.assertIn("#### File: a.txt\n\n```\nalpha\n```", bundle)
        self.assertNotIn("**User Request:**", bundle)

    async def test_unreadable_files_are_skipped(self) -> None:
        root = WorkspaceRoot(self.base / "proj", "proj")
        kept = _write(root.path / "kept.txt", "kept")
        missing = root.path / "gone.txt"

        with self.assertLogs("contextbundler.bundler.bundle", level="WARNING"):
            bundle = await build_bundle(
                [_file_node(kept, root), _file_node(missing, root)],
                [root],
                tree_mode="none",
            )

        self.assertIn("#### File: kept.txt", bundle)
        self.assertNotIn("gone.txt", bundle)

    async def test_binary_files_are_skipped_and_latin1_files_kept(self) -> None:
        root = WorkspaceRoot(self.base / "proj", "proj")
        blob = root.path / "blob.bin"
        legacy = root.path / "legacy.txt"
        root.path.mkdir(parents=True)
        blob.write_bytes(b"\xff\xfe\x00\x81")
        legacy.write_bytes(b"caf\xe9 ok!")

        bundle = await build_bundle(
            [_file_node(blob, root), _file_node(legacy, root)],
            [root],
            tree_mode="none",
        )

        self.assertNotIn("blob.bin", bundle)
        self.assertIn("#### File: legacy.txt\n\n```\ncafé ok!\n```", bundle)

    def test_code_fence_outgrows_embedded_fences(self) -> None:
        self.assertEqual(code_fence("plain"), "```")
        self.assertEqual(code_fence("```python\nx\n```"), "````")


if __name__ == "__main__":
    unittest.main()
