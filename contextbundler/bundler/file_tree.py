"""Text diagrams of a root's file structure for bundle headers.

``full`` draws every visible entry under the root, ``relevant`` only the
selected files and the directories leading to them, ``none`` nothing.
Functions here block on the filesystem; async callers use ``to_thread``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from ..file_tree_model.fs import list_directory_children
from ..gitignore import IgnoreMatcher

logger = logging.getLogger(__name__)

INDENT = "    "
BRANCH = "├── "
LAST_BRANCH = "└── "


def tree_prefix(depth: int, is_last: bool) -> str:
    return INDENT * depth + (LAST_BRANCH if is_last else BRANCH)


def _has_visible_children(directory: Path, matcher: IgnoreMatcher | None) -> bool:
    children, scan_error = list_directory_children(directory)
    if scan_error is not None:
        return False
    return any(
        matcher is None or not matcher.is_ignored(child.path, is_dir=child.is_dir)
        for child in children
    )


def _append_full_tree(directory: Path, depth: int, lines: list[str], matcher: IgnoreMatcher | None) -> None:
    children, scan_error = list_directory_children(directory)
    if scan_error is not None:
        logger.warning("Error reading directory %s: %s", directory, scan_error)
        return

    visible = []
    for child in children:
        if matcher is not None and matcher.is_ignored(child.path, is_dir=child.is_dir):
            continue
        if child.is_dir and not _has_visible_children(child.path, matcher):
            continue
        visible.append(child)

    for position, child in enumerate(visible):
        prefix = tree_prefix(depth, position == len(visible) - 1)
        if child.is_dir:
            lines.append(f"{prefix}{child.name}/")
            _append_full_tree(child.path, depth + 1, lines, matcher)
        else:
            lines.append(f"{prefix}{child.name}")


def _append_relevant_tree(branch: dict[str, dict], depth: int, lines: list[str]) -> None:
    names = sorted(branch, key=lambda name: (name.lower(), name))
    for position, name in enumerate(names):
        subtree = branch[name]
        prefix = tree_prefix(depth, position == len(names) - 1)
        # Leaves are selected files; anything with entries below it is a directory.
        lines.append(f"{prefix}{name}/" if subtree else f"{prefix}{name}")
        _append_relevant_tree(subtree, depth + 1, lines)


def generate_file_tree(
    mode: str,
    selected_paths: Iterable[Path],
    root: Path,
    matcher: IgnoreMatcher | None = None,
    root_label: str | None = None,
) -> str:
    """Render the file-structure diagram for one root.

    The first line is the root label followed by ``/``. Returns ``""`` for
    mode ``none``.
    """
    if mode == "none":
        return ""
    if mode not in ("full", "relevant"):
        raise ValueError(f"Unknown file tree mode: {mode!r}")

    lines = [f"{root_label or root.name}/"]
    if mode == "full":
        _append_full_tree(root, 0, lines, matcher)
        return "\n".join(lines)

    nested: dict[str, dict] = {}
    for path in selected_paths:
        try:
            parts = path.relative_to(root).parts
        except ValueError:
            continue
        if not parts or not path.exists():
            continue
        branch = nested
        for part in parts:
            branch = branch.setdefault(part, {})
    _append_relevant_tree(nested, 0, lines)
    return "\n".join(lines)


__all__ = ["generate_file_tree", "tree_prefix"]
