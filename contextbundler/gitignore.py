"""Gitignore-aware path classification for one workspace root.

Builds a matcher from the version-control metadata rule, configured default
patterns, and the root-level ``.gitignore`` and ``.contextignore`` files.
Tree, index, and bundle builders use it to hide or skip ignored content.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Sequence
from pathlib import Path

import pathspec

logger = logging.getLogger(__name__)

VCS_METADATA_PATTERN = ".git"
GITIGNORE_FILENAME = ".gitignore"
CONTEXTIGNORE_FILENAME = ".contextignore"
RULE_FILE_NAMES: tuple[str, ...] = (GITIGNORE_FILENAME, CONTEXTIGNORE_FILENAME)


def _is_within(path: Path, root: Path) -> bool:
    """Return whether ``path`` is at or under ``root`` (component-wise)."""
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


def _read_rule_lines(path: Path) -> list[str]:
    """Return lines of a rule file, or an empty list when it cannot be read."""
    try:
        return path.read_text(encoding="utf-8", errors="replace").splitlines()
    except FileNotFoundError:
        return []
    except OSError as exc:
        logger.debug("Unable to read ignore file %s: %s", path, exc)
        return []


class IgnoreMatcher:
    """Compiled ignore rules for a single root.

    Rules merge in order and later rules may re-include earlier exclusions:
    ``.git``, configured defaults, ``.gitignore``, then ``.contextignore``.
    ``is_ignored`` never touches the filesystem; only ``reload`` reads rule
    files.
    """

    def __init__(
        self,
        root: Path,
        default_patterns: Sequence[str] = (),
        rule_file_names: Sequence[str] = RULE_FILE_NAMES,
    ) -> None:
        self.root = Path(os.path.abspath(root))
        self._default_patterns: tuple[str, ...] = tuple(default_patterns)
        self._rule_file_names: tuple[str, ...] = tuple(rule_file_names)
        self._spec: pathspec.GitIgnoreSpec = pathspec.GitIgnoreSpec.from_lines([])
        self.generation = 0
        self.reload()

    @property
    def default_patterns(self) -> tuple[str, ...]:
        return self._default_patterns

    @property
    def rule_files(self) -> tuple[Path, ...]:
        """Absolute paths of the rule files this matcher reads."""
        return tuple(self.root / name for name in self._rule_file_names)

    def is_rule_file(self, path: Path) -> bool:
        """Return whether ``path`` is one of this root's rule files."""
        return Path(os.path.abspath(path)) in self.rule_files

    def _collect_lines(self) -> list[str]:
        lines: list[str] = [VCS_METADATA_PATTERN]
        lines.extend(self._default_patterns)
        for rule_file in self.rule_files:
            lines.extend(_read_rule_lines(rule_file))
        return lines

    def reload(self, default_patterns: Iterable[str] | None = None) -> None:
        """Recompile from on-disk rule files and current default patterns.

        The new rule set is compiled first and published with one assignment so
        concurrent readers see either the old or the new rule set.
        """
        if default_patterns is not None:
            self._default_patterns = tuple(default_patterns)
        spec = pathspec.GitIgnoreSpec.from_lines(self._collect_lines())
        self._spec = spec
        self.generation += 1

    def relative_path(self, path: Path) -> str | None:
        """Return the root-relative POSIX path, or ``None`` outside the root."""
        absolute = Path(os.path.abspath(path))
        if not _is_within(absolute, self.root):
            return None
        return absolute.relative_to(self.root).as_posix()

    def is_ignored(self, path: Path, is_dir: bool | None = None) -> bool:
        """Return whether ``path`` is ignored under this matcher root.

        The root itself and paths outside the root are never ignored. Pass
        ``is_dir=True`` for directories so directory-only patterns such as
        ``build/`` match the directory entry itself.
        """
        relative = self.relative_path(path)
        if not relative or relative == ".":
            return False
        spec = self._spec
        if spec.match_file(relative):
            return True
        if is_dir:
            return spec.match_file(relative + "/")
        return False


__all__ = [
    "CONTEXTIGNORE_FILENAME",
    "GITIGNORE_FILENAME",
    "RULE_FILE_NAMES",
    "VCS_METADATA_PATTERN",
    "IgnoreMatcher",
]
