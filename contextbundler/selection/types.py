"""Node and root datatypes for the selection tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from ..errors import OwningRootError

SelectionState = Literal["checked", "unchecked", "indeterminate"]

CHECKED: SelectionState = "checked"
UNCHECKED: SelectionState = "unchecked"
INDETERMINATE: SelectionState = "indeterminate"


@dataclass(frozen=True)
class WorkspaceRoot:
    """A registered scanning boundary."""

    path: Path
    name: str


@dataclass(eq=False)
class ContextNode:
    """One lazily materialized file or directory in the selection tree.

    ``children`` is only meaningful once ``children_loaded`` is set.
    ``has_selectable_files`` is ``False`` for directories known to contain
    no non-ignored file anywhere below them.
    """

    path: Path
    label: str
    is_dir: bool
    root: WorkspaceRoot
    parent: ContextNode | None = None
    selection_state: SelectionState = UNCHECKED
    is_ignored: bool = False
    token_count: int = 0
    has_selectable_files: bool = True
    children: list[ContextNode] = field(default_factory=list)
    children_loaded: bool = False

    @property
    def workspace_root(self) -> Path:
        return self.root.path

    def relative_path(self) -> str:
        """Return the path relative to the owning root, POSIX separators."""
        relative = self.path.relative_to(self.root.path).as_posix()
        return "" if relative == "." else relative

    def __repr__(self) -> str:
        kind = "dir" if self.is_dir else "file"
        return f"ContextNode({str(self.path)!r}, {kind}, {self.selection_state})"


__all__ = [
    "CHECKED",
    "INDETERMINATE",
    "UNCHECKED",
    "ContextNode",
    "OwningRootError",
    "SelectionState",
    "WorkspaceRoot",
]
