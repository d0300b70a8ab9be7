"""Tri-state file selection across one or more workspace roots."""

from __future__ import annotations

from .tree import SelectionTree, aggregate_state
from .types import (
    CHECKED,
    INDETERMINATE,
    UNCHECKED,
    ContextNode,
    OwningRootError,
    SelectionState,
    WorkspaceRoot,
)
from .workspace_roots import normalized_workspace_roots, root_for_path, workspace_root_display_labels

__all__ = [
    "CHECKED",
    "INDETERMINATE",
    "UNCHECKED",
    "ContextNode",
    "OwningRootError",
    "SelectionState",
    "SelectionTree",
    "WorkspaceRoot",
    "aggregate_state",
    "normalized_workspace_roots",
    "root_for_path",
    "workspace_root_display_labels",
]
