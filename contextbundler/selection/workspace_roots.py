"""Workspace-root normalization, attribution, and display labels."""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path

from .types import WorkspaceRoot


def normalized_workspace_roots(raw_roots: Sequence[Path | str]) -> list[WorkspaceRoot]:
    """Return absolute roots in order, dropping duplicates, with display labels."""
    paths: list[Path] = []
    for raw_root in raw_roots:
        path = Path(os.path.abspath(raw_root))
        if path not in paths:
            paths.append(path)
    labels = workspace_root_display_labels(paths)
    return [WorkspaceRoot(path=path, name=label) for path, label in zip(paths, labels)]


def _suffix_label(path: Path, depth: int) -> str:
    """Return the last ``depth`` path segments joined with ``/``."""
    segments = [part for part in path.parts if part != path.anchor]
    if not segments:
        return str(path)
    return "/".join(segments[-depth:])


def workspace_root_display_labels(roots: Sequence[Path]) -> list[str]:
    """Return compact labels that keep multiple roots distinguishable.

    Each label starts as the root's basename and gains parent segments only
    while it collides with another root's label at the same depth.
    """
    labels: list[str] = []
    for root in roots:
        max_depth = max(1, len(root.parts) - 1)
        depth = 1
        label = _suffix_label(root, depth)
        while depth < max_depth and any(
            other != root and _suffix_label(other, depth) == label for other in roots
        ):
            depth += 1
            label = _suffix_label(root, depth)
        labels.append(label)
    return labels


def root_for_path(roots: Sequence[WorkspaceRoot], path: Path) -> WorkspaceRoot | None:
    """Return the deepest root containing ``path`` (component-wise)."""
    absolute = Path(os.path.abspath(path))
    best: WorkspaceRoot | None = None
    for root in roots:
        if not absolute.is_relative_to(root.path):
            continue
        if best is None or len(root.path.parts) > len(best.path.parts):
            best = root
    return best


__all__ = [
    "normalized_workspace_roots",
    "root_for_path",
    "workspace_root_display_labels",
]
