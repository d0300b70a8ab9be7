"""Markdown bundle output: file-structure diagrams, language hints, documents."""

from __future__ import annotations

from .bundle import build_bundle, group_by_root
from .file_tree import generate_file_tree
from .language import language_hint

__all__ = ["build_bundle", "generate_file_tree", "group_by_root", "language_hint"]
