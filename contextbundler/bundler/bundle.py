"""Assemble selected files into one markdown document.

Layout, per represented root in registration order::

    ---

    ## Project: <root label>

    ### Project File Structure      (omitted for tree mode "none")
    ### Source Code Files
    #### File: <relative path>      (one fenced block per file)

followed by optional system prompt and user request sections.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Mapping, Sequence
from pathlib import Path

from ..file_tree_model.fs import read_source_text
from ..gitignore import IgnoreMatcher
from ..selection.types import ContextNode, WorkspaceRoot
from .file_tree import generate_file_tree
from .language import language_hint

logger = logging.getLogger(__name__)

BUNDLE_HEADING = "# Codebase Analysis Request"
SINGLE_ROOT_INTRO = (
    "Below is a codebase with its file structure and selected source files. "
    "Please analyze this code and provide assistance based on the user's request."
)
_BACKTICK_RUN = re.compile(r"`{3,}")


def multi_root_intro(root_count: int) -> str:
    return (
        f"*Note: The user has selected files from {root_count} separate directories. "
        "Each directory's context is provided below.*"
    )


def code_fence(content: str) -> str:
    """Return a backtick fence longer than any backtick run in ``content``."""
    longest = max((len(match.group(0)) for match in _BACKTICK_RUN.finditer(content)), default=0)
    return "`" * max(3, longest + 1)


def group_by_root(
    selected: Sequence[ContextNode],
    roots: Sequence[WorkspaceRoot],
) -> list[tuple[WorkspaceRoot, list[ContextNode]]]:
    """Group file nodes by owning root, in root order; empty groups are dropped."""
    grouped: dict[Path, list[ContextNode]] = {}
    for node in selected:
        if node.is_dir:
            continue
        grouped.setdefault(node.root.path, []).append(node)

    ordered: list[tuple[WorkspaceRoot, list[ContextNode]]] = []
    known = set()
    for root in roots:
        if root.path in grouped:
            ordered.append((root, grouped[root.path]))
            known.add(root.path)
    for node in selected:
        if node.root.path not in known and node.root.path in grouped:
            ordered.append((node.root, grouped[node.root.path]))
            known.add(node.root.path)
    return ordered


async def _file_section(node: ContextNode) -> str | None:
    try:
        content = await asyncio.to_thread(read_source_text, node.path)
    except OSError as exc:
        logger.warning("Skipping unreadable file %s: %s", node.path, exc)
        return None
    if content is None:
        logger.debug("Skipping binary file %s", node.path)
        return None

    fence = code_fence(content)
    body = content if content.endswith("\n") else content + "\n"
    return f"#### File: {node.relative_path()}\n\n{fence}{language_hint(node.path)}\n{body}{fence}\n\n"


async def build_bundle(
    selected: Sequence[ContextNode],
    roots: Sequence[WorkspaceRoot],
    matchers: Mapping[Path, IgnoreMatcher] | None = None,
    *,
    tree_mode: str = "full",
    prompt: str | None = None,
    system_prompt: str | None = None,
) -> str:
    """Render ``selected`` file nodes as a markdown bundle."""
    matchers = matchers or {}
    groups = group_by_root(selected, roots)

    parts = [f"{BUNDLE_HEADING}\n\n"]
    if len(groups) > 1:
        parts.append(multi_root_intro(len(groups)) + "\n\n")
    else:
        parts.append(SINGLE_ROOT_INTRO + "\n\n")

    for root, nodes in groups:
        parts.append(f"---\n\n## Project: {root.name}\n\n")
        file_tree = await asyncio.to_thread(
            generate_file_tree,
            tree_mode,
            [node.path for node in nodes],
            root.path,
            matchers.get(root.path),
            root.name,
        )
        if file_tree:
            parts.append(f"### Project File Structure\n\n```\n{file_tree}\n```\n\n")

        parts.append("### Source Code Files\n\n")
        for node in nodes:
            section = await _file_section(node)
            if section is not None:
                parts.append(section)

    system_prompt = (system_prompt or "").strip()
    prompt = (prompt or "").strip()
    if system_prompt or prompt:
        parts.append("---\n\n")
        if system_prompt:
            parts.append(f"**System Prompt:**\n\n{system_prompt}\n\n")
        if prompt:
            parts.append(f"**User Request:**\n\n{prompt}\n")

    return "".join(parts)


__all__ = [
    "BUNDLE_HEADING",
    "SINGLE_ROOT_INTRO",
    "build_bundle",
    "code_fence",
    "group_by_root",
    "multi_root_intro",
]
