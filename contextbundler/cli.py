"""Command-line front door for contextbundler.

Registers the given roots, indexes them, selects the requested paths, and
prints the markdown bundle to stdout.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .config import FILE_TREE_MODES, BundlerSettings, load_settings
from .errors import NoSelectionError
from .tokens import JsonFileStore, format_tokens
from .workspace import Workspace, memory_store_factory

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contextbundler",
        description="Bundle selected project files into one markdown document.",
    )
    parser.add_argument("roots", nargs="+", metavar="ROOT", help="Project root directories.")
    parser.add_argument(
        "--select",
        action="append",
        default=[],
        metavar="PATH",
        help="File or directory to include; relative paths resolve against the first root. "
        "Defaults to every root.",
    )
    parser.add_argument(
        "--tree-mode",
        choices=FILE_TREE_MODES,
        default=None,
        help="File structure diagram mode (default from config).",
    )
    parser.add_argument("--prompt", default=None, help="User request appended to the bundle.")
    parser.add_argument("--system-prompt", default=None, help="System prompt appended to the bundle.")
    parser.add_argument(
        "--ignore",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Extra gitignore-style pattern applied to every root.",
    )
    parser.add_argument("--show-ignored", action="store_true", help="List ignored entries in the tree.")
    parser.add_argument("--no-cache", action="store_true", help="Do not read or write the token cache.")
    parser.add_argument("--stats", action="store_true", help="Print token totals and cache stats to stderr.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def _settings_from_args(args: argparse.Namespace, base: BundlerSettings) -> BundlerSettings:
    settings = base
    if args.ignore:
        settings = replace(settings, default_ignore_patterns=settings.default_ignore_patterns + tuple(args.ignore))
    if args.show_ignored:
        settings = replace(settings, show_ignored_nodes=True)
    if args.tree_mode is not None:
        settings = replace(settings, file_tree_mode=args.tree_mode)
    return settings


def _resolve_selection(raw_paths: list[str], roots: list[Path]) -> list[Path]:
    if not raw_paths:
        return list(roots)
    resolved = []
    for raw in raw_paths:
        path = Path(raw)
        resolved.append(path if path.is_absolute() else roots[0] / path)
    return resolved


async def run(args: argparse.Namespace, roots: list[Path], selection: list[Path]) -> str:
    """Index ``roots``, select ``selection``, and return the bundle text."""
    settings = _settings_from_args(args, load_settings())
    store_factory = memory_store_factory if args.no_cache else JsonFileStore
    workspace = Workspace(roots, settings, store_factory)
    await workspace.start_indexing()

    for path in selection:
        if await workspace.select_path(path) is None:
            logger.warning("Skipping ignored path: %s", path)

    bundle = await workspace.bundle(prompt=args.prompt, system_prompt=args.system_prompt)

    if args.stats:
        sys.stderr.write(f"Selected: {format_tokens(workspace.tree.selection_token_total())}\n")
        for root in workspace.roots:
            stats = workspace.indexes[root.path].cache_stats()
            sys.stderr.write(
                f"{root.name}: {stats.indexed}/{stats.total} indexed, {stats.pending} pending\n"
            )
    return bundle


def main() -> None:
    """Parse CLI arguments and print the bundle for the selected paths."""
    args = _build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    roots = [Path(raw) for raw in args.roots]
    for root in roots:
        if not root.is_dir():
            raise SystemExit(f"Root directory not found: {root}")

    selection = _resolve_selection(args.select, roots)
    for path in selection:
        if not path.exists():
            raise SystemExit(f"Path not found: {path}")
        if not any(path.absolute().is_relative_to(root.absolute()) for root in roots):
            raise SystemExit(f"Path is outside every root: {path}")

    try:
        bundle = asyncio.run(run(args, roots, selection))
    except NoSelectionError as exc:
        raise SystemExit(f"{exc}; nothing to bundle.") from exc
    sys.stdout.write(bundle)


if __name__ == "__main__":
    main()
