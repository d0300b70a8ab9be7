"""Persistent JSON config helpers and settings snapshots.

Stores the ignored-node display mode, default ignore patterns, and the
file-structure diagram mode. Malformed or missing config falls back to
defaults.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_config_dir

logger = logging.getLogger(__name__)

APP_NAME = "contextbundler"
CONFIG_FILENAME = "config.json"
DEFAULT_CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME
CONFIG_PATH = DEFAULT_CONFIG_PATH

FILE_TREE_MODES: tuple[str, ...] = ("full", "relevant", "none")
DEFAULT_FILE_TREE_MODE = "full"


@dataclass(frozen=True)
class TreeSettings:
    """Settings slice consulted by the selection tree."""

    show_ignored_nodes: bool = False


@dataclass(frozen=True)
class BundlerSettings:
    """Immutable configuration snapshot injected into the engine."""

    show_ignored_nodes: bool = False
    default_ignore_patterns: tuple[str, ...] = ()
    file_tree_mode: str = DEFAULT_FILE_TREE_MODE

    def tree_settings(self) -> TreeSettings:
        return TreeSettings(show_ignored_nodes=self.show_ignored_nodes)


def load_config(path: Path | None = None) -> dict[str, object]:
    """Load the persisted JSON config object.

    Returns an empty dict when the file is missing, unreadable, malformed, or
    does not decode to a top-level JSON object.
    """
    config_path = path if path is not None else CONFIG_PATH
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        logger.debug("Ignoring unreadable config %s: %s", config_path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict[str, object], path: Path | None = None) -> None:
    """Persist config data as pretty-printed JSON.

    Filesystem/serialization errors are logged and otherwise ignored so a
    read-only config location never breaks bundling.
    """
    config_path = path if path is not None else CONFIG_PATH
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except (OSError, TypeError, ValueError) as exc:
        logger.warning("Unable to save config %s: %s", config_path, exc)


def _coerce_patterns(value: object) -> tuple[str, ...]:
    """Keep non-empty string patterns; anything else yields no patterns."""
    if not isinstance(value, list):
        return ()
    return tuple(item for item in value if isinstance(item, str) and item.strip())


def _coerce_file_tree_mode(value: object) -> str:
    if isinstance(value, str) and value in FILE_TREE_MODES:
        return value
    return DEFAULT_FILE_TREE_MODE


def settings_from_config(data: dict[str, object]) -> BundlerSettings:
    """Build settings from a raw config object with strict type checks.

    Only explicit booleans are accepted for ``show_ignored_nodes``.
    """
    show_ignored = data.get("show_ignored_nodes")
    return BundlerSettings(
        show_ignored_nodes=show_ignored if isinstance(show_ignored, bool) else False,
        default_ignore_patterns=_coerce_patterns(data.get("default_ignore_patterns")),
        file_tree_mode=_coerce_file_tree_mode(data.get("file_tree_mode")),
    )


def load_settings(path: Path | None = None) -> BundlerSettings:
    """Load settings from the persisted config file."""
    return settings_from_config(load_config(path))


def save_settings(settings: BundlerSettings, path: Path | None = None) -> None:
    """Merge ``settings`` into the persisted config object."""
    config = load_config(path)
    config["show_ignored_nodes"] = bool(settings.show_ignored_nodes)
    config["default_ignore_patterns"] = list(settings.default_ignore_patterns)
    config["file_tree_mode"] = _coerce_file_tree_mode(settings.file_tree_mode)
    save_config(config, path)


__all__ = [
    "APP_NAME",
    "CONFIG_PATH",
    "DEFAULT_FILE_TREE_MODE",
    "FILE_TREE_MODES",
    "BundlerSettings",
    "TreeSettings",
    "load_config",
    "load_settings",
    "save_config",
    "save_settings",
    "settings_from_config",
]
