"""Exception types raised to callers of the bundling engine."""

from __future__ import annotations


class ContextBundlerError(Exception):
    """Base class for errors the engine raises instead of recovering."""


class OwningRootError(ContextBundlerError, ValueError):
    """Raised when a path is not inside any registered workspace root."""


class NoSelectionError(ContextBundlerError):
    """Raised when a bundle is requested with nothing selected."""


__all__ = ["ContextBundlerError", "NoSelectionError", "OwningRootError"]
