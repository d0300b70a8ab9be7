"""Minimal observer registry for engine change notifications.

Token indexes publish updated path lists, selection trees publish tree and
selection-total changes. Observers never acknowledge; delivery happens after
the triggering mutation has completed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Event(Generic[T]):
    """Fire-and-observe event with zero or more subscribed callbacks."""

    def __init__(self, name: str = "event") -> None:
        self._name = name
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """Register ``listener`` and return a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def fire(self, value: T) -> None:
        """Deliver ``value`` to every listener registered at call time.

        A failing listener is logged and does not stop delivery to the rest.
        """
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("Listener for %s failed", self._name)

    def __len__(self) -> int:
        return len(self._listeners)


__all__ = ["Event"]
