"""
View Revalidation.

After a lifecycle transition the views that show customers must drop
their cached data.  The lifecycle service names those views by
``ViewKey`` and hands them to a ``Revalidator``; ``RevalidationBus`` is
the in-process implementation views subscribe to.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from enum import StrEnum
from typing import Callable, Protocol

from showroom_crm.logger import StructuredLogger


class ViewKey(StrEnum):
    """Cached views that list or count customers."""

    ACTIVE_CUSTOMERS = "/admin/customers"
    TRASH = "/admin/customers/trash"
    ADMIN_DASHBOARD = "/admin/dashboard"


class Revalidator(Protocol):
    def invalidate(self, keys: Iterable[ViewKey]) -> None:
        ...


ViewListener = Callable[[ViewKey], None]


class RevalidationBus:
    """Fan-out of invalidation signals to per-key listeners.

    A listener that raises is logged and skipped; an invalidation never
    fails the transition that caused it.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger = logger
        self._lock = threading.Lock()
        self._listeners: dict[ViewKey, list[ViewListener]] = {}

    def subscribe(self, key: ViewKey, listener: ViewListener) -> Callable[[], None]:
        """Call *listener* whenever *key* is invalidated.  Returns an unsubscribe function."""
        with self._lock:
            self._listeners.setdefault(key, []).append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(key, [])
                if listener in listeners:
                    listeners.remove(listener)

        return _unsubscribe

    def invalidate(self, keys: Iterable[ViewKey]) -> None:
        for key in dict.fromkeys(keys):
            with self._lock:
                listeners = list(self._listeners.get(key, []))
            self._logger.debug("Invalidating view %s", key.value)
            for listener in listeners:
                try:
                    listener(key)
                except Exception:
                    self._logger.error(
                        "Revalidation listener for %s raised", key.value,
                        exc_info=True,
                    )
