"""
Session State.

Provides an injectable ``SessionManager`` that holds the one session
snapshot every protected view reads.  A view never keeps a private copy
of the principal: it reads :pyattr:`SessionManager.state` or subscribes
to changes.

Usage::

    from showroom_crm.auth import SessionManager

    session = SessionManager()            # starts in ``resolving``
    generation = session.begin_resolution()
    ...
    session.apply_resolution(generation, SessionState.authenticated(p))
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from showroom_crm.logger import StructuredLogger
from showroom_crm.models.auth_models import SessionState
from showroom_crm.models.user import Principal

SessionObserver = Callable[[SessionState], None]


class SessionManager:
    """Injectable holder of the shared session state.

    Each resolution attempt is tagged with a generation number.  Signing
    out bumps the generation, so a profile fetch that was in flight when
    the user signed out cannot re-authenticate the session when it lands.
    """

    def __init__(self, logger: Optional[StructuredLogger] = None) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._state: SessionState = SessionState.resolving()
        self._generation: int = 0
        self._observers: list[SessionObserver] = []
        self._logger = logger

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def principal(self) -> Optional[Principal]:
        """The authenticated principal, or ``None``."""
        return self.state.principal

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def begin_resolution(self) -> int:
        """Start a resolution attempt and return its generation tag."""
        with self._lock:
            self._generation += 1
            return self._generation

    def apply_resolution(self, generation: int, state: SessionState) -> bool:
        """Publish the result of the attempt tagged *generation*.

        Returns ``False`` (and changes nothing) when a newer attempt or a
        sign-out has superseded it.
        """
        with self._lock:
            if generation != self._generation:
                if self._logger is not None:
                    self._logger.debug(
                        "Discarding stale session resolution %d (current %d)",
                        generation, self._generation,
                    )
                return False
            self._set_state(state)
            return True

    def mark_resolving(self) -> None:
        """Enter ``resolving`` for a new sign-in.

        Resolutions started before the sign-in are invalidated.
        """
        with self._lock:
            self._generation += 1
            self._set_state(SessionState.resolving())

    def clear(self) -> None:
        """End the session.  In-flight resolutions are invalidated."""
        with self._lock:
            self._generation += 1
            self._set_state(SessionState.unauthenticated())

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, observer: SessionObserver) -> Callable[[], None]:
        """Register *observer* for state changes.  Returns an unsubscribe function."""
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    def _set_state(self, state: SessionState) -> None:
        # Caller holds the lock.
        if state == self._state:
            return
        self._state = state
        for observer in list(self._observers):
            try:
                observer(state)
            except Exception:
                if self._logger is not None:
                    self._logger.error(
                        "Session observer raised", exc_info=True,
                    )
