"""
Session Guard.

Resolves who the current principal is and decides whether a protected
view may render.  The guard is fail-closed: a missing session, a missing
profile, a profile without a role and a failed profile fetch all end in
``unauthenticated``.  Nothing protected is shown while the session is
still ``resolving``.

The resolved state lives in the shared ``SessionManager``; the guard
never keeps a copy of its own, so every view observes the same principal.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional

from showroom_crm.auth import SessionManager
from showroom_crm.logger import StructuredLogger
from showroom_crm.models.auth_models import (
    AccessDecision,
    AccessOutcome,
    AuthEvent,
    ProviderSession,
    SessionState,
)
from showroom_crm.models.enums import Role
from showroom_crm.models.user import Principal
from showroom_crm.repositories.base_repository import StoreError
from showroom_crm.repositories.user_repository import ProfileRepository
from showroom_crm.services.access_policy import DEFAULT_LOGIN_PATH, evaluate_access
from showroom_crm.services.base_service import BaseService
from showroom_crm.services.identity_provider import IdentityProvider
from showroom_crm.views import ViewRegistry

_REFRESH_EVENTS = frozenset({
    AuthEvent.INITIAL_SESSION,
    AuthEvent.TOKEN_REFRESHED,
    AuthEvent.USER_UPDATED,
})


class SessionGuard(BaseService):
    """Resolves the shared session and answers access questions.

    Parameters
    ----------
    session:
        The shared session state container.
    provider:
        Identity provider supplying the current session and its events.
    profiles:
        Profile store holding each user's role.
    views:
        Registry of protected views and their required roles.
    logger:
        Structured logger for guard events.
    login_path:
        Redirect target for unauthenticated callers.
    resolve_timeout_s:
        How long a caller joining an in-flight resolution waits for it.
    """

    def __init__(
        self,
        session: SessionManager,
        provider: IdentityProvider,
        profiles: ProfileRepository,
        views: ViewRegistry,
        logger: StructuredLogger,
        login_path: str = DEFAULT_LOGIN_PATH,
        resolve_timeout_s: float = 15.0,
    ) -> None:
        super().__init__(logger)
        self._session = session
        self._provider = provider
        self._profiles = profiles
        self._views = views
        self._login_path = login_path
        self._resolve_timeout_s = resolve_timeout_s

        self._inflight_lock = threading.Lock()
        self._inflight: Optional[Future[SessionState]] = None
        self._inflight_generation: int = -1

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def current_principal(self) -> Optional[Principal]:
        return self._session.principal

    def resolve(self) -> SessionState:
        """Determine the current principal and publish it.

        Concurrent callers share one in-flight fetch.  A fetch superseded
        by a sign-out or a newer sign-in is discarded, and the caller gets
        whatever state is current instead.
        """
        with self._inflight_lock:
            joined = self._inflight
            if joined is not None and self._inflight_generation == self._session.generation:
                owner = False
            else:
                joined = Future()
                self._inflight = joined
                self._inflight_generation = self._session.begin_resolution()
                generation = self._inflight_generation
                owner = True

        if not owner:
            try:
                return joined.result(timeout=self._resolve_timeout_s)
            except FutureTimeoutError:
                self._logger.warning("Timed out waiting for session resolution")
                return self._session.state

        try:
            resolved = self._fetch_state()
            if not self._session.apply_resolution(generation, resolved):
                self._logger.info(
                    "Session resolution superseded; keeping current state",
                    extra={"event": "SESSION_RESOLUTION_DISCARDED"},
                )
            result = self._session.state
            joined.set_result(result)
            return result
        except BaseException as exc:
            joined.set_exception(exc)
            raise
        finally:
            with self._inflight_lock:
                if self._inflight is joined:
                    self._inflight = None

    def _fetch_state(self) -> SessionState:
        try:
            provider_session = self._provider.get_current_session()
        except Exception as exc:
            self._logger.warning(
                "Identity provider session lookup failed: %s", exc,
                extra={"event": "SESSION_LOOKUP_FAILED"},
            )
            return SessionState.unauthenticated()

        if provider_session is None:
            return SessionState.unauthenticated()

        principal = self._principal_for(provider_session)
        if principal is None:
            return SessionState.unauthenticated()
        return SessionState.authenticated(principal)

    def _principal_for(self, provider_session: ProviderSession) -> Optional[Principal]:
        user_id = provider_session.user_id
        try:
            profile = self._profiles.get_by_id(user_id)
        except StoreError as exc:
            self._logger.warning(
                "Profile fetch failed for %s: %s", user_id, exc,
                extra={"event": "PROFILE_FETCH_FAILED", "user_id": user_id},
            )
            return None

        if profile is None:
            self._logger.warning(
                "No profile for authenticated user %s", user_id,
                extra={"event": "PROFILE_MISSING", "user_id": user_id},
            )
            return None

        principal = Principal.from_profile(profile)
        if principal is None:
            self._logger.warning(
                "Profile %s has no role", user_id,
                extra={"event": "PROFILE_WITHOUT_ROLE", "user_id": user_id},
            )
            return None

        if principal.email is None and provider_session.email:
            principal = principal.model_copy(update={"email": provider_session.email})
        return principal

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def authorize(self, required_roles: Iterable[Role]) -> AccessDecision:
        """Evaluate the current state against *required_roles*.

        Reads the shared state only; never fetches.
        """
        decision = evaluate_access(
            self._session.state, required_roles, login_path=self._login_path,
        )
        if decision.outcome in (
            AccessOutcome.REDIRECT_TO_LOGIN, AccessOutcome.REDIRECT_TO_OWN_AREA,
        ):
            self._logger.debug(
                "Access redirected to %s", decision.redirect_path,
                extra={"event": "ACCESS_REDIRECT", "outcome": decision.outcome.value},
            )
        return decision

    def authorize_view(self, view_id: str) -> AccessDecision:
        """Evaluate access to a registered view.  Unknown views are denied."""
        entry = self._views.get(view_id)
        if entry is None:
            self._logger.warning(
                "Access requested for unregistered view '%s'", view_id,
                extra={"event": "UNKNOWN_VIEW"},
            )
            return AccessDecision(
                outcome=AccessOutcome.REDIRECT_TO_LOGIN,
                redirect_path=self._login_path,
            )
        return self.authorize(entry.required_roles)

    # ------------------------------------------------------------------
    # Provider events
    # ------------------------------------------------------------------

    def observe(self, provider: Optional[IdentityProvider] = None) -> Callable[[], None]:
        """Keep the shared state in step with *provider*'s events.

        Returns an unsubscribe function.
        """
        source = provider if provider is not None else self._provider
        return source.on_auth_event(self.handle_event)

    def handle_event(
        self, event: AuthEvent, session: Optional[ProviderSession] = None,
    ) -> None:
        if event is AuthEvent.SIGNED_OUT:
            principal = self._session.principal
            self._session.clear()
            self._logger.info(
                "Session cleared on sign-out",
                extra={
                    "event": "SIGNED_OUT",
                    "user_id": principal.id if principal else "unknown",
                },
            )
        elif event is AuthEvent.SIGNED_IN:
            self._session.mark_resolving()
            self.resolve()
        elif event in _REFRESH_EVENTS:
            self.resolve()
        else:
            self._logger.debug("Auth event %s needs no session change", event)

    def sign_out(self) -> None:
        """Sign out at the provider, then clear the shared state."""
        try:
            self._provider.sign_out()
        except Exception as exc:
            self._logger.warning("Provider sign-out failed: %s", exc)
        finally:
            self.handle_event(AuthEvent.SIGNED_OUT)
