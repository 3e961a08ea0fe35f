"""
Identity Provider Adapter.

The session guard only needs three things from an identity provider:
the current session, a stream of transition events and sign-out.
``IdentityProvider`` names that contract.  ``SupabaseIdentityProvider``
implements it over ``supabase.auth`` and adds the password credential
exchange the admin CLI uses; ``LocalIdentityProvider`` stands in when
the CRM runs against the local store.

All Supabase auth errors are caught here and mapped to typed models;
callers never inspect raw exceptions.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional, Protocol

from supabase import Client as SupabaseClient

from showroom_crm.logger import StructuredLogger
from showroom_crm.models.auth_models import (
    SUPABASE_ERROR_MAP,
    AuthErrorCode,
    AuthEvent,
    AuthResult,
    ProviderSession,
)

AuthEventCallback = Callable[[AuthEvent, Optional[ProviderSession]], None]


class IdentityProvider(Protocol):
    """What the session guard requires of an identity provider."""

    def get_current_session(self) -> Optional[ProviderSession]:
        """Return the current session, or ``None`` when signed out."""
        ...

    def on_auth_event(self, callback: AuthEventCallback) -> Callable[[], None]:
        """Subscribe to transition events.  Returns an unsubscribe function."""
        ...

    def sign_out(self) -> None:
        ...


def _to_provider_session(session: object) -> Optional[ProviderSession]:
    """Extract the fields the guard needs from a gotrue ``Session``."""
    if session is None:
        return None
    user = getattr(session, "user", None)
    if user is None:
        return None
    return ProviderSession(
        user_id=str(user.id),
        email=getattr(user, "email", None),
        access_token=getattr(session, "access_token", None),
        expires_at=getattr(session, "expires_at", None),
    )


class SupabaseIdentityProvider:
    """``IdentityProvider`` over the Supabase auth client.

    Parameters
    ----------
    client:
        An initialised Supabase client.
    logger:
        Structured logger for authentication events.
    """

    def __init__(self, client: SupabaseClient, logger: StructuredLogger) -> None:
        self._client = client
        self._logger = logger

    def get_current_session(self) -> Optional[ProviderSession]:
        return _to_provider_session(self._client.auth.get_session())

    def on_auth_event(self, callback: AuthEventCallback) -> Callable[[], None]:
        def _forward(event: str, session: object) -> None:
            try:
                auth_event = AuthEvent(str(event))
            except ValueError:
                self._logger.debug("Ignoring auth event %s", event)
                return
            callback(auth_event, _to_provider_session(session))

        subscription = self._client.auth.on_auth_state_change(_forward)
        return subscription.unsubscribe

    def sign_out(self) -> None:
        self._client.auth.sign_out()

    def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        """Exchange email and password for a session.

        A successful exchange fires ``SIGNED_IN`` on subscribers; the
        role itself is resolved by the guard from the profile store,
        never taken from user metadata.
        """
        email = email.strip().lower()
        try:
            response = self._client.auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        except (ConnectionError, TimeoutError) as exc:
            self._logger.warning(
                "Network error during login: %s", exc,
                extra={"event": "LOGIN_NETWORK_ERROR"},
            )
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.NETWORK_ERROR,
                error_message="Cannot reach the server. Check your internet connection.",
            )
        except Exception as exc:
            return self._classify_login_error(exc)

        user = response.user
        self._logger.info(
            "User authenticated: %s", user.email,
            extra={"event": "LOGIN", "user_id": user.id},
        )
        return AuthResult(success=True, user_id=str(user.id), email=user.email)

    def _classify_login_error(self, exc: Exception) -> AuthResult:
        error_str = str(exc).lower()
        for code_key, (error_code, human_message) in SUPABASE_ERROR_MAP.items():
            if code_key in error_str:
                self._logger.warning(
                    "Auth error (%s): %s", code_key, exc,
                    extra={"event": "LOGIN_FAILED", "error_code": code_key},
                )
                return AuthResult(
                    success=False, error_code=error_code, error_message=human_message,
                )

        self._logger.warning(
            "Unknown login error: %s", exc,
            extra={"event": "LOGIN_FAILED", "error_code": "unknown"},
        )
        return AuthResult(
            success=False,
            error_code=AuthErrorCode.UNKNOWN_ERROR,
            error_message="An unexpected error occurred. Please try again later.",
        )


class LocalIdentityProvider:
    """In-process ``IdentityProvider`` for the local store.

    Holds at most one session and emits the same events the Supabase
    client does.  Used when no Supabase project is configured: the
    operator names the profile to act as, and the guard still resolves
    the role from the profile store.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger = logger
        self._lock = threading.Lock()
        self._session: Optional[ProviderSession] = None
        self._callbacks: list[AuthEventCallback] = []

    def get_current_session(self) -> Optional[ProviderSession]:
        with self._lock:
            return self._session

    def on_auth_event(self, callback: AuthEventCallback) -> Callable[[], None]:
        with self._lock:
            self._callbacks.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return _unsubscribe

    def sign_in(self, user_id: str, email: Optional[str] = None) -> None:
        with self._lock:
            self._session = ProviderSession(user_id=user_id, email=email)
        self._logger.info(
            "Local session started for %s", user_id,
            extra={"event": "LOGIN", "user_id": user_id},
        )
        self.emit(AuthEvent.SIGNED_IN)

    def sign_out(self) -> None:
        with self._lock:
            self._session = None
        self.emit(AuthEvent.SIGNED_OUT)

    def emit(self, event: AuthEvent) -> None:
        """Deliver *event* with the current session to every subscriber."""
        with self._lock:
            callbacks = list(self._callbacks)
            session = self._session
        for callback in callbacks:
            callback(event, session)
