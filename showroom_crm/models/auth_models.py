"""
Session & Access Models.

Pydantic models and enumerations for the contracts between the
identity provider, the ``SessionManager`` state container, the
``SessionGuard`` and every protected view.

Every guard operation returns one of these typed values rather than
raising, so a view can branch on the result without a try/except.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, model_validator

from showroom_crm.models.enums import Role
from showroom_crm.models.user import Principal


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

class SessionPhase(StrEnum):
    """Observable phases of the shared session."""

    RESOLVING = "resolving"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class SessionState(BaseModel):
    """Immutable snapshot of the shared session.

    ``principal`` is set exactly when ``phase`` is ``AUTHENTICATED``.
    """

    phase: SessionPhase
    principal: Optional[Principal] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _principal_matches_phase(self) -> "SessionState":
        has_principal = self.principal is not None
        if has_principal != (self.phase is SessionPhase.AUTHENTICATED):
            raise ValueError(
                f"Session phase {self.phase} is inconsistent with "
                f"principal={'set' if has_principal else 'unset'}."
            )
        return self

    @classmethod
    def resolving(cls) -> "SessionState":
        return cls(phase=SessionPhase.RESOLVING)

    @classmethod
    def unauthenticated(cls) -> "SessionState":
        return cls(phase=SessionPhase.UNAUTHENTICATED)

    @classmethod
    def authenticated(cls, principal: Principal) -> "SessionState":
        return cls(phase=SessionPhase.AUTHENTICATED, principal=principal)


class AuthEvent(StrEnum):
    """Identity-provider transition events (Supabase event names)."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class ProviderSession(BaseModel):
    """The slice of a provider session the guard needs."""

    user_id: str
    email: Optional[str] = None
    access_token: Optional[str] = None
    expires_at: Optional[int] = None


# ---------------------------------------------------------------------------
# Access decisions
# ---------------------------------------------------------------------------

class AccessOutcome(StrEnum):
    """What a protected view should do."""

    GRANTED = "granted"
    PENDING = "pending"
    REDIRECT_TO_OWN_AREA = "redirect_to_own_area"
    REDIRECT_TO_LOGIN = "redirect_to_login"


class AccessDecision(BaseModel):
    """Result of evaluating a session against a view's required roles.

    Attributes
    ----------
    outcome:
        The branch the caller must take.  Only ``GRANTED`` permits
        rendering protected content.
    role:
        The principal's role for ``GRANTED`` and ``REDIRECT_TO_OWN_AREA``.
    redirect_path:
        Where to send the caller for either redirect outcome.
    """

    outcome: AccessOutcome
    role: Optional[Role] = None
    redirect_path: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def granted(self) -> bool:
        return self.outcome is AccessOutcome.GRANTED


# ---------------------------------------------------------------------------
# Credential exchange
# ---------------------------------------------------------------------------

class AuthErrorCode(StrEnum):
    """Categories of sign-in failure surfaced to the operator."""

    INVALID_CREDENTIALS = "invalid_credentials"
    USER_BANNED = "user_banned"
    NETWORK_ERROR = "network_error"
    UNKNOWN_ERROR = "unknown_error"


SUPABASE_ERROR_MAP: dict[str, tuple[AuthErrorCode, str]] = {
    "invalid_credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "invalid_grant": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "user_not_found": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "user_banned": (
        AuthErrorCode.USER_BANNED,
        "Your account has been deactivated. Contact your administrator.",
    ),
}


class AuthResult(BaseModel):
    """Outcome of a credential exchange with the identity provider."""

    success: bool
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
