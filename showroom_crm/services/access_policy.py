"""
Access Policy.

``evaluate_access`` is the one authorization predicate of the dashboard.
Every protected view and the session guard call it; nothing else
compares roles.
"""

from __future__ import annotations

from collections.abc import Iterable

from showroom_crm.models.auth_models import (
    AccessDecision,
    AccessOutcome,
    SessionPhase,
    SessionState,
)
from showroom_crm.models.enums import Role

DEFAULT_LOGIN_PATH = "/login"

ROLE_HOME_PATHS: dict[Role, str] = {
    Role.ADMIN: "/admin/dashboard",
    Role.MANAGER: "/manager/dashboard",
    Role.SALESPERSON: "/salesperson/dashboard",
}


def home_path(role: Role) -> str:
    """Return the dashboard path owned by *role*."""
    return ROLE_HOME_PATHS[role]


def evaluate_access(
    state: SessionState,
    required_roles: Iterable[Role],
    login_path: str = DEFAULT_LOGIN_PATH,
) -> AccessDecision:
    """Decide what a view requiring *required_roles* should do for *state*.

    - ``resolving``: ``PENDING``.  The caller shows a neutral loading
      state and renders nothing protected.
    - ``unauthenticated``: redirect to login.
    - authenticated with a permitted role: ``GRANTED``.
    - authenticated with another role: redirect to that role's own area.

    An empty *required_roles* grants nobody.
    """
    if state.phase is SessionPhase.RESOLVING:
        return AccessDecision(outcome=AccessOutcome.PENDING)

    principal = state.principal
    if state.phase is not SessionPhase.AUTHENTICATED or principal is None:
        return AccessDecision(
            outcome=AccessOutcome.REDIRECT_TO_LOGIN, redirect_path=login_path,
        )

    if principal.role in frozenset(required_roles):
        return AccessDecision(outcome=AccessOutcome.GRANTED, role=principal.role)

    return AccessDecision(
        outcome=AccessOutcome.REDIRECT_TO_OWN_AREA,
        role=principal.role,
        redirect_path=home_path(principal.role),
    )
