"""View Registry.

Central registry of the protected views of the dashboard and the roles
allowed to see each one.  The session guard consults it for
``authorize_view``; a navigation shell queries it to build its menu.

Adding a protected view = one ``register()`` call.
"""

from __future__ import annotations

from typing import Optional

from showroom_crm.logger import StructuredLogger
from showroom_crm.models.enums import Role


class ViewEntry:
    """Metadata for a single protected view.

    Attributes
    ----------
    view_id:
        Unique string identifier (e.g. ``'admin.customers.trash'``).
    display_name:
        Human-readable name shown in navigation.
    path:
        Route of the view.
    required_roles:
        Roles that may access this view.
    """

    __slots__ = ("view_id", "display_name", "path", "required_roles")

    def __init__(
        self,
        view_id: str,
        display_name: str,
        path: str,
        required_roles: frozenset[Role],
    ) -> None:
        self.view_id = view_id
        self.display_name = display_name
        self.path = path
        self.required_roles = required_roles

    def __repr__(self) -> str:
        return f"ViewEntry({self.view_id!r}, {self.path!r})"


class ViewRegistry:
    """Manages the collection of protected views.

    Parameters
    ----------
    logger:
        Structured logger for registration events.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._entries: dict[str, ViewEntry] = {}
        self._logger = logger

    def register(
        self,
        view_id: str,
        display_name: str,
        path: str,
        required_roles: frozenset[Role],
    ) -> None:
        """Register a protected view.

        Raises
        ------
        ValueError
            If *required_roles* is empty: a view nobody may open is a
            registration mistake, not a policy.
        """
        if not required_roles:
            raise ValueError(f"View '{view_id}' must allow at least one role.")
        if view_id in self._entries:
            self._logger.warning(
                "View '%s' already registered; overwriting.", view_id,
            )
        self._entries[view_id] = ViewEntry(
            view_id=view_id,
            display_name=display_name,
            path=path,
            required_roles=frozenset(required_roles),
        )
        self._logger.debug("View registered: %s (%s)", view_id, path)

    def get(self, view_id: str) -> Optional[ViewEntry]:
        """Return the entry for *view_id*, or ``None`` if unknown."""
        return self._entries.get(view_id)

    def get_view(self, view_id: str) -> ViewEntry:
        """Return a specific view entry by ID.

        Raises
        ------
        KeyError
            If *view_id* is not registered.
        """
        if view_id not in self._entries:
            raise KeyError(f"View '{view_id}' is not registered.")
        return self._entries[view_id]

    def get_views_for_role(self, role: Role) -> list[ViewEntry]:
        """Return views visible to *role*, preserving registration order."""
        return [
            entry for entry in self._entries.values()
            if role in entry.required_roles
        ]

    def __contains__(self, view_id: object) -> bool:
        return view_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


_ADMIN = frozenset({Role.ADMIN})
_MANAGER = frozenset({Role.MANAGER})
_SALESPERSON = frozenset({Role.SALESPERSON})

_DEFAULT_VIEWS: tuple[tuple[str, str, str, frozenset[Role]], ...] = (
    ("admin.dashboard", "Dashboard", "/admin/dashboard", _ADMIN),
    ("admin.customers", "Customers", "/admin/customers", _ADMIN),
    ("admin.customers.trash", "Trash", "/admin/customers/trash", _ADMIN),
    ("admin.managers", "Managers", "/admin/managers", _ADMIN),
    ("admin.salespeople", "Salespeople", "/admin/salespeople", _ADMIN),
    ("admin.showrooms", "Showrooms", "/admin/showrooms", _ADMIN),
    ("admin.reports", "Reports", "/admin/reports", _ADMIN),
    ("admin.audit_logs", "Audit Logs", "/admin/audit-logs", _ADMIN),
    ("admin.settings", "Settings", "/admin/settings", _ADMIN),
    ("manager.dashboard", "Dashboard", "/manager/dashboard", _MANAGER),
    ("manager.customers", "Customers", "/manager/customers", _MANAGER),
    ("manager.team", "Team", "/manager/team", _MANAGER),
    ("manager.escalations", "Escalations", "/manager/escalations", _MANAGER),
    ("salesperson.dashboard", "Dashboard", "/salesperson/dashboard", _SALESPERSON),
    ("salesperson.customers", "My Customers", "/salesperson/customers", _SALESPERSON),
    ("salesperson.appointments", "Appointments", "/salesperson/appointments", _SALESPERSON),
    ("salesperson.tasks", "Tasks", "/salesperson/tasks", _SALESPERSON),
)


def build_default_registry(logger: StructuredLogger) -> ViewRegistry:
    """Return a registry holding the admin, manager and salesperson areas."""
    registry = ViewRegistry(logger)
    for view_id, display_name, path, roles in _DEFAULT_VIEWS:
        registry.register(view_id, display_name, path, roles)
    return registry
