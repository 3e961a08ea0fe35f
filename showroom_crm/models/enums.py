"""
Shared Enumerations for Showroom CRM Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents, so rows read
straight from the store (``"admin"``, ``"New Lead"``) validate without
translation.
"""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    """The closed set of principal roles.

    Each role owns one dashboard area; a principal denied a view is sent
    to their own area rather than to an error page.
    """

    ADMIN = "admin"
    MANAGER = "manager"
    SALESPERSON = "salesperson"


class LeadStatus(StrEnum):
    """Sales pipeline stage of a customer."""

    NEW_LEAD = "New Lead"
    CONTACTED = "Contacted"
    QUALIFIED = "Qualified"
    PROPOSAL_SENT = "Proposal Sent"
    NEGOTIATION = "Negotiation"
    CLOSED_WON = "Closed Won"
    CLOSED_LOST = "Closed Lost"


class InterestLevel(StrEnum):
    """Salesperson's read on how interested a customer is."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    NONE = "None"


class DependentKind(StrEnum):
    """Record kinds that reference a customer and die with it.

    The value is the backing table name.  None of them has a soft-delete
    state of its own.
    """

    APPOINTMENT = "appointments"
    TASK = "tasks"
    ESCALATION = "escalations"
    SALES_TRANSACTION = "sales_transactions"

    @property
    def label(self) -> str:
        """Human-readable plural used in error messages."""
        return self.value.replace("_", " ")


# Order in which dependents are removed before the customer row.
# Fixed so that a retried erase walks the same steps.
ERASE_ORDER: tuple[DependentKind, ...] = (
    DependentKind.APPOINTMENT,
    DependentKind.TASK,
    DependentKind.ESCALATION,
    DependentKind.SALES_TRANSACTION,
)
