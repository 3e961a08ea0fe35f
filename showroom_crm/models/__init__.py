from __future__ import annotations

"""
Data Models Package.

Re-exports all Pydantic models for convenient imports:
    from showroom_crm.models import Customer, Principal, Role
    from showroom_crm.models import SessionState, AccessDecision
"""

from showroom_crm.models.enums import (
    ERASE_ORDER,
    DependentKind,
    InterestLevel,
    LeadStatus,
    Role,
)
from showroom_crm.models.user import Principal, Profile
from showroom_crm.models.auth_models import (
    AccessDecision,
    AccessOutcome,
    AuthEvent,
    ProviderSession,
    SessionPhase,
    SessionState,
)
from showroom_crm.models.customer import (
    Customer,
    CustomerCreate,
    CustomerFilters,
    CustomerScope,
    DeletedCustomer,
)
from showroom_crm.models.service_models import LifecycleErrorCode, LifecycleResult

__all__ = [
    "ERASE_ORDER",
    "DependentKind",
    "InterestLevel",
    "LeadStatus",
    "Role",
    "Principal",
    "Profile",
    "AccessDecision",
    "AccessOutcome",
    "AuthEvent",
    "ProviderSession",
    "SessionPhase",
    "SessionState",
    "Customer",
    "CustomerCreate",
    "CustomerFilters",
    "CustomerScope",
    "DeletedCustomer",
    "LifecycleErrorCode",
    "LifecycleResult",
]
