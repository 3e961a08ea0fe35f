"""
Customer Models.

``Customer`` mirrors a row of the ``customers`` table, including the
soft-delete pair.  ``DeletedCustomer`` is the enriched row shown in the
admin trash.  ``CustomerFilters`` carries the filter bar of the customer
list screens and ``CustomerScope`` the role restriction under it.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from showroom_crm.models.enums import InterestLevel, LeadStatus


class Customer(BaseModel):
    """Represents a customer record.

    ``assigned_showroom_id`` and ``assigned_salesperson_id`` are weak
    references: they are looked up for display and never own the row.

    A customer is *trashed* while ``deleted_at``/``deleted_by`` are set.
    The two fields are always set or cleared together; a model with only
    one of them fails validation.
    """

    id: str
    full_name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address_city: Optional[str] = None
    lead_status: LeadStatus = LeadStatus.NEW_LEAD
    interest_level: Optional[InterestLevel] = None
    assigned_showroom_id: Optional[str] = None
    assigned_salesperson_id: Optional[str] = None
    purchase_amount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None

    model_config = {"from_attributes": True, "extra": "ignore"}

    @model_validator(mode="after")
    def _deletion_fields_paired(self) -> "Customer":
        if (self.deleted_at is None) != (self.deleted_by is None):
            raise ValueError(
                f"Customer {self.id} is half deleted: deleted_at and "
                "deleted_by must both be set or both be null."
            )
        return self

    @property
    def is_trashed(self) -> bool:
        return self.deleted_at is not None


class CustomerCreate(BaseModel):
    """Validated input for creating a customer."""

    full_name: str = Field(min_length=1)
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address_city: Optional[str] = None
    lead_status: LeadStatus = LeadStatus.NEW_LEAD
    interest_level: Optional[InterestLevel] = None
    assigned_showroom_id: Optional[str] = None
    assigned_salesperson_id: Optional[str] = None
    purchase_amount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class CustomerFilters(BaseModel):
    """Filters accepted by the active-customer listing.

    Every combination is applied on top of the active-only restriction,
    never instead of it.
    """

    q: Optional[str] = None
    lead_status: Optional[LeadStatus] = None
    interest_level: Optional[InterestLevel] = None
    location: Optional[str] = None
    showroom_id: Optional[str] = None
    salesperson_id: Optional[str] = None


class CustomerScope(BaseModel):
    """Which active customers a role may see.

    An empty scope is unrestricted (admin).  ``salesperson_ids`` limits
    the listing to customers assigned to those salespeople (a manager's
    team; an empty tuple matches nothing).  ``showroom_id`` limits it to
    one showroom.
    """

    salesperson_ids: Optional[tuple[str, ...]] = None
    showroom_id: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def matches_nothing(self) -> bool:
        return self.salesperson_ids is not None and not self.salesperson_ids


class PersonRef(BaseModel):
    """Display slice of a referenced profile or showroom."""

    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


class DeletedCustomer(BaseModel):
    """A trashed customer as listed in the admin trash."""

    id: str
    full_name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    deleted_at: datetime
    deleted_by: str
    deleted_by_admin: Optional[PersonRef] = None
    assigned_showroom: Optional[PersonRef] = None
    salesperson: Optional[PersonRef] = None
    purchase_amount: Optional[Decimal] = None
