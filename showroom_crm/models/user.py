"""
Profile and Principal Models.

``Profile`` mirrors a row of the ``profiles`` table (one per auth user).
``Principal`` is the authenticated identity the guard hands to the rest
of the system; it only exists for profiles that carry a role.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from showroom_crm.models.enums import Role


class Profile(BaseModel):
    """Represents a user profile.

    ``role`` is nullable in the store: a profile row is created by a
    trigger at sign-up and an administrator assigns the role afterwards.
    """

    id: str  # Supabase auth UUID
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[Role] = None
    avatar_url: Optional[str] = None
    assigned_showroom_id: Optional[str] = None
    supervising_manager_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "extra": "ignore"}


class Principal(BaseModel):
    """An authenticated identity holding exactly one role."""

    id: str
    role: Role
    display_name: str
    email: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def from_profile(cls, profile: Profile) -> Optional["Principal"]:
        """Build a principal from *profile*, or ``None`` if it has no role."""
        if profile.role is None:
            return None
        return cls(
            id=profile.id,
            role=profile.role,
            display_name=profile.full_name or profile.email or profile.id,
            email=profile.email,
        )
