"""
Repository Layer Package.

Provides data-access abstractions over Supabase (hosted) and SQLite (local).
All database operations flow through repositories; services never access
db.supabase or db.sqlite directly.

Usage:
    from showroom_crm.repositories.customer_repository import CustomerRepository
    from showroom_crm.repositories.user_repository import ProfileRepository
"""

from showroom_crm.repositories.base_repository import BaseRepository, StoreError, is_transient
from showroom_crm.repositories.customer_repository import CustomerRepository
from showroom_crm.repositories.dependent_repository import DependentRecordRepository
from showroom_crm.repositories.showroom_repository import ShowroomRepository
from showroom_crm.repositories.user_repository import ProfileRepository

__all__ = [
    "BaseRepository",
    "StoreError",
    "is_transient",
    "CustomerRepository",
    "DependentRecordRepository",
    "ShowroomRepository",
    "ProfileRepository",
]
