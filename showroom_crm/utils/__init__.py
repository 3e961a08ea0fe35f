"""Shared utility functions and models for the Showroom CRM core.

Convenience re-exports so consumers can import directly from
``showroom_crm.utils``.
"""

from showroom_crm.utils.audit import AuditEvent, log_audit_event
from showroom_crm.utils.string_helpers import like_pattern, sanitize_postgrest_value

__all__ = [
    "AuditEvent",
    "like_pattern",
    "log_audit_event",
    "sanitize_postgrest_value",
]
