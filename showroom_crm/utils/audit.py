"""
Structured Audit Logging Utility.

Every customer lifecycle transition is recorded as a structured JSON
object: once on the log stream and once in the local ``audit_log``
table that backs the admin audit screen.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from showroom_crm.database import DatabaseManager
from showroom_crm.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event", "persist_audit_event"]

# Flat scalar values only; nested structures are not audit material.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
    db: Optional[DatabaseManager] = None,
) -> AuditEvent:
    """Log a structured JSON audit event, with optional SQLite persistence.

    Always emits a structured JSON log line via *logger*.  When *db* is
    provided, also writes the event to the ``audit_log`` table.  A failed
    insert is logged as a warning and does not undo the audited action,
    which has already happened by the time this is called.

    Args:
        logger: The logger instance to write to.
        action: What happened (e.g. ``"CUSTOMER_TRASHED"``).
        entity_type: Type of entity affected (e.g. ``"Customer"``).
        entity_id: Primary key of the affected entity.
        user_id: ID of the principal who performed the action.
        details: Optional additional context.
        db: Optional store whose SQLite ``audit_log`` table receives the event.

    Returns:
        The validated event.
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))

    if db is not None:
        try:
            persist_audit_event(db, event)
        except sqlite3.Error as db_err:
            logger.warning(
                "Failed to persist audit event to SQLite: %s", db_err
            )
    return event


def persist_audit_event(db: DatabaseManager, event: AuditEvent) -> None:
    """Write *event* to the SQLite ``audit_log`` table.

    Holds ``db.write_lock`` so the insert never lands inside another
    thread's open batch.  Inside the caller's own batch the row commits
    or rolls back with it.
    """
    with db.write_lock:
        db.sqlite.execute(
            """
            INSERT INTO audit_log (timestamp, action, entity_type, entity_id, user_id, details)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                event.timestamp,
                event.action,
                event.entity_type,
                event.entity_id,
                event.user_id,
                json.dumps(event.details, default=str),
            ),
        )
        if not db.in_batch:
            db.sqlite.commit()
