"""
Dependent Record Repository.

Data access for the records that reference a customer and are removed
together with it: appointments, tasks, escalations and sales
transactions.  One repository serves all four kinds since the CRM core
only ever needs them by ``customer_id``.
"""

from __future__ import annotations

import uuid
from typing import Optional

from showroom_crm.database import DatabaseManager
from showroom_crm.logger import StructuredLogger
from showroom_crm.models.enums import DependentKind
from showroom_crm.repositories.base_repository import BaseRepository
from showroom_crm.utils.string_helpers import JsonValue


class DependentRecordRepository(BaseRepository):
    """Data access layer for customer-dependent records."""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def delete_for_customer(self, kind: DependentKind, customer_id: str) -> int:
        """Delete every *kind* record of a customer.

        Deleting nothing is a success, so a retried erase can walk the
        same steps again.  Returns the number of rows removed.
        """
        table = kind.value

        def _supabase() -> int:
            response = (
                self.supabase.table(table)
                .delete()
                .eq("customer_id", customer_id)
                .execute()
            )
            return len(response.data or [])

        def _sqlite() -> int:
            cursor = self.sqlite.execute(
                f"DELETE FROM {table} WHERE customer_id = ?", (customer_id,)
            )
            self._commit()
            return cursor.rowcount

        deleted = self._execute(
            _supabase, _sqlite, operation_name=f"delete_for_customer ({table})",
        )
        self._logger.debug(
            "Deleted %d %s of customer %s", deleted, kind.label, customer_id,
        )
        return deleted

    def count_for_customer(self, kind: DependentKind, customer_id: str) -> int:
        table = kind.value

        def _supabase() -> int:
            response = (
                self.supabase.table(table)
                .select("id", count="exact")
                .eq("customer_id", customer_id)
                .execute()
            )
            return response.count or 0

        def _sqlite() -> int:
            row = self.sqlite.execute(
                f"SELECT COUNT(*) FROM {table} WHERE customer_id = ?",
                (customer_id,),
            ).fetchone()
            return int(row[0])

        return self._execute(
            _supabase, _sqlite, operation_name=f"count_for_customer ({table})",
        )

    def insert(
        self,
        kind: DependentKind,
        customer_id: str,
        fields: Optional[dict[str, JsonValue]] = None,
    ) -> str:
        """Insert a *kind* record for a customer and return its id."""
        table = kind.value
        data: dict[str, JsonValue] = {
            "id": str(uuid.uuid4()),
            **(fields or {}),
            "customer_id": customer_id,
        }

        def _supabase() -> str:
            self.supabase.table(table).insert(data).execute()
            return str(data["id"])

        def _sqlite() -> str:
            columns = ", ".join(data)
            placeholders = ", ".join(f":{col}" for col in data)
            self.sqlite.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", data,
            )
            self._commit()
            return str(data["id"])

        return self._execute(
            _supabase, _sqlite, operation_name=f"insert ({table})",
        )
