"""
Customer Repository.

Handles all customer data access.  Two query families are kept apart by
construction:

- *active* queries go through :meth:`CustomerRepository._active_query` /
  :meth:`CustomerRepository._active_where`, which always carry
  ``deleted_at IS NULL`` and the caller's role scope;
- *trash* queries go through :meth:`CustomerRepository._trashed_query` /
  :data:`_TRASHED_WHERE`.

No public method builds an unfiltered customer query, so no call site can
forget the soft-delete restriction.

The state-changing methods are single conditional statements: they only
touch a row that is in the expected state and report whether they did.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from showroom_crm.database import DatabaseManager
from showroom_crm.logger import StructuredLogger
from showroom_crm.models.customer import Customer, CustomerFilters, CustomerScope
from showroom_crm.repositories.base_repository import BaseRepository
from showroom_crm.utils.string_helpers import like_pattern, sanitize_postgrest_value

_ACTIVE_WHERE = "deleted_at IS NULL"
_TRASHED_WHERE = "deleted_at IS NOT NULL"

_INSERT_COLUMNS: tuple[str, ...] = (
    "id", "full_name", "email", "phone_number", "address_city",
    "lead_status", "interest_level", "assigned_showroom_id",
    "assigned_salesperson_id", "purchase_amount", "notes",
    "created_at", "updated_at", "deleted_at", "deleted_by",
)


class CustomerRepository(BaseRepository):
    """Data access layer for Customer entities."""

    TABLE = "customers"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    # ------------------------------------------------------------------
    # Query roots
    # ------------------------------------------------------------------

    def _active_query(self, scope: Optional[CustomerScope] = None):
        query = self.supabase.table(self.TABLE).select("*").is_("deleted_at", "null")
        if scope is not None:
            if scope.salesperson_ids is not None:
                query = query.in_("assigned_salesperson_id", list(scope.salesperson_ids))
            if scope.showroom_id is not None:
                query = query.eq("assigned_showroom_id", scope.showroom_id)
        return query

    @staticmethod
    def _active_where(scope: Optional[CustomerScope] = None) -> tuple[list[str], list[str]]:
        clauses: list[str] = [_ACTIVE_WHERE]
        params: list[str] = []
        if scope is not None:
            if scope.salesperson_ids is not None:
                placeholders = ", ".join("?" for _ in scope.salesperson_ids)
                clauses.append(f"assigned_salesperson_id IN ({placeholders})")
                params.extend(scope.salesperson_ids)
            if scope.showroom_id is not None:
                clauses.append("assigned_showroom_id = ?")
                params.append(scope.showroom_id)
        return clauses, params

    def _trashed_query(self):
        return self.supabase.table(self.TABLE).select("*").not_.is_("deleted_at", "null")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_active(self, customer_id: str) -> Optional[Customer]:
        """Fetch an active customer by id, or ``None``."""
        def _supabase() -> Optional[Customer]:
            response = self._active_query().eq("id", customer_id).execute()
            return self._first(response.data)

        def _sqlite() -> Optional[Customer]:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ? AND {_ACTIVE_WHERE}",
                (customer_id,),
            ).fetchone()
            return Customer(**dict(row)) if row else None

        return self._execute(
            _supabase, _sqlite, operation_name="get_active (customers)",
        )

    def get_trashed(self, customer_id: str) -> Optional[Customer]:
        """Fetch a trashed customer by id, or ``None``."""
        def _supabase() -> Optional[Customer]:
            response = self._trashed_query().eq("id", customer_id).execute()
            return self._first(response.data)

        def _sqlite() -> Optional[Customer]:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ? AND {_TRASHED_WHERE}",
                (customer_id,),
            ).fetchone()
            return Customer(**dict(row)) if row else None

        return self._execute(
            _supabase, _sqlite, operation_name="get_trashed (customers)",
        )

    def list_active(
        self,
        filters: Optional[CustomerFilters] = None,
        scope: Optional[CustomerScope] = None,
    ) -> list[Customer]:
        """List active customers matching *filters*, newest first.

        *scope* restricts the rows before any filter applies; no filter
        widens it.
        """
        filters = filters or CustomerFilters()
        if scope is not None and scope.matches_nothing:
            return []

        def _supabase() -> list[Customer]:
            query = self._active_query(scope)
            if filters.q:
                term = sanitize_postgrest_value(filters.q)
                if term:
                    query = query.or_(
                        f"full_name.ilike.%{term}%,"
                        f"email.ilike.%{term}%,"
                        f"phone_number.ilike.%{term}%"
                    )
            if filters.lead_status:
                query = query.eq("lead_status", filters.lead_status.value)
            if filters.interest_level:
                query = query.eq("interest_level", filters.interest_level.value)
            if filters.location:
                location = sanitize_postgrest_value(filters.location)
                if location:
                    query = query.ilike("address_city", f"%{location}%")
            if filters.showroom_id:
                query = query.eq("assigned_showroom_id", filters.showroom_id)
            if filters.salesperson_id:
                query = query.eq("assigned_salesperson_id", filters.salesperson_id)
            response = query.order("created_at", desc=True).execute()
            return [Customer(**row) for row in response.data or []]

        def _sqlite() -> list[Customer]:
            clauses, params = self._active_where(scope)
            if filters.q and filters.q.strip():
                pattern = like_pattern(filters.q.strip())
                clauses.append(
                    "(full_name LIKE ? ESCAPE '\\' OR email LIKE ? ESCAPE '\\' "
                    "OR phone_number LIKE ? ESCAPE '\\')"
                )
                params.extend([pattern, pattern, pattern])
            if filters.lead_status:
                clauses.append("lead_status = ?")
                params.append(filters.lead_status.value)
            if filters.interest_level:
                clauses.append("interest_level = ?")
                params.append(filters.interest_level.value)
            if filters.location and filters.location.strip():
                clauses.append("address_city LIKE ? ESCAPE '\\'")
                params.append(like_pattern(filters.location.strip()))
            if filters.showroom_id:
                clauses.append("assigned_showroom_id = ?")
                params.append(filters.showroom_id)
            if filters.salesperson_id:
                clauses.append("assigned_salesperson_id = ?")
                params.append(filters.salesperson_id)

            rows = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE {' AND '.join(clauses)} "
                "ORDER BY created_at DESC",
                params,
            ).fetchall()
            return [Customer(**dict(row)) for row in rows]

        return self._execute(
            _supabase, _sqlite, operation_name="list_active (customers)",
        )

    def list_trashed(self) -> list[Customer]:
        """List trashed customers, most recently deleted first."""
        def _supabase() -> list[Customer]:
            response = self._trashed_query().order("deleted_at", desc=True).execute()
            return [Customer(**row) for row in response.data or []]

        def _sqlite() -> list[Customer]:
            rows = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE {_TRASHED_WHERE} "
                "ORDER BY deleted_at DESC"
            ).fetchall()
            return [Customer(**dict(row)) for row in rows]

        return self._execute(
            _supabase, _sqlite, operation_name="list_trashed (customers)",
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, customer: Customer) -> Customer:
        """Insert a new customer row."""
        now = datetime.now(timezone.utc)
        customer = customer.model_copy(update={
            "id": customer.id or str(uuid.uuid4()),
            "created_at": customer.created_at or now,
            "updated_at": now,
        })
        data = customer.model_dump(mode="json", include=set(_INSERT_COLUMNS))

        def _supabase() -> Customer:
            response = self.supabase.table(self.TABLE).insert(data).execute()
            return self._first(response.data) or customer

        def _sqlite() -> Customer:
            columns = ", ".join(_INSERT_COLUMNS)
            placeholders = ", ".join(f":{col}" for col in _INSERT_COLUMNS)
            self.sqlite.execute(
                f"INSERT INTO {self.TABLE} ({columns}) VALUES ({placeholders})",
                data,
            )
            self._commit()
            return customer

        created = self._execute(
            _supabase, _sqlite, operation_name="create (customers)",
        )
        self._logger.info("Customer created: %s", created.id)
        return created

    def mark_deleted(
        self, customer_id: str, deleted_at: datetime, deleted_by: str,
    ) -> Optional[Customer]:
        """Move an active customer to the trash in one statement.

        Both soft-delete fields are written together.  Returns the
        updated customer, or ``None`` when no active row had that id.
        """
        stamp = deleted_at.isoformat()

        def _supabase() -> Optional[Customer]:
            response = (
                self.supabase.table(self.TABLE)
                .update({"deleted_at": stamp, "deleted_by": deleted_by})
                .eq("id", customer_id)
                .is_("deleted_at", "null")
                .execute()
            )
            return self._first(response.data)

        def _sqlite() -> Optional[Customer]:
            cursor = self.sqlite.execute(
                f"""
                UPDATE {self.TABLE}
                SET deleted_at = ?, deleted_by = ?
                WHERE id = ? AND {_ACTIVE_WHERE}
                """,
                (stamp, deleted_by, customer_id),
            )
            self._commit()
            if cursor.rowcount == 0:
                return None
            return self._fetch_any(customer_id)

        return self._execute(
            _supabase, _sqlite, operation_name="mark_deleted (customers)",
        )

    def clear_deletion(self, customer_id: str) -> Optional[Customer]:
        """Return a trashed customer to the active set in one statement.

        Returns the restored customer, or ``None`` when no trashed row
        had that id.
        """
        def _supabase() -> Optional[Customer]:
            response = (
                self.supabase.table(self.TABLE)
                .update({"deleted_at": None, "deleted_by": None})
                .eq("id", customer_id)
                .not_.is_("deleted_at", "null")
                .execute()
            )
            return self._first(response.data)

        def _sqlite() -> Optional[Customer]:
            cursor = self.sqlite.execute(
                f"""
                UPDATE {self.TABLE}
                SET deleted_at = NULL, deleted_by = NULL
                WHERE id = ? AND {_TRASHED_WHERE}
                """,
                (customer_id,),
            )
            self._commit()
            if cursor.rowcount == 0:
                return None
            return self._fetch_any(customer_id)

        return self._execute(
            _supabase, _sqlite, operation_name="clear_deletion (customers)",
        )

    def delete_trashed(self, customer_id: str) -> bool:
        """Remove a trashed customer row for good.

        Only a trashed row is ever removed.  Returns ``False`` when no
        trashed row had that id.
        """
        def _supabase() -> bool:
            response = (
                self.supabase.table(self.TABLE)
                .delete()
                .eq("id", customer_id)
                .not_.is_("deleted_at", "null")
                .execute()
            )
            return bool(response.data)

        def _sqlite() -> bool:
            cursor = self.sqlite.execute(
                f"DELETE FROM {self.TABLE} WHERE id = ? AND {_TRASHED_WHERE}",
                (customer_id,),
            )
            self._commit()
            return cursor.rowcount > 0

        return self._execute(
            _supabase, _sqlite, operation_name="delete_trashed (customers)",
        )

    def erase_cascade_rpc(self, customer_id: str, function_name: str) -> bool:
        """Erase a trashed customer and its dependents in one hosted transaction.

        Calls the ``erase_customer_cascade`` Postgres function, which
        returns ``false`` without touching anything when the customer is
        not in the trash.  Hosted store only.
        """
        def _supabase() -> bool:
            response = self.supabase.rpc(
                function_name, {"p_customer_id": customer_id},
            ).execute()
            return bool(response.data)

        def _sqlite() -> bool:
            raise RuntimeError(
                f"{function_name} is a hosted-store function; the local "
                "store erases inside DatabaseManager.batch_write()."
            )

        return self._execute(
            _supabase, _sqlite, operation_name=f"rpc {function_name}",
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fetch_any(self, customer_id: str) -> Optional[Customer]:
        """Re-read a row after a local write (SQLite has no RETURNING here)."""
        row = self.sqlite.execute(
            f"SELECT * FROM {self.TABLE} WHERE id = ?", (customer_id,)
        ).fetchone()
        return Customer(**dict(row)) if row else None

    @staticmethod
    def _first(rows: Optional[list[dict]]) -> Optional[Customer]:
        return Customer(**rows[0]) if rows else None
