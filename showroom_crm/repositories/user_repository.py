"""
Profile Repository.

Read access to the ``profiles`` table: the profile store the session
guard and the lifecycle service consult for a principal's role.
"""

from __future__ import annotations

from typing import Iterable, Optional

from showroom_crm.database import DatabaseManager
from showroom_crm.logger import StructuredLogger
from showroom_crm.models.user import Profile
from showroom_crm.repositories.base_repository import BaseRepository


class ProfileRepository(BaseRepository):
    """Data access layer for Profile entities.

    Lookup failures raise ``StoreError``; an absent profile returns
    ``None``.  Callers deciding access treat both as "no role".
    """

    TABLE = "profiles"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get_by_id(self, user_id: str) -> Optional[Profile]:
        """Fetch a profile by primary key (the auth user id)."""
        def _supabase() -> Optional[Profile]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("id", user_id)
                .maybe_single()
                .execute()
            )
            if response is None or not response.data:
                return None
            return Profile(**response.data)

        def _sqlite() -> Optional[Profile]:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (user_id,)
            ).fetchone()
            return Profile(**dict(row)) if row else None

        return self._execute(
            _supabase, _sqlite, operation_name="get_by_id (profiles)",
        )

    def get_many(self, user_ids: Iterable[str]) -> dict[str, Profile]:
        """Fetch several profiles at once, keyed by id.  Unknown ids are absent."""
        ids = sorted({uid for uid in user_ids if uid})
        if not ids:
            return {}

        def _supabase() -> dict[str, Profile]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .in_("id", ids)
                .execute()
            )
            return {row["id"]: Profile(**row) for row in response.data or []}

        def _sqlite() -> dict[str, Profile]:
            placeholders = ", ".join("?" for _ in ids)
            rows = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id IN ({placeholders})", ids
            ).fetchall()
            return {row["id"]: Profile(**dict(row)) for row in rows}

        return self._execute(
            _supabase, _sqlite, operation_name="get_many (profiles)",
        )

    def list_supervised_salespeople(self, manager_id: str) -> list[str]:
        """Ids of the salespeople whose supervising manager is *manager_id*."""
        def _supabase() -> list[str]:
            response = (
                self.supabase.table(self.TABLE)
                .select("id")
                .eq("supervising_manager_id", manager_id)
                .eq("role", "salesperson")
                .execute()
            )
            return [row["id"] for row in response.data or []]

        def _sqlite() -> list[str]:
            rows = self.sqlite.execute(
                f"SELECT id FROM {self.TABLE} "
                "WHERE supervising_manager_id = ? AND role = 'salesperson' "
                "ORDER BY id",
                (manager_id,),
            ).fetchall()
            return [row["id"] for row in rows]

        return self._execute(
            _supabase, _sqlite,
            operation_name="list_supervised_salespeople (profiles)",
        )

    def upsert(self, profile: Profile) -> Profile:
        """Insert or replace a profile row (seeding and provisioning)."""
        data = profile.model_dump(
            mode="json", exclude={"created_at", "updated_at"},
        )

        def _supabase() -> Profile:
            response = self.supabase.table(self.TABLE).upsert(data).execute()
            return Profile(**response.data[0]) if response.data else profile

        def _sqlite() -> Profile:
            self.sqlite.execute(
                f"""
                INSERT INTO {self.TABLE}
                    (id, email, full_name, role, avatar_url,
                     assigned_showroom_id, supervising_manager_id)
                VALUES (:id, :email, :full_name, :role, :avatar_url,
                        :assigned_showroom_id, :supervising_manager_id)
                ON CONFLICT(id) DO UPDATE SET
                    email = excluded.email,
                    full_name = excluded.full_name,
                    role = excluded.role,
                    avatar_url = excluded.avatar_url,
                    assigned_showroom_id = excluded.assigned_showroom_id,
                    supervising_manager_id = excluded.supervising_manager_id,
                    updated_at = CURRENT_TIMESTAMP
                """,
                data,
            )
            self._commit()
            return profile

        return self._execute(
            _supabase, _sqlite, operation_name="upsert (profiles)",
        )
