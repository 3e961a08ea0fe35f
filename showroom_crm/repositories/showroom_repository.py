"""
Showroom Repository.

Name lookups for the showrooms customers are assigned to.
"""

from __future__ import annotations

from typing import Iterable, Optional

from showroom_crm.database import DatabaseManager
from showroom_crm.logger import StructuredLogger
from showroom_crm.repositories.base_repository import BaseRepository


class ShowroomRepository(BaseRepository):
    """Data access layer for showrooms."""

    TABLE = "showrooms"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get_names(self, showroom_ids: Iterable[str]) -> dict[str, Optional[str]]:
        """Map each known showroom id to its name.  Unknown ids are absent."""
        ids = sorted({sid for sid in showroom_ids if sid})
        if not ids:
            return {}

        def _supabase() -> dict[str, Optional[str]]:
            response = (
                self.supabase.table(self.TABLE)
                .select("id, name")
                .in_("id", ids)
                .execute()
            )
            return {row["id"]: row.get("name") for row in response.data or []}

        def _sqlite() -> dict[str, Optional[str]]:
            placeholders = ", ".join("?" for _ in ids)
            rows = self.sqlite.execute(
                f"SELECT id, name FROM {self.TABLE} WHERE id IN ({placeholders})",
                ids,
            ).fetchall()
            return {row["id"]: row["name"] for row in rows}

        return self._execute(
            _supabase, _sqlite, operation_name="get_names (showrooms)",
        )

    def create(self, showroom_id: str, name: str, location_address: str = "") -> None:
        data = {"id": showroom_id, "name": name, "location_address": location_address}

        def _supabase() -> None:
            self.supabase.table(self.TABLE).insert(data).execute()

        def _sqlite() -> None:
            self.sqlite.execute(
                f"INSERT INTO {self.TABLE} (id, name, location_address) "
                "VALUES (:id, :name, :location_address)",
                data,
            )
            self._commit()

        self._execute(_supabase, _sqlite, operation_name="create (showrooms)")
