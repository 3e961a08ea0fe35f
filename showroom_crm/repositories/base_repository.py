"""
Base Repository.

Provides shared infrastructure for all repositories:
- DatabaseManager reference (Supabase + SQLite)
- Logger reference
- Backend selection: Supabase when configured, SQLite otherwise
- Translation of backend exceptions into ``StoreError``
"""

from __future__ import annotations

import sqlite3
from typing import Callable, TypeVar

import httpx
from supabase import Client as SupabaseClient

from showroom_crm.database import DatabaseManager
from showroom_crm.logger import StructuredLogger

T = TypeVar("T")


class StoreError(RuntimeError):
    """A store round-trip failed.

    Attributes
    ----------
    operation:
        Label of the repository operation, e.g. ``"mark_deleted (customers)"``.
    transient:
        ``True`` for network, timeout and lock failures where retrying the
        whole operation is safe.
    """

    def __init__(self, operation: str, cause: BaseException, transient: bool) -> None:
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause
        self.transient = transient


def is_transient(exc: BaseException) -> bool:
    """Classify *exc* as a retry-safe infrastructure failure."""
    if isinstance(exc, (ConnectionError, TimeoutError, httpx.TransportError)):
        return True
    if isinstance(exc, sqlite3.OperationalError):
        return "locked" in str(exc).lower() or "busy" in str(exc).lower()
    return False


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def db(self) -> DatabaseManager:
        return self._db

    @property
    def supabase(self) -> SupabaseClient:
        """Returns the Supabase client for hosted-store operations."""
        return self._db.supabase

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Returns the SQLite connection for local-store operations."""
        return self._db.sqlite

    @property
    def uses_supabase(self) -> bool:
        return self._db.is_online

    def _execute(
        self,
        supabase_op: Callable[[], T],
        sqlite_op: Callable[[], T],
        *,
        operation_name: str,
    ) -> T:
        """Run the operation against whichever store is configured.

        There is no fallback from one store to the other:
        the lifecycle checks preconditions against the same store it then
        mutates.

        Raises
        ------
        StoreError
            On any backend failure, classified as transient or not.
        """
        try:
            if self.uses_supabase:
                return supabase_op()
            with self._db.write_lock:
                try:
                    return sqlite_op()
                except Exception:
                    if not self._db.in_batch:
                        self.sqlite.rollback()
                    raise
        except StoreError:
            raise
        except Exception as exc:
            transient = is_transient(exc)
            self._logger.warning(
                "Store operation %s failed (%s): %s",
                operation_name,
                "transient" if transient else "permanent",
                exc,
            )
            raise StoreError(operation_name, exc, transient) from exc

    def _commit(self) -> None:
        """Commit the SQLite transaction unless a batch is active.

        When :meth:`DatabaseManager.batch_write` is active, this is a
        no-op and the batch commits (or rolls back) once on exit.
        """
        if not self._db.in_batch:
            self.sqlite.commit()
