"""
Customer Erase Pipeline.

Removes a trashed customer for good: first every dependent record, in
:data:`ERASE_ORDER`, then the customer row itself.  The steps run one
after another, never concurrently.

Two modes, chosen by ``ERASE_MODE``:

``transactional``
    All steps commit or none do.  On the local store they run inside
    ``DatabaseManager.batch_write()``; on Supabase the whole cascade is
    the ``erase_customer_cascade`` Postgres function.

``sequential``
    Each step commits on its own.  A failure leaves the earlier
    dependents deleted and the customer trashed; every step is
    idempotent, so re-running the erase finishes the job.
"""

from __future__ import annotations

from typing import Literal

from showroom_crm.database import DatabaseManager
from showroom_crm.logger import StructuredLogger
from showroom_crm.models.enums import ERASE_ORDER, DependentKind
from showroom_crm.repositories.base_repository import StoreError
from showroom_crm.repositories.customer_repository import CustomerRepository
from showroom_crm.repositories.dependent_repository import DependentRecordRepository
from showroom_crm.services.base_service import BaseService

EraseMode = Literal["transactional", "sequential"]


class DependentDeletionError(Exception):
    """Deleting one category of dependent records failed."""

    def __init__(self, kind: DependentKind, cause: StoreError) -> None:
        super().__init__(f"Failed to delete customer {kind.label}: {cause.cause}")
        self.kind = kind
        self.cause = cause


class CustomerNotInTrashError(Exception):
    """The customer was not in the trash when the erase reached it."""

    def __init__(self, customer_id: str) -> None:
        super().__init__(f"Customer {customer_id} is not in the trash.")
        self.customer_id = customer_id


class ErasePipeline(BaseService):
    """Runs the dependent-first erase of one customer."""

    def __init__(
        self,
        db: DatabaseManager,
        customers: CustomerRepository,
        dependents: DependentRecordRepository,
        logger: StructuredLogger,
        mode: EraseMode = "transactional",
        rpc_name: str = "erase_customer_cascade",
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._customers = customers
        self._dependents = dependents
        self._mode: EraseMode = mode
        self._rpc_name = rpc_name

    @property
    def mode(self) -> EraseMode:
        return self._mode

    def run(self, customer_id: str) -> dict[DependentKind, int]:
        """Erase *customer_id* and return the dependent rows removed per kind.

        The hosted transactional path reports no per-kind counts.

        Raises
        ------
        DependentDeletionError
            A dependent step failed; the customer row is untouched.
        CustomerNotInTrashError
            The customer left the trash before its row was removed.
        StoreError
            Removing the customer row itself failed, or the hosted
            cascade function failed.  The function rolls back as a whole
            and does not say which step broke, so that case carries no
            dependent kind.
        """
        if self._mode == "sequential":
            return self._run_steps(customer_id)

        if self._db.is_online:
            if not self._customers.erase_cascade_rpc(customer_id, self._rpc_name):
                raise CustomerNotInTrashError(customer_id)
            return {}

        with self._db.batch_write():
            if self._customers.get_trashed(customer_id) is None:
                raise CustomerNotInTrashError(customer_id)
            return self._run_steps(customer_id)

    def _run_steps(self, customer_id: str) -> dict[DependentKind, int]:
        removed: dict[DependentKind, int] = {}
        for kind in ERASE_ORDER:
            try:
                removed[kind] = self._dependents.delete_for_customer(kind, customer_id)
            except StoreError as exc:
                self._logger.error(
                    "Erase of customer %s stopped at %s: %s",
                    customer_id, kind.label, exc,
                    extra={"event": "ERASE_STEP_FAILED", "kind": kind.value},
                )
                raise DependentDeletionError(kind, exc) from exc

        if not self._customers.delete_trashed(customer_id):
            raise CustomerNotInTrashError(customer_id)
        return removed
