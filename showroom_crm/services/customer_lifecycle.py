"""
Customer Lifecycle Service.

Moves customers between the three lifecycle states:

    active --soft_delete--> trashed --permanently_erase--> (gone)
    trashed --restore--> active

Every transition re-reads the acting principal's role from the profile
store and requires ``admin``; the role a caller claims is never trusted.
The active listing and creation re-read the profile as well and scope
customers to the actor's role.
Each operation returns a ``LifecycleResult`` and never raises for an
expected failure.  Successful transitions emit an audit event and
invalidate the views that list customers.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from showroom_crm.logger import StructuredLogger
from showroom_crm.models.customer import (
    Customer,
    CustomerCreate,
    CustomerFilters,
    CustomerScope,
    DeletedCustomer,
    PersonRef,
)
from showroom_crm.models.enums import Role
from showroom_crm.models.service_models import LifecycleErrorCode, LifecycleResult
from showroom_crm.models.user import Principal, Profile
from showroom_crm.repositories.base_repository import StoreError
from showroom_crm.repositories.customer_repository import CustomerRepository
from showroom_crm.repositories.showroom_repository import ShowroomRepository
from showroom_crm.repositories.user_repository import ProfileRepository
from showroom_crm.services.base_service import BaseService
from showroom_crm.services.erase_pipeline import (
    CustomerNotInTrashError,
    DependentDeletionError,
    ErasePipeline,
)
from showroom_crm.services.revalidation import Revalidator, ViewKey
from showroom_crm.utils.audit import log_audit_event

_UNAUTHORIZED_MESSAGE = "Unauthorized: Admin access required."
_NOT_FOUND_MESSAGE = "Customer not found."
_NOT_IN_TRASH_MESSAGE = "Customer not found in trash."
_NO_ROLE_MESSAGE = "Unauthorized: your account has no role."
_NO_SHOWROOM_MESSAGE = "You must be assigned to a showroom to work with customers."

_ALL_CUSTOMER_VIEWS: tuple[ViewKey, ...] = (
    ViewKey.ACTIVE_CUSTOMERS,
    ViewKey.ADMIN_DASHBOARD,
    ViewKey.TRASH,
)


class CustomerLifecycleService(BaseService):
    """Soft delete, restore and permanent erase of customers."""

    def __init__(
        self,
        customers: CustomerRepository,
        profiles: ProfileRepository,
        showrooms: ShowroomRepository,
        pipeline: ErasePipeline,
        revalidator: Revalidator,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._customers = customers
        self._profiles = profiles
        self._showrooms = showrooms
        self._pipeline = pipeline
        self._revalidator = revalidator

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def soft_delete(self, customer_id: str, actor: Principal) -> LifecycleResult[Customer]:
        """Move an active customer to the trash."""
        denied = self._require_admin(actor, "soft_delete")
        if denied is not None:
            return denied

        try:
            trashed = self._customers.mark_deleted(
                customer_id, datetime.now(timezone.utc), actor.id,
            )
        except StoreError as exc:
            return self._store_failure(exc, "Failed to delete customer")

        if trashed is None:
            return LifecycleResult.fail(LifecycleErrorCode.NOT_FOUND, _NOT_FOUND_MESSAGE)

        self._audit("CUSTOMER_TRASHED", customer_id, actor, {
            "full_name": trashed.full_name,
            "deleted_at": trashed.deleted_at.isoformat() if trashed.deleted_at else None,
        })
        self._revalidate(_ALL_CUSTOMER_VIEWS)
        return LifecycleResult.ok(trashed)

    def restore(self, customer_id: str, actor: Principal) -> LifecycleResult[Customer]:
        """Return a trashed customer to the active set."""
        denied = self._require_admin(actor, "restore")
        if denied is not None:
            return denied

        try:
            restored = self._customers.clear_deletion(customer_id)
        except StoreError as exc:
            return self._store_failure(exc, "Failed to restore customer")

        if restored is None:
            return LifecycleResult.fail(
                LifecycleErrorCode.NOT_FOUND_IN_TRASH, _NOT_IN_TRASH_MESSAGE,
            )

        self._audit("CUSTOMER_RESTORED", customer_id, actor, {
            "full_name": restored.full_name,
        })
        self._revalidate(_ALL_CUSTOMER_VIEWS)
        return LifecycleResult.ok(restored)

    def permanently_erase(self, customer_id: str, actor: Principal) -> LifecycleResult[str]:
        """Erase a trashed customer and every record that references it.

        Only a trashed customer can be erased.  When a dependent step
        fails the result names the failed kind and the customer stays in
        the trash; the operation can be retried.
        """
        denied = self._require_admin(actor, "permanently_erase")
        if denied is not None:
            return denied

        try:
            customer = self._customers.get_trashed(customer_id)
        except StoreError as exc:
            return self._store_failure(exc, "Failed to load customer")
        if customer is None:
            return LifecycleResult.fail(
                LifecycleErrorCode.NOT_FOUND_IN_TRASH, _NOT_IN_TRASH_MESSAGE,
            )

        try:
            removed = self._pipeline.run(customer_id)
        except DependentDeletionError as exc:
            return LifecycleResult.fail(
                LifecycleErrorCode.DEPENDENT_DELETION_FAILED,
                str(exc),
                failed_kind=exc.kind,
            )
        except CustomerNotInTrashError:
            return LifecycleResult.fail(
                LifecycleErrorCode.NOT_FOUND_IN_TRASH, _NOT_IN_TRASH_MESSAGE,
            )
        except StoreError as exc:
            return self._store_failure(exc, "Failed to permanently delete customer")

        self._audit("CUSTOMER_ERASED", customer_id, actor, {
            "full_name": customer.full_name,
            "erase_mode": self._pipeline.mode,
            **{f"removed_{kind.value}": count for kind, count in removed.items()},
        })
        self._revalidate(_ALL_CUSTOMER_VIEWS)
        return LifecycleResult.ok(customer_id)

    def create_customer(
        self, data: CustomerCreate, actor: Principal,
    ) -> LifecycleResult[Customer]:
        """Create an active customer.

        A salesperson's new customer is always assigned to them and to
        their showroom; a salesperson without a showroom cannot create
        customers.  Admins and managers keep the assignment they pass,
        with the showroom defaulting to their own.
        """
        profile, denied = self._verified_profile(actor, "create_customer", set(Role))
        if denied is not None:
            return denied

        fields = data.model_dump()
        if profile.role is Role.SALESPERSON:
            if not profile.assigned_showroom_id:
                return LifecycleResult.fail(
                    LifecycleErrorCode.NO_SHOWROOM_ASSIGNED, _NO_SHOWROOM_MESSAGE,
                )
            fields["assigned_salesperson_id"] = profile.id
            fields["assigned_showroom_id"] = profile.assigned_showroom_id
        elif not fields.get("assigned_showroom_id"):
            fields["assigned_showroom_id"] = profile.assigned_showroom_id

        try:
            created = self._customers.create(Customer(id=str(uuid.uuid4()), **fields))
        except StoreError as exc:
            return self._store_failure(exc, "Failed to create customer")

        self._audit("CUSTOMER_CREATED", created.id, actor, {
            "full_name": created.full_name,
            "assigned_salesperson_id": created.assigned_salesperson_id,
            "assigned_showroom_id": created.assigned_showroom_id,
        })
        self._revalidate((ViewKey.ACTIVE_CUSTOMERS, ViewKey.ADMIN_DASHBOARD))
        return LifecycleResult.ok(created)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_active(
        self, actor: Principal, filters: Optional[CustomerFilters] = None,
    ) -> LifecycleResult[list[Customer]]:
        """List the active customers *actor*'s role may see.

        Admins see every active customer, managers the customers of the
        salespeople they supervise, salespeople those of their showroom.
        Trashed customers never appear.
        """
        profile, denied = self._verified_profile(actor, "list_active", set(Role))
        if denied is not None:
            return denied

        if profile.role is Role.SALESPERSON and not profile.assigned_showroom_id:
            return LifecycleResult.fail(
                LifecycleErrorCode.NO_SHOWROOM_ASSIGNED, _NO_SHOWROOM_MESSAGE,
            )

        try:
            scope = self._scope_for(profile)
            return LifecycleResult.ok(self._customers.list_active(filters, scope))
        except StoreError as exc:
            return self._store_failure(exc, "Failed to load customers")

    def list_trash(self, actor: Principal) -> LifecycleResult[list[DeletedCustomer]]:
        """List trashed customers, most recently deleted first (admin only)."""
        denied = self._require_admin(actor, "list_trash")
        if denied is not None:
            return denied

        try:
            trashed = self._customers.list_trashed()
        except StoreError as exc:
            return self._store_failure(exc, "Failed to load deleted customers")

        people, showrooms = self._trash_lookups(trashed)
        return LifecycleResult.ok([
            DeletedCustomer(
                id=c.id,
                full_name=c.full_name,
                email=c.email,
                phone_number=c.phone_number,
                deleted_at=c.deleted_at,
                deleted_by=c.deleted_by,
                deleted_by_admin=_person_ref(people.get(c.deleted_by or "")),
                assigned_showroom=(
                    PersonRef(id=c.assigned_showroom_id, name=showrooms[c.assigned_showroom_id])
                    if c.assigned_showroom_id in showrooms else None
                ),
                salesperson=_person_ref(people.get(c.assigned_salesperson_id or "")),
                purchase_amount=c.purchase_amount,
            )
            for c in trashed
        ])

    def _trash_lookups(
        self, trashed: list[Customer],
    ) -> tuple[dict[str, Profile], dict[str, Optional[str]]]:
        """Display names for the trash.  A failed lookup only loses the names."""
        person_ids = {c.deleted_by for c in trashed if c.deleted_by}
        person_ids |= {c.assigned_salesperson_id for c in trashed if c.assigned_salesperson_id}
        showroom_ids = {c.assigned_showroom_id for c in trashed if c.assigned_showroom_id}
        try:
            people = self._profiles.get_many(person_ids)
            showrooms = self._showrooms.get_names(showroom_ids)
        except StoreError as exc:
            self._logger.warning("Trash enrichment unavailable: %s", exc)
            return {}, {}
        return people, showrooms

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_admin(
        self, actor: Principal, operation: str,
    ) -> Optional[LifecycleResult]:
        """Return ``None`` when *actor* is an admin, else the failure result."""
        _, denied = self._verified_profile(actor, operation, {Role.ADMIN})
        return denied

    def _verified_profile(
        self, actor: Principal, operation: str, roles: set[Role],
    ) -> tuple[Optional[Profile], Optional[LifecycleResult]]:
        """Re-read *actor*'s profile and check its role against *roles*.

        Returns ``(profile, None)`` on success and ``(None, failure)``
        otherwise.  The role the caller claims is never consulted.
        """
        try:
            profile = self._profiles.get_by_id(actor.id)
        except StoreError as exc:
            if exc.transient:
                return None, LifecycleResult.fail(
                    LifecycleErrorCode.TRANSIENT_STORE_ERROR,
                    "Could not verify your permissions. Please try again.",
                )
            return None, LifecycleResult.fail(
                LifecycleErrorCode.UNAUTHORIZED, _UNAUTHORIZED_MESSAGE,
            )

        if profile is None or profile.role not in roles:
            self._logger.warning(
                "Denied %s for %s", operation, actor.id,
                extra={"event": "LIFECYCLE_DENIED", "user_id": actor.id},
            )
            message = _UNAUTHORIZED_MESSAGE if roles == {Role.ADMIN} else _NO_ROLE_MESSAGE
            return None, LifecycleResult.fail(LifecycleErrorCode.UNAUTHORIZED, message)
        return profile, None

    def _scope_for(self, profile: Profile) -> CustomerScope:
        if profile.role is Role.MANAGER:
            team = self._profiles.list_supervised_salespeople(profile.id)
            return CustomerScope(salesperson_ids=tuple(team))
        if profile.role is Role.SALESPERSON:
            return CustomerScope(showroom_id=profile.assigned_showroom_id)
        return CustomerScope()

    def _store_failure(self, exc: StoreError, action: str) -> LifecycleResult:
        if exc.transient:
            return LifecycleResult.fail(
                LifecycleErrorCode.TRANSIENT_STORE_ERROR,
                f"{action}: the database is temporarily unavailable. Please try again.",
            )
        return LifecycleResult.fail(
            LifecycleErrorCode.STORE_ERROR, f"{action}: {exc.cause}",
        )

    def _audit(
        self,
        action: str,
        customer_id: str,
        actor: Principal,
        details: dict[str, str | int | None],
    ) -> None:
        log_audit_event(
            logger=self._logger,
            action=action,
            entity_type="Customer",
            entity_id=customer_id,
            user_id=actor.id,
            details={**details, "performed_by": actor.display_name},
            db=self._customers.db,
        )

    def _revalidate(self, keys: tuple[ViewKey, ...]) -> None:
        try:
            self._revalidator.invalidate(keys)
        except Exception:
            self._logger.error("View revalidation failed", exc_info=True)


def _person_ref(profile: Optional[Profile]) -> Optional[PersonRef]:
    if profile is None:
        return None
    return PersonRef(id=profile.id, name=profile.full_name, email=profile.email)

