"""
Showroom CRM - Customer lifecycle tests

Covered operations:
    soft_delete        - active -> trashed
    restore            - trashed -> active
    permanently_erase  - trashed -> gone (dependents first)
    list_active / list_trash / create_customer (role scoped)
"""

import sqlite3

import pytest

from showroom_crm.models import (
    CustomerCreate,
    CustomerFilters,
    DependentKind,
    LifecycleErrorCode,
    Principal,
    Profile,
    Role,
)
from showroom_crm.models.enums import ERASE_ORDER
from showroom_crm.repositories.base_repository import StoreError
from showroom_crm.services.customer_lifecycle import CustomerLifecycleService
from showroom_crm.services.erase_pipeline import ErasePipeline
from showroom_crm.services.revalidation import ViewKey

from conftest import (
    ADMIN_ID,
    MANAGER_ID,
    OTHER_SALESPERSON_ID,
    OTHER_SHOWROOM_ID,
    ROLELESS_ID,
    SALESPERSON_ID,
    SHOWROOM_ID,
)


def _raw_row(db, customer_id):
    return db.sqlite.execute(
        "SELECT * FROM customers WHERE id = ?", (customer_id,)
    ).fetchone()


def _dependent_total(dependents, customer_id):
    return sum(dependents.count_for_customer(kind, customer_id) for kind in ERASE_ORDER)


class _HostedStore:
    """Stands in for a DatabaseManager with Supabase configured."""

    is_online = True


class TestSoftDelete:
    """Moving active customers to the trash."""

    def test_admin_soft_delete(self, lifecycle, make_customer, admin, db):
        """Both deletion fields are set together and the row is kept."""
        make_customer("cust-42")

        result = lifecycle.soft_delete("cust-42", admin)

        assert result.success, result.error_message
        assert result.data.deleted_by == ADMIN_ID
        assert result.data.deleted_at is not None
        row = _raw_row(db, "cust-42")
        assert row["deleted_at"] is not None
        assert row["deleted_by"] == ADMIN_ID

    def test_soft_deleted_customer_leaves_active_list_and_enters_trash(
        self, lifecycle, make_customer, admin,
    ):
        """After soft delete the customer is listed in the trash only."""
        make_customer("cust-42")
        make_customer("cust-43", full_name="Other Buyer")

        lifecycle.soft_delete("cust-42", admin)

        active_ids = [c.id for c in lifecycle.list_active(admin).data]
        trash_ids = [c.id for c in lifecycle.list_trash(admin).data]
        assert "cust-42" not in active_ids
        assert "cust-43" in active_ids
        assert trash_ids == ["cust-42"]

    def test_salesperson_cannot_soft_delete(self, lifecycle, make_customer, salesperson, db):
        """Non-admins get UNAUTHORIZED and nothing changes."""
        make_customer("cust-42")

        result = lifecycle.soft_delete("cust-42", salesperson)

        assert not result.success
        assert result.error_code is LifecycleErrorCode.UNAUTHORIZED
        assert _raw_row(db, "cust-42")["deleted_at"] is None

    def test_claimed_admin_role_is_not_trusted(self, lifecycle, make_customer, seeded, db):
        """The role is re-read from the profile store, not taken from the caller."""
        make_customer("cust-42")
        impostor = Principal(id=MANAGER_ID, role=Role.ADMIN, display_name="Max")

        result = lifecycle.soft_delete("cust-42", impostor)

        assert result.error_code is LifecycleErrorCode.UNAUTHORIZED
        assert _raw_row(db, "cust-42")["deleted_at"] is None

    def test_soft_delete_unknown_customer(self, lifecycle, admin):
        result = lifecycle.soft_delete("does-not-exist", admin)
        assert result.error_code is LifecycleErrorCode.NOT_FOUND

    def test_soft_delete_already_trashed(self, lifecycle, make_customer, admin):
        """A second soft delete loses the race and reports NOT_FOUND."""
        make_customer("cust-42", trashed=True)

        result = lifecycle.soft_delete("cust-42", admin)

        assert result.error_code is LifecycleErrorCode.NOT_FOUND

    def test_soft_delete_invalidates_customer_views(
        self, lifecycle, make_customer, admin, invalidated,
    ):
        make_customer("cust-42")

        lifecycle.soft_delete("cust-42", admin)

        assert set(invalidated) == {
            ViewKey.ACTIVE_CUSTOMERS, ViewKey.ADMIN_DASHBOARD, ViewKey.TRASH,
        }

    def test_soft_delete_writes_audit_row(self, lifecycle, make_customer, admin, db):
        make_customer("cust-42")

        lifecycle.soft_delete("cust-42", admin)

        row = db.sqlite.execute(
            "SELECT action, entity_id, user_id FROM audit_log"
        ).fetchone()
        assert tuple(row) == ("CUSTOMER_TRASHED", "cust-42", ADMIN_ID)

    def test_transient_profile_lookup_failure(self, lifecycle, make_customer, admin, profiles, monkeypatch, db):
        """An unreachable profile store is retryable and mutates nothing."""
        make_customer("cust-42")

        def _offline(user_id):
            raise StoreError("get_by_id (profiles)", ConnectionError("reset"), transient=True)

        monkeypatch.setattr(profiles, "get_by_id", _offline)
        result = lifecycle.soft_delete("cust-42", admin)

        assert result.error_code is LifecycleErrorCode.TRANSIENT_STORE_ERROR
        assert result.is_retryable
        assert _raw_row(db, "cust-42")["deleted_at"] is None

    def test_permanent_profile_lookup_failure_is_denied(
        self, lifecycle, make_customer, admin, profiles, monkeypatch,
    ):
        make_customer("cust-42")

        def _broken(user_id):
            raise StoreError("get_by_id (profiles)", ValueError("bad row"), transient=False)

        monkeypatch.setattr(profiles, "get_by_id", _broken)
        result = lifecycle.soft_delete("cust-42", admin)

        assert result.error_code is LifecycleErrorCode.UNAUTHORIZED


class TestRestore:
    """Returning trashed customers to the active set."""

    def test_soft_delete_then_restore_round_trip(self, lifecycle, make_customer, admin):
        """Restore brings back every visible field and clears the deletion pair."""
        original = make_customer("cust-42")

        lifecycle.soft_delete("cust-42", admin)
        result = lifecycle.restore("cust-42", admin)

        assert result.success, result.error_message
        restored = result.data
        assert restored.deleted_at is None
        assert restored.deleted_by is None
        fields = {"deleted_at", "deleted_by"}
        assert restored.model_dump(exclude=fields) == original.model_dump(exclude=fields)

    def test_restore_active_customer_fails(self, lifecycle, make_customer, admin, db):
        make_customer("cust-42")
        before = dict(_raw_row(db, "cust-42"))

        result = lifecycle.restore("cust-42", admin)

        assert result.error_code is LifecycleErrorCode.NOT_FOUND_IN_TRASH
        assert result.error_message == "Customer not found in trash."
        assert dict(_raw_row(db, "cust-42")) == before

    def test_manager_cannot_restore(self, lifecycle, make_customer, manager, db):
        make_customer("cust-42", trashed=True)

        result = lifecycle.restore("cust-42", manager)

        assert result.error_code is LifecycleErrorCode.UNAUTHORIZED
        assert _raw_row(db, "cust-42")["deleted_at"] is not None


class TestPermanentlyErase:
    """Dependent-first erase of trashed customers."""

    @pytest.mark.parametrize("mode", ["transactional", "sequential"])
    def test_erase_removes_customer_and_dependents(
        self, make_lifecycle, make_customer, add_dependents, admin, dependents, db, mode,
    ):
        lifecycle = make_lifecycle(mode)
        make_customer("cust-42", trashed=True)
        add_dependents("cust-42")
        make_customer("cust-43")
        add_dependents("cust-43", {DependentKind.TASK: 1})

        result = lifecycle.permanently_erase("cust-42", admin)

        assert result.success, result.error_message
        assert _raw_row(db, "cust-42") is None
        assert _dependent_total(dependents, "cust-42") == 0
        # Other customers' records are untouched.
        assert dependents.count_for_customer(DependentKind.TASK, "cust-43") == 1

    def test_erase_active_customer_fails_without_mutation(
        self, lifecycle, make_customer, add_dependents, admin, dependents, db,
    ):
        make_customer("cust-42")
        add_dependents("cust-42")

        result = lifecycle.permanently_erase("cust-42", admin)

        assert result.error_code is LifecycleErrorCode.NOT_FOUND_IN_TRASH
        assert _raw_row(db, "cust-42") is not None
        assert _dependent_total(dependents, "cust-42") == 8

    def test_salesperson_cannot_erase(self, lifecycle, make_customer, salesperson, db):
        make_customer("cust-42", trashed=True)

        result = lifecycle.permanently_erase("cust-42", salesperson)

        assert result.error_code is LifecycleErrorCode.UNAUTHORIZED
        assert _raw_row(db, "cust-42") is not None

    def test_sequential_partial_failure_then_retry(
        self, make_lifecycle, make_customer, add_dependents, admin, dependents, db, monkeypatch,
    ):
        """A failure at escalations keeps the customer trashed; a retry finishes."""
        lifecycle = make_lifecycle("sequential")
        make_customer("cust-42", trashed=True)
        add_dependents("cust-42")
        real_delete = dependents.delete_for_customer

        def _fail_on_escalations(kind, customer_id):
            if kind is DependentKind.ESCALATION:
                raise StoreError(
                    "delete_for_customer (escalations)",
                    sqlite3.OperationalError("disk I/O error"),
                    transient=False,
                )
            return real_delete(kind, customer_id)

        monkeypatch.setattr(dependents, "delete_for_customer", _fail_on_escalations)
        failed = lifecycle.permanently_erase("cust-42", admin)

        assert failed.error_code is LifecycleErrorCode.DEPENDENT_DELETION_FAILED
        assert failed.failed_kind is DependentKind.ESCALATION
        assert failed.error_message.startswith("Failed to delete customer escalations")
        assert failed.is_retryable
        assert dependents.count_for_customer(DependentKind.APPOINTMENT, "cust-42") == 0
        assert dependents.count_for_customer(DependentKind.TASK, "cust-42") == 0
        assert dependents.count_for_customer(DependentKind.ESCALATION, "cust-42") == 1
        assert _raw_row(db, "cust-42")["deleted_at"] is not None

        monkeypatch.setattr(dependents, "delete_for_customer", real_delete)
        retried = lifecycle.permanently_erase("cust-42", admin)

        assert retried.success, retried.error_message
        assert _raw_row(db, "cust-42") is None
        assert _dependent_total(dependents, "cust-42") == 0

    def test_transactional_failure_rolls_back_everything(
        self, lifecycle, make_customer, add_dependents, admin, dependents, db, monkeypatch,
    ):
        make_customer("cust-42", trashed=True)
        add_dependents("cust-42")
        real_delete = dependents.delete_for_customer

        def _fail_on_sales(kind, customer_id):
            if kind is DependentKind.SALES_TRANSACTION:
                raise StoreError(
                    "delete_for_customer (sales_transactions)",
                    sqlite3.OperationalError("database is locked"),
                    transient=True,
                )
            return real_delete(kind, customer_id)

        monkeypatch.setattr(dependents, "delete_for_customer", _fail_on_sales)
        result = lifecycle.permanently_erase("cust-42", admin)

        assert result.error_code is LifecycleErrorCode.DEPENDENT_DELETION_FAILED
        assert result.failed_kind is DependentKind.SALES_TRANSACTION
        assert _dependent_total(dependents, "cust-42") == 8
        assert _raw_row(db, "cust-42")["deleted_at"] is not None

    def test_hosted_cascade_failure_reports_store_error(
        self, customers, dependents, profiles, showrooms, bus, logger,
        make_customer, add_dependents, admin, db, monkeypatch,
    ):
        """The hosted function rolls back as a whole and names no failed kind."""
        make_customer("cust-42", trashed=True)
        add_dependents("cust-42")

        def _rpc_failed(customer_id, function_name):
            raise StoreError(
                f"rpc {function_name}", RuntimeError("function raised"), transient=False,
            )

        monkeypatch.setattr(customers, "erase_cascade_rpc", _rpc_failed)
        service = CustomerLifecycleService(
            customers=customers,
            profiles=profiles,
            showrooms=showrooms,
            pipeline=ErasePipeline(
                db=_HostedStore(), customers=customers, dependents=dependents, logger=logger,
            ),
            revalidator=bus,
            logger=logger,
        )

        result = service.permanently_erase("cust-42", admin)

        assert result.error_code is LifecycleErrorCode.STORE_ERROR
        assert result.failed_kind is None
        assert _raw_row(db, "cust-42")["deleted_at"] is not None
        assert _dependent_total(dependents, "cust-42") == 8

    def test_erase_invalidates_customer_views(
        self, lifecycle, make_customer, admin, invalidated,
    ):
        make_customer("cust-42", trashed=True)

        lifecycle.permanently_erase("cust-42", admin)

        assert ViewKey.TRASH in invalidated
        assert ViewKey.ADMIN_DASHBOARD in invalidated
        assert ViewKey.ACTIVE_CUSTOMERS in invalidated

    def test_failing_listener_does_not_undo_erase(
        self, lifecycle, make_customer, admin, bus, db,
    ):
        make_customer("cust-42", trashed=True)

        def _broken_listener(key):
            raise RuntimeError("view cache unavailable")

        bus.subscribe(ViewKey.TRASH, _broken_listener)
        result = lifecycle.permanently_erase("cust-42", admin)

        assert result.success
        assert _raw_row(db, "cust-42") is None


class TestListings:
    """Active and trash listings."""

    def test_trashed_customers_never_listed_active(self, lifecycle, make_customer, admin):
        """No filter combination brings a trashed customer back."""
        make_customer("cust-active", full_name="Jane Buyer")
        make_customer("cust-trashed", full_name="Jane Trashed", trashed=True)

        for filters in (
            None,
            CustomerFilters(q="Jane"),
            CustomerFilters(q="example.com"),
            CustomerFilters(location="Spring"),
            CustomerFilters(showroom_id=SHOWROOM_ID),
            CustomerFilters(salesperson_id=SALESPERSON_ID, q="555"),
        ):
            ids = [c.id for c in lifecycle.list_active(admin, filters).data]
            assert "cust-trashed" not in ids
            assert "cust-active" in ids

    def test_trash_is_admin_only(self, lifecycle, make_customer, manager):
        make_customer("cust-42", trashed=True)

        result = lifecycle.list_trash(manager)

        assert result.error_code is LifecycleErrorCode.UNAUTHORIZED

    def test_trash_is_enriched_and_newest_first(self, lifecycle, make_customer, admin):
        from datetime import datetime, timedelta, timezone

        now = datetime.now(timezone.utc)
        make_customer("cust-old", trashed=True, deleted_at=now - timedelta(days=2))
        make_customer("cust-new", trashed=True, deleted_at=now - timedelta(minutes=5))

        trash = lifecycle.list_trash(admin).data

        assert [d.id for d in trash] == ["cust-new", "cust-old"]
        entry = trash[0]
        assert entry.deleted_by_admin.name == "Ana Admin"
        assert entry.assigned_showroom.name == "Downtown Showroom"
        assert entry.salesperson.name == "Sam Sales"


class TestCreateCustomer:
    """Creating customers."""

    def test_salesperson_customer_assigned_to_self(self, lifecycle, salesperson):
        result = lifecycle.create_customer(
            CustomerCreate(full_name="Walk-in Buyer"), salesperson,
        )

        assert result.success, result.error_message
        assert result.data.assigned_salesperson_id == SALESPERSON_ID
        assert result.data.assigned_showroom_id == SHOWROOM_ID
        assert not result.data.is_trashed

    def test_admin_customer_keeps_explicit_assignment(self, lifecycle, admin):
        result = lifecycle.create_customer(
            CustomerCreate(full_name="Fleet Buyer", assigned_salesperson_id=SALESPERSON_ID),
            admin,
        )

        assert result.data.assigned_salesperson_id == SALESPERSON_ID
        assert [c.id for c in lifecycle.list_active(admin).data] == [result.data.id]

    def test_create_invalidates_active_views(self, lifecycle, manager, invalidated):
        lifecycle.create_customer(CustomerCreate(full_name="Lead"), manager)

        assert invalidated == [ViewKey.ACTIVE_CUSTOMERS, ViewKey.ADMIN_DASHBOARD]

    def test_salesperson_assignment_cannot_be_redirected(self, lifecycle, salesperson):
        """A salesperson's customer lands with them, whatever the input says."""
        result = lifecycle.create_customer(
            CustomerCreate(
                full_name="Walk-in Buyer",
                assigned_salesperson_id=OTHER_SALESPERSON_ID,
                assigned_showroom_id=OTHER_SHOWROOM_ID,
            ),
            salesperson,
        )

        assert result.data.assigned_salesperson_id == SALESPERSON_ID
        assert result.data.assigned_showroom_id == SHOWROOM_ID

    def test_salesperson_without_showroom_cannot_create(
        self, lifecycle, salesperson, admin, profiles,
    ):
        profiles.upsert(Profile(
            id=SALESPERSON_ID, email="sam.sales@example.com", full_name="Sam Sales",
            role=Role.SALESPERSON,
        ))

        result = lifecycle.create_customer(CustomerCreate(full_name="Walk-in"), salesperson)

        assert result.error_code is LifecycleErrorCode.NO_SHOWROOM_ASSIGNED
        assert lifecycle.list_active(admin).data == []

    def test_roleless_profile_cannot_create(self, lifecycle, seeded):
        """The role is re-read; a claimed role does not help."""
        claimant = Principal(id=ROLELESS_ID, role=Role.SALESPERSON, display_name="New Hire")

        result = lifecycle.create_customer(CustomerCreate(full_name="Lead"), claimant)

        assert result.error_code is LifecycleErrorCode.UNAUTHORIZED


class TestRoleScopedListing:
    """Each role sees only its own slice of the active customers."""

    @pytest.fixture
    def spread(self, make_customer):
        make_customer("c-sam", full_name="Sam Client")
        make_customer("c-downtown", full_name="Walk-in Client", assigned_salesperson_id=None)
        make_customer(
            "c-olga", full_name="Olga Client",
            assigned_salesperson_id=OTHER_SALESPERSON_ID,
            assigned_showroom_id=OTHER_SHOWROOM_ID,
        )
        make_customer("c-sam-trashed", full_name="Gone Client", trashed=True)

    @staticmethod
    def _ids(result):
        assert result.success, result.error_message
        return sorted(c.id for c in result.data)

    def test_admin_sees_every_active_customer(self, lifecycle, admin, spread):
        assert self._ids(lifecycle.list_active(admin)) == ["c-downtown", "c-olga", "c-sam"]

    def test_manager_sees_supervised_salespeople_only(self, lifecycle, manager, spread):
        assert self._ids(lifecycle.list_active(manager)) == ["c-sam"]

    def test_manager_filters_never_widen_the_team(self, lifecycle, manager, spread):
        filters = CustomerFilters(salesperson_id=OTHER_SALESPERSON_ID)

        assert self._ids(lifecycle.list_active(manager, filters)) == []

    def test_manager_without_team_sees_nothing(self, lifecycle, profiles, spread):
        profiles.upsert(Profile(
            id="mgr-2", email="mia.manager@example.com", full_name="Mia Manager",
            role=Role.MANAGER,
        ))
        mia = Principal(id="mgr-2", role=Role.MANAGER, display_name="Mia Manager")

        assert self._ids(lifecycle.list_active(mia)) == []

    def test_salesperson_sees_own_showroom(self, lifecycle, salesperson, spread):
        assert self._ids(lifecycle.list_active(salesperson)) == ["c-downtown", "c-sam"]

    def test_other_showroom_salesperson(self, lifecycle, seeded, spread):
        olga = Principal(id=OTHER_SALESPERSON_ID, role=Role.SALESPERSON, display_name="Olga")

        assert self._ids(lifecycle.list_active(olga)) == ["c-olga"]

    def test_salesperson_filters_never_leave_the_showroom(self, lifecycle, salesperson, spread):
        filters = CustomerFilters(showroom_id=OTHER_SHOWROOM_ID)

        assert self._ids(lifecycle.list_active(salesperson, filters)) == []

    def test_claimed_admin_role_is_scoped_by_stored_role(self, lifecycle, seeded, spread):
        impostor = Principal(id=SALESPERSON_ID, role=Role.ADMIN, display_name="Sam")

        assert self._ids(lifecycle.list_active(impostor)) == ["c-downtown", "c-sam"]

    def test_salesperson_without_showroom(self, lifecycle, salesperson, profiles, spread):
        profiles.upsert(Profile(
            id=SALESPERSON_ID, email="sam.sales@example.com", full_name="Sam Sales",
            role=Role.SALESPERSON,
        ))

        result = lifecycle.list_active(salesperson)

        assert result.error_code is LifecycleErrorCode.NO_SHOWROOM_ASSIGNED

    def test_roleless_profile_is_denied(self, lifecycle, seeded, spread):
        claimant = Principal(id=ROLELESS_ID, role=Role.ADMIN, display_name="New Hire")

        result = lifecycle.list_active(claimant)

        assert result.error_code is LifecycleErrorCode.UNAUTHORIZED
        assert result.data is None
