"""
Showroom CRM - Test configuration (conftest.py)

Runs the CRM core against an in-memory SQLite store so no Supabase
project is needed.  Every test function gets a fresh database.
"""

import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Configuration is read once; pin it before anything imports get_config().
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_ANON_KEY"] = ""
os.environ["LOG_FILE"] = ""
os.environ["ERASE_MODE"] = "transactional"

import pytest

from showroom_crm.auth import SessionManager
from showroom_crm.database import DatabaseManager
from showroom_crm.logger import StructuredLogger
from showroom_crm.models import Customer, DependentKind, LeadStatus, Principal, Profile, Role
from showroom_crm.repositories import (
    CustomerRepository,
    DependentRecordRepository,
    ProfileRepository,
    ShowroomRepository,
)
from showroom_crm.schema import initialize_schema
from showroom_crm.services.customer_lifecycle import CustomerLifecycleService
from showroom_crm.services.erase_pipeline import ErasePipeline
from showroom_crm.services.identity_provider import LocalIdentityProvider
from showroom_crm.services.revalidation import RevalidationBus, ViewKey
from showroom_crm.services.session_guard import SessionGuard
from showroom_crm.views import build_default_registry

ADMIN_ID = "00000000-0000-0000-0000-00000000a001"
MANAGER_ID = "00000000-0000-0000-0000-00000000b001"
SALESPERSON_ID = "00000000-0000-0000-0000-00000000c001"
ROLELESS_ID = "00000000-0000-0000-0000-00000000d001"
SHOWROOM_ID = "00000000-0000-0000-0000-00000000e001"
OTHER_SALESPERSON_ID = "00000000-0000-0000-0000-00000000c002"
OTHER_SHOWROOM_ID = "00000000-0000-0000-0000-00000000e002"


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def logger():
    return StructuredLogger(name="showroom_crm.tests", log_file="")


@pytest.fixture(scope="function")
def db(logger):
    """Fresh in-memory store with the full schema."""
    manager = DatabaseManager(
        supabase_url="",
        supabase_key="",
        sqlite_path=":memory:",
        logger=logger,
    )
    initialize_schema(manager.sqlite, logger)
    try:
        yield manager
    finally:
        manager.close()


@pytest.fixture(scope="function")
def profiles(db, logger):
    return ProfileRepository(db=db, logger=logger)


@pytest.fixture(scope="function")
def customers(db, logger):
    return CustomerRepository(db=db, logger=logger)


@pytest.fixture(scope="function")
def dependents(db, logger):
    return DependentRecordRepository(db=db, logger=logger)


@pytest.fixture(scope="function")
def showrooms(db, logger):
    return ShowroomRepository(db=db, logger=logger)


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def seeded(profiles, showrooms):
    """One profile per role, one without a role, two showrooms.

    Sam sells at Downtown under Max; Olga sells at Uptown with no manager.
    """
    for user_id, email, name, role, showroom_id, manager_id in (
        (ADMIN_ID, "ana.admin@example.com", "Ana Admin", Role.ADMIN, None, None),
        (MANAGER_ID, "max.manager@example.com", "Max Manager", Role.MANAGER, None, None),
        (SALESPERSON_ID, "sam.sales@example.com", "Sam Sales", Role.SALESPERSON,
         SHOWROOM_ID, MANAGER_ID),
        (OTHER_SALESPERSON_ID, "olga.sales@example.com", "Olga Sales", Role.SALESPERSON,
         OTHER_SHOWROOM_ID, None),
        (ROLELESS_ID, "new.hire@example.com", "New Hire", None, None, None),
    ):
        profiles.upsert(Profile(
            id=user_id, email=email, full_name=name, role=role,
            assigned_showroom_id=showroom_id, supervising_manager_id=manager_id,
        ))
    showrooms.create(SHOWROOM_ID, "Downtown Showroom", "12 Main Street")
    showrooms.create(OTHER_SHOWROOM_ID, "Uptown Showroom", "80 Hill Road")


@pytest.fixture(scope="function")
def admin(seeded):
    return Principal(id=ADMIN_ID, role=Role.ADMIN, display_name="Ana Admin")


@pytest.fixture(scope="function")
def manager(seeded):
    return Principal(id=MANAGER_ID, role=Role.MANAGER, display_name="Max Manager")


@pytest.fixture(scope="function")
def salesperson(seeded):
    return Principal(id=SALESPERSON_ID, role=Role.SALESPERSON, display_name="Sam Sales")


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def make_customer(customers, seeded):
    """Factory inserting a customer; pass ``trashed=True`` for a trashed one."""
    def _make(customer_id, full_name="Jane Buyer", trashed=False, deleted_at=None, **fields):
        data = {
            "email": f"{customer_id}@example.com",
            "phone_number": "555-0100",
            "address_city": "Springfield",
            "lead_status": LeadStatus.QUALIFIED,
            "assigned_showroom_id": SHOWROOM_ID,
            "assigned_salesperson_id": SALESPERSON_ID,
            "purchase_amount": Decimal("24500.00"),
            **fields,
        }
        if trashed:
            data["deleted_at"] = deleted_at or datetime.now(timezone.utc) - timedelta(hours=1)
            data["deleted_by"] = ADMIN_ID
        return customers.create(Customer(id=customer_id, full_name=full_name, **data))

    return _make


@pytest.fixture(scope="function")
def add_dependents(dependents):
    """Attach *counts[kind]* records of each kind to a customer."""
    def _add(customer_id, counts=None):
        counts = counts or {
            DependentKind.APPOINTMENT: 2,
            DependentKind.TASK: 3,
            DependentKind.ESCALATION: 1,
            DependentKind.SALES_TRANSACTION: 2,
        }
        for kind, count in counts.items():
            for _ in range(count):
                dependents.insert(kind, customer_id)
        return counts

    return _add


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def bus(logger):
    return RevalidationBus(logger=logger)


@pytest.fixture(scope="function")
def invalidated(bus):
    """Every ViewKey invalidated during the test, in order."""
    seen = []
    for key in ViewKey:
        bus.subscribe(key, seen.append)
    return seen


@pytest.fixture(scope="function")
def make_lifecycle(db, customers, dependents, profiles, showrooms, bus, logger):
    def _make(mode="transactional"):
        pipeline = ErasePipeline(
            db=db,
            customers=customers,
            dependents=dependents,
            logger=logger,
            mode=mode,
        )
        return CustomerLifecycleService(
            customers=customers,
            profiles=profiles,
            showrooms=showrooms,
            pipeline=pipeline,
            revalidator=bus,
            logger=logger,
        )

    return _make


@pytest.fixture(scope="function")
def lifecycle(make_lifecycle):
    return make_lifecycle()


@pytest.fixture(scope="function")
def provider(logger):
    return LocalIdentityProvider(logger=logger)


@pytest.fixture(scope="function")
def session(logger):
    return SessionManager(logger=logger)


@pytest.fixture(scope="function")
def guard(session, provider, profiles, logger, seeded):
    guard = SessionGuard(
        session=session,
        provider=provider,
        profiles=profiles,
        views=build_default_registry(logger),
        logger=logger,
        resolve_timeout_s=5.0,
    )
    unsubscribe = guard.observe()
    yield guard
    unsubscribe()
