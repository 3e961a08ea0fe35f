"""
Business Logic Services Package.

Services depend on the Repository layer for data access and on the
shared ``SessionManager`` for the current principal.

The ``create_services()`` factory wires every repository and service together,
returning a typed dict that the application layer (CLI commands / views) can
consume without knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from showroom_crm.auth import SessionManager
from showroom_crm.config import AppConfig
from showroom_crm.database import DatabaseManager
from showroom_crm.logger import get_logger
from showroom_crm.repositories.customer_repository import CustomerRepository
from showroom_crm.repositories.dependent_repository import DependentRecordRepository
from showroom_crm.repositories.showroom_repository import ShowroomRepository
from showroom_crm.repositories.user_repository import ProfileRepository
from showroom_crm.services.customer_lifecycle import CustomerLifecycleService
from showroom_crm.services.erase_pipeline import ErasePipeline
from showroom_crm.services.identity_provider import IdentityProvider
from showroom_crm.services.revalidation import RevalidationBus
from showroom_crm.services.session_guard import SessionGuard
from showroom_crm.views import ViewRegistry, build_default_registry


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    session_guard: SessionGuard
    lifecycle_service: CustomerLifecycleService
    erase_pipeline: ErasePipeline
    revalidation_bus: RevalidationBus
    view_registry: ViewRegistry
    profile_repository: ProfileRepository
    customer_repository: CustomerRepository
    dependent_repository: DependentRecordRepository
    showroom_repository: ShowroomRepository


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    session: SessionManager,
    provider: IdentityProvider,
    views: Optional[ViewRegistry] = None,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    application entry-point calls this once at startup and passes the
    returned dict to commands / views as needed.

    Args:
        db: Initialised DatabaseManager (Supabase client and/or SQLite).
        config: Application configuration.
        session: The shared session state every view reads.
        provider: Identity provider the guard resolves sessions from.
        views: Protected view registry; the default areas when omitted.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("services")

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    profile_repo = ProfileRepository(db=db, logger=logger)
    customer_repo = CustomerRepository(db=db, logger=logger)
    dependent_repo = DependentRecordRepository(db=db, logger=logger)
    showroom_repo = ShowroomRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Guard
    # ------------------------------------------------------------------
    view_registry = views if views is not None else build_default_registry(logger)
    session_guard = SessionGuard(
        session=session,
        provider=provider,
        profiles=profile_repo,
        views=view_registry,
        logger=logger,
        login_path=config.LOGIN_PATH,
        resolve_timeout_s=config.RESOLVE_TIMEOUT_S,
    )

    # ------------------------------------------------------------------
    # 3. Customer lifecycle
    # ------------------------------------------------------------------
    revalidation_bus = RevalidationBus(logger=logger)
    erase_pipeline = ErasePipeline(
        db=db,
        customers=customer_repo,
        dependents=dependent_repo,
        logger=logger,
        mode=config.ERASE_MODE,
        rpc_name=config.ERASE_RPC_NAME,
    )
    lifecycle_service = CustomerLifecycleService(
        customers=customer_repo,
        profiles=profile_repo,
        showrooms=showroom_repo,
        pipeline=erase_pipeline,
        revalidator=revalidation_bus,
        logger=logger,
    )

    return ServiceContainer(
        session_guard=session_guard,
        lifecycle_service=lifecycle_service,
        erase_pipeline=erase_pipeline,
        revalidation_bus=revalidation_bus,
        view_registry=view_registry,
        profile_repository=profile_repo,
        customer_repository=customer_repo,
        dependent_repository=dependent_repo,
        showroom_repository=showroom_repo,
    )
