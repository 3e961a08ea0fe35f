"""
Showroom CRM Admin Command-Line Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema, signs the operator in and runs one customer
command behind the session guard.  Every subsystem is wired here; there
are no module-level globals.

Usage::

    python main.py --email admin@example.com trash
    python main.py --email admin@example.com delete <customer-id>
    python main.py --as <profile-id> customers --q smith   # local store
"""

from __future__ import annotations

import argparse
import atexit
import getpass
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from showroom_crm.auth import SessionManager
from showroom_crm.config import get_config
from showroom_crm.database import DatabaseManager
from showroom_crm.logger import StructuredLogger, get_logger
from showroom_crm.models.auth_models import AccessOutcome, SessionPhase
from showroom_crm.models.customer import CustomerFilters
from showroom_crm.models.enums import InterestLevel, LeadStatus
from showroom_crm.models.service_models import LifecycleResult
from showroom_crm.schema import initialize_schema
from showroom_crm.services import ServiceContainer, create_services
from showroom_crm.services.access_policy import home_path
from showroom_crm.services.identity_provider import (
    IdentityProvider,
    LocalIdentityProvider,
    SupabaseIdentityProvider,
)

# View each command is guarded by.
_COMMAND_VIEWS: dict[str, str] = {
    "customers": "admin.customers",
    "trash": "admin.customers.trash",
    "delete": "admin.customers",
    "restore": "admin.customers.trash",
    "erase": "admin.customers.trash",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="showroom-crm",
        description="Administer showroom customers from the command line.",
    )
    parser.add_argument("--email", help="Sign in with this email (Supabase).")
    parser.add_argument(
        "--as", dest="as_user", metavar="PROFILE_ID",
        help="Act as this profile id (local store only).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("login", help="Sign in and show the resolved role.")

    customers = sub.add_parser("customers", help="List active customers.")
    customers.add_argument("--q", help="Search name, email or phone.")
    customers.add_argument("--status", choices=[s.value for s in LeadStatus])
    customers.add_argument("--interest", choices=[i.value for i in InterestLevel])
    customers.add_argument("--location", help="City substring.")
    customers.add_argument("--showroom", help="Assigned showroom id.")
    customers.add_argument("--salesperson", help="Assigned salesperson id.")

    sub.add_parser("trash", help="List customers in the trash.")
    for name, help_text in (
        ("delete", "Move a customer to the trash."),
        ("restore", "Restore a customer from the trash."),
        ("erase", "Permanently erase a trashed customer."),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("customer_id")
    return parser


def _sign_in(
    args: argparse.Namespace,
    provider: IdentityProvider,
    logger: StructuredLogger,
) -> bool:
    if isinstance(provider, SupabaseIdentityProvider):
        if not args.email:
            print("--email is required when Supabase is configured.", file=sys.stderr)
            return False
        password = os.environ.get("SHOWROOM_CRM_PASSWORD") or getpass.getpass("Password: ")
        result = provider.sign_in_with_password(args.email, password)
        if not result.success:
            print(result.error_message, file=sys.stderr)
            return False
        return True

    if isinstance(provider, LocalIdentityProvider):
        if not args.as_user:
            print("--as PROFILE_ID is required against the local store.", file=sys.stderr)
            return False
        provider.sign_in(args.as_user)
        return True

    logger.error("Unsupported identity provider %s", type(provider).__name__)
    return False


def _report(result: LifecycleResult, success_message: str) -> int:
    if result.success:
        print(success_message)
        return 0
    print(f"Error [{result.error_code}]: {result.error_message}", file=sys.stderr)
    if result.is_retryable:
        print("The operation can be retried.", file=sys.stderr)
    return 1


def run_command(args: argparse.Namespace, services: ServiceContainer) -> int:
    """Run the parsed command for the signed-in principal."""
    guard = services["session_guard"]
    if guard.state.phase is SessionPhase.RESOLVING:
        guard.resolve()

    principal = guard.current_principal
    if principal is None:
        print("Not signed in, or the account has no role.", file=sys.stderr)
        return 2

    if args.command == "login":
        print(f"Signed in as {principal.display_name} ({principal.role}).")
        print(f"Home: {home_path(principal.role)}")
        return 0

    decision = guard.authorize_view(_COMMAND_VIEWS[args.command])
    if decision.outcome is not AccessOutcome.GRANTED:
        print(f"Access denied; go to {decision.redirect_path}", file=sys.stderr)
        return 2

    lifecycle = services["lifecycle_service"]

    if args.command == "customers":
        result = lifecycle.list_active(principal, CustomerFilters(
            q=args.q,
            lead_status=args.status,
            interest_level=args.interest,
            location=args.location,
            showroom_id=args.showroom,
            salesperson_id=args.salesperson,
        ))
        if result.success:
            for c in result.data or []:
                print(f"{c.id}  {c.full_name:<30} {c.lead_status:<14} {c.email or ''}")
        return _report(result, f"{len(result.data or [])} active customer(s).")

    if args.command == "trash":
        result = lifecycle.list_trash(principal)
        if result.success:
            for d in result.data or []:
                admin = d.deleted_by_admin.name if d.deleted_by_admin else d.deleted_by
                print(f"{d.id}  {d.full_name:<30} deleted {d.deleted_at:%Y-%m-%d %H:%M} by {admin}")
        return _report(result, f"{len(result.data or [])} customer(s) in the trash.")

    if args.command == "delete":
        return _report(
            lifecycle.soft_delete(args.customer_id, principal),
            "Customer moved to trash.",
        )
    if args.command == "restore":
        return _report(
            lifecycle.restore(args.customer_id, principal),
            "Customer restored.",
        )
    return _report(
        lifecycle.permanently_erase(args.customer_id, principal),
        "Customer permanently deleted.",
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Application entry point: wire dependencies and run one command."""
    args = build_parser().parse_args(argv)
    logger: StructuredLogger = get_logger("main")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager (Supabase when configured, SQLite otherwise)
    # ------------------------------------------------------------------
    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=Path(config.SQLITE_PATH),
        logger=StructuredLogger(name="database"),
    )
    atexit.register(db.close)

    # ------------------------------------------------------------------
    # 3. SQLite schema (idempotent)
    # ------------------------------------------------------------------
    initialize_schema(db.sqlite, StructuredLogger(name="schema"))

    # ------------------------------------------------------------------
    # 4. Session, identity provider and services
    # ------------------------------------------------------------------
    session = SessionManager(logger=get_logger("session"))
    provider: IdentityProvider
    if db.is_online:
        provider = SupabaseIdentityProvider(db.supabase, get_logger("auth"))
    else:
        provider = LocalIdentityProvider(get_logger("auth"))

    services = create_services(db=db, config=config, session=session, provider=provider)
    unsubscribe = services["session_guard"].observe()

    try:
        if not _sign_in(args, provider, logger):
            return 2
        return run_command(args, services)
    finally:
        unsubscribe()
        db.close()


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
