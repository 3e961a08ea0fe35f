"""
Centralized SQLite Schema Initialization.

Defines the canonical schema of the local store (a mirror of the hosted
Supabase tables the CRM core touches) and provides a single entry-point,
:func:`initialize_schema`, that creates all required tables idempotently.
A ``schema_version`` table records the version the store was built at.

Versioning
~~~~~~~~~~
- A store below :data:`CURRENT_SCHEMA_VERSION` gets every table from
  :data:`_TABLE_DEFINITIONS` in one shot; each statement is
  ``IF NOT EXISTS``.
- Table creation and the version bump share one SQLite transaction.  On
  failure the store rolls back and the next startup retries.

Referential rules mirrored from the hosted schema:
    - Every dependent table references ``customers(id)`` **without**
      ``ON DELETE CASCADE``; a customer row can only be removed after its
      appointments, tasks, escalations and sales transactions are gone.
    - ``transaction_items`` cascade from ``sales_transactions``.
    - ``customers`` carries a CHECK that ``deleted_at`` and ``deleted_by``
      are both NULL or both set.

Usage::

    from showroom_crm.schema import initialize_schema

    initialize_schema(db.sqlite, StructuredLogger(name="schema"))
"""

from __future__ import annotations

import sqlite3

from showroom_crm.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

# ---------------------------------------------------------------------------
# Schema version -- bump this whenever the table definitions change.
# ---------------------------------------------------------------------------
CURRENT_SCHEMA_VERSION: int = 1

# ---------------------------------------------------------------------------
# DDL statements for every table in the local database.
# ---------------------------------------------------------------------------
_TABLE_DEFINITIONS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- persistent structured audit trail ------------------------------------
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        details TEXT DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- profiles (one per auth user) -----------------------------------------
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE,
        full_name TEXT,
        role TEXT CHECK (role IN ('admin', 'manager', 'salesperson')),
        avatar_url TEXT,
        assigned_showroom_id TEXT,
        supervising_manager_id TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS showrooms (
        id TEXT PRIMARY KEY,
        name TEXT,
        location_address TEXT,
        status TEXT DEFAULT 'active',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- customers (soft-deletable) -------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS customers (
        id TEXT PRIMARY KEY,
        full_name TEXT NOT NULL,
        email TEXT,
        phone_number TEXT,
        address_city TEXT,
        lead_status TEXT NOT NULL DEFAULT 'New Lead',
        interest_level TEXT,
        assigned_showroom_id TEXT,
        assigned_salesperson_id TEXT,
        purchase_amount TEXT,
        notes TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        deleted_at TEXT,
        deleted_by TEXT,
        CHECK ((deleted_at IS NULL) = (deleted_by IS NULL))
    )
    """,
    # -- dependents (no independent soft-delete state) ------------------------
    """
    CREATE TABLE IF NOT EXISTS appointments (
        id TEXT PRIMARY KEY,
        customer_id TEXT NOT NULL REFERENCES customers(id),
        salesperson_id TEXT,
        appointment_datetime TEXT,
        status TEXT DEFAULT 'Scheduled',
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        customer_id TEXT REFERENCES customers(id),
        title TEXT NOT NULL DEFAULT '',
        status TEXT DEFAULT 'To Do',
        priority TEXT DEFAULT 'Medium',
        assigned_to_id TEXT,
        due_date TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS escalations (
        id TEXT PRIMARY KEY,
        customer_id TEXT REFERENCES customers(id),
        subject TEXT NOT NULL DEFAULT '',
        status TEXT DEFAULT 'Open',
        priority TEXT DEFAULT 'Medium',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sales_transactions (
        id TEXT PRIMARY KEY,
        customer_id TEXT NOT NULL REFERENCES customers(id),
        salesperson_id TEXT,
        total_amount TEXT,
        transaction_date TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transaction_items (
        id TEXT PRIMARY KEY,
        transaction_id TEXT NOT NULL
            REFERENCES sales_transactions(id) ON DELETE CASCADE,
        product_name TEXT,
        quantity INTEGER DEFAULT 1,
        unit_price TEXT
    )
    """,
    # -- Indexes --------------------------------------------------------------
    "CREATE INDEX IF NOT EXISTS idx_customers_deleted_at ON customers(deleted_at)",
    "CREATE INDEX IF NOT EXISTS idx_appointments_customer_id ON appointments(customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_customer_id ON tasks(customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_escalations_customer_id ON escalations(customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_sales_transactions_customer_id ON sales_transactions(customer_id)",
]


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _ensure_version_table(conn: sqlite3.Connection) -> None:
    """Create the ``schema_version`` table if it does not yet exist."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            version INTEGER NOT NULL,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.commit()


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the current schema version, or ``0`` if unset."""
    cursor: sqlite3.Cursor = conn.execute(
        "SELECT version FROM schema_version WHERE id = 1"
    )
    row: tuple[int] | None = cursor.fetchone()
    return row[0] if row is not None else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Upsert the single-row version tracker to *version*.

    Does **not** commit; the caller owns the transaction.
    """
    conn.execute(
        """
        INSERT INTO schema_version (id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                      applied_at = CURRENT_TIMESTAMP
        """,
        (version,),
    )


def _create_all_tables(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Execute every DDL statement in :data:`_TABLE_DEFINITIONS`.

    Does **not** commit; the caller owns the transaction.
    """
    for ddl in _TABLE_DEFINITIONS:
        conn.execute(ddl)
    logger.info(
        f"All {len(_TABLE_DEFINITIONS)} schema statements applied successfully."
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Ensure the local SQLite database matches the current schema version.

    Workflow:
        1. Guarantee the ``schema_version`` table exists.
        2. Read the stored version number (``0`` for a fresh database).
        3. If it equals or exceeds :data:`CURRENT_SCHEMA_VERSION`, return.
        4. Otherwise create every table, bump the version and commit,
           all in one transaction.

    Called on every startup; fully idempotent.
    """
    _ensure_version_table(conn)
    current: int = _get_schema_version(conn)

    if current >= CURRENT_SCHEMA_VERSION:
        logger.info(f"Schema is up to date (version {current}).")
        return

    logger.info(
        f"Upgrading schema from version {current} "
        f"to {CURRENT_SCHEMA_VERSION} …"
    )

    try:
        _create_all_tables(conn, logger)
        _set_schema_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except Exception:
        conn.rollback()
        logger.error(
            f"Schema initialisation failed, rolled back to version {current}."
        )
        raise

    logger.info(f"Schema initialised at version {CURRENT_SCHEMA_VERSION}.")
