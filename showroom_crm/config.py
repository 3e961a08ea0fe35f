"""
Application Configuration.

Pydantic Settings model for the Showroom CRM core.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Literal, Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase (hosted store + identity provider) ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # --- Local store (used when Supabase is not configured) ---
    SQLITE_PATH: str = "showroom_crm_local.db"

    # --- Customer lifecycle ---
    # "transactional" erases a customer and its dependents atomically;
    # "sequential" keeps already-deleted dependents on a mid-way failure.
    ERASE_MODE: Literal["transactional", "sequential"] = "transactional"
    ERASE_RPC_NAME: str = "erase_customer_cascade"

    # --- Session guard ---
    LOGIN_PATH: str = "/login"
    RESOLVE_TIMEOUT_S: float = 15.0

    # --- Logging ---
    LOG_FILE: str = "showroom_crm.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when the hosted store is not configured.

        Without Supabase credentials every repository runs against the
        local SQLite database, which is fine for development and tests
        but never what a deployed dashboard wants.
        """
        _log = logging.getLogger("showroom_crm.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty; using the local SQLite store at %s.",
                self.SQLITE_PATH,
            )

        return self


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern so the fast path never takes the lock.
    Prefer constructor injection of ``AppConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
