"""
Service Layer Result Models.

Every customer lifecycle operation returns a ``LifecycleResult`` instead
of raising, so a caller cannot ignore a failure by forgetting an
``except`` clause.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

from showroom_crm.models.enums import DependentKind

T = TypeVar("T")

__all__ = [
    "LifecycleErrorCode",
    "LifecycleResult",
]


class LifecycleErrorCode(StrEnum):
    """Failure categories of the customer lifecycle."""

    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    NOT_FOUND_IN_TRASH = "not_found_in_trash"
    NO_SHOWROOM_ASSIGNED = "no_showroom_assigned"
    DEPENDENT_DELETION_FAILED = "dependent_deletion_failed"
    TRANSIENT_STORE_ERROR = "transient_store_error"
    STORE_ERROR = "store_error"


class LifecycleResult(BaseModel, Generic[T]):
    """
    Standard lifecycle return envelope.

    ``error_message`` is always fit to show to the operator.
    ``failed_kind`` names the dependent category whose deletion failed
    when ``error_code`` is ``DEPENDENT_DELETION_FAILED``.
    """

    success: bool
    data: Optional[T] = None
    error_code: Optional[LifecycleErrorCode] = None
    error_message: Optional[str] = None
    failed_kind: Optional[DependentKind] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "LifecycleResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        error_code: LifecycleErrorCode,
        error_message: str,
        failed_kind: Optional[DependentKind] = None,
    ) -> "LifecycleResult[T]":
        return cls(
            success=False,
            error_code=error_code,
            error_message=error_message,
            failed_kind=failed_kind,
        )

    @property
    def is_retryable(self) -> bool:
        """``True`` when re-invoking the same operation is safe and useful."""
        return self.error_code in (
            LifecycleErrorCode.TRANSIENT_STORE_ERROR,
            LifecycleErrorCode.DEPENDENT_DELETION_FAILED,
        )
