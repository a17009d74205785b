"""Custom exception classes for product grouping.

This module defines the hierarchy of exceptions raised by the repositories
and the grouping service. Each exception maps to a specific error code
defined in errors.py.
"""

from typing import Any


class GroupingError(Exception):
    """Base exception for all grouping errors.

    All custom exceptions inherit from this base class and include
    an error_code that maps to the error catalog.

    Attributes:
        error_code: Code from the error catalog (e.g., "GRP_001")
        details: Additional context about the error (for logging)
        http_status: HTTP status code to return (default: 500)
    """

    http_status_default = 500

    def __init__(
        self,
        error_code: str,
        details: dict[str, Any] | None = None,
        http_status: int | None = None,
    ):
        """Initialize the exception.

        Args:
            error_code: Error code from errors.py
            details: Additional error context (not shown to users)
            http_status: HTTP status code (defaults per subclass)
        """
        self.error_code = error_code
        self.details = details or {}
        self.http_status = http_status or self.http_status_default
        super().__init__(error_code)

    @property
    def retryable(self) -> bool:
        return False


class ValidationError(GroupingError):
    """Raised when a request is rejected before any write.

    This includes:
    - Empty group names
    - Missing or unknown category choices
    - Merging a group that contains Global rows
    """

    http_status_default = 400


class NotFoundError(GroupingError):
    """Raised when a mapping, override or ledger entry does not exist for the owner."""

    http_status_default = 404


class ConflictError(GroupingError):
    """Raised on a uniqueness violation.

    Assign paths treat this as idempotent success; elsewhere it is
    reported as "already exists".
    """

    http_status_default = 409


class PermissionDeniedError(GroupingError):
    """Raised when a write to shared (Global) rows is denied by policy.

    Kept distinct from TransientError so partial-success reports attribute
    the failure correctly: retrying will not help.
    """

    http_status_default = 403


class TransientError(GroupingError):
    """Raised when the store is unavailable.

    Safe to retry the specific failed row operation. The service never
    retries on its own.
    """

    http_status_default = 503

    @property
    def retryable(self) -> bool:
        return True
