"""
Error types for the site engine.

This module defines every error kind the engine reports to its callers:
- SiteEngineError: Base exception
- ValidationError: Malformed or missing input (rejected before store access)
- AuthorizationError: Principal lacks role or tenant scope
- NotFoundError: Referenced node, tenant or product is absent
- ConflictError: A uniqueness or version condition failed
- StoreUnavailableError: The store failed for reasons unrelated to invariants

Invariants:
    - All errors inherit from SiteEngineError
    - Store-level exceptions never escape the core; they are translated
      into ConflictError or StoreUnavailableError
    - Each error carries a stable code and an HTTP status for the API layer
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .store.base import StoreError

logger = logging.getLogger(__name__)


class SiteEngineError(Exception):
    """Base exception for all site engine errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SITE_ENGINE_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready error body."""
        return {
            "error": self.message,
            "error_code": self.code,
            "details": self.details,
        }


class ValidationError(SiteEngineError):
    """Input validation failed.

    Raised when:
    - Tenant identifier is missing
    - Required field is missing or has the wrong type
    - A slug is empty after normalization or collides with a commerce prefix
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class AuthorizationError(SiteEngineError):
    """Principal is not allowed to perform the operation."""

    status_code = 403

    def __init__(
        self,
        message: str,
        subject_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="ACCESS_DENIED",
            details={"subject_id": subject_id, "tenant_id": tenant_id},
        )
        self.subject_id = subject_id
        self.tenant_id = tenant_id


class NotFoundError(SiteEngineError):
    """Resource not found.

    Raised when:
    - Content node doesn't exist
    - Route doesn't exist for a slug
    - Tenant or product doesn't exist
    """

    status_code = 404

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(SiteEngineError):
    """A uniqueness or concurrency condition failed.

    Raised when:
    - A slug is already occupied by a live route or a redirect
    - A tenant id is already in use
    - The stored version advanced since it was read
    """

    status_code = 409

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="CONFLICT",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class StoreUnavailableError(SiteEngineError):
    """The backing store failed.

    Transactions are all-or-nothing, so the whole operation is safe to retry.
    """

    status_code = 503

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="STORE_UNAVAILABLE",
            details={"operation": operation},
        )
        self.operation = operation


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate store failures that escaped the caller's own handling.

    Callers catch the store errors that carry meaning for them (failed
    conditions) inside this block; anything else becomes
    StoreUnavailableError.

    Example:
        >>> with store_errors("create_content"):
        ...     await store.transact_write(items)
    """
    try:
        yield
    except StoreError as e:
        logger.error(
            "Store operation failed",
            extra={"operation": operation, "error": str(e)},
        )
        raise StoreUnavailableError(f"Store unavailable during {operation}: {e}", operation) from e
