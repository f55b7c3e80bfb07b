"""
Custom Exception Classes for the Catalog Search Service

This module defines the error taxonomy used across the service so that
every failure reaches the client with a consistent status code, a
machine-readable error code and a message naming what went wrong.
"""

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in the error body"""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    HISTORY_NOT_FOUND = "RESOURCE_HISTORY_NOT_FOUND"
    PRODUCT_NOT_FOUND = "RESOURCE_PRODUCT_NOT_FOUND"
    CATALOG_UNAVAILABLE = "SERVICE_CATALOG_UNAVAILABLE"
    STORE_FAILURE = "SERVICE_STORE_FAILURE"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class CatalogSearchError(Exception):
    """Base exception class for all service errors"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Client Errors
# ============================================================================


class ValidationError(CatalogSearchError):
    """Raised when request input is malformed or out of range. Never retried."""

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=ErrorCode.VALIDATION_FAILED,
            details=error_details,
        )


class UnauthorizedError(CatalogSearchError):
    """Raised when no identity can be resolved for an operation that needs one"""

    def __init__(self, message: str = "No authenticated user or anonymous session could be resolved"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code=ErrorCode.AUTH_REQUIRED,
        )


class NotFoundOrForbiddenError(CatalogSearchError):
    """
    Raised when a history record is absent or belongs to someone else.

    Both cases produce the same response so that callers cannot test for
    the existence of other owners' records.
    """

    def __init__(self, resource_type: str = "Search history entry", resource_id: Any | None = None):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message = f"{resource_type} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=ErrorCode.HISTORY_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ProductNotFoundError(CatalogSearchError):
    """Raised when a product cannot be found in the current catalog"""

    def __init__(self, product_id: str):
        super().__init__(
            message=f"Product with id '{product_id}' not found",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=ErrorCode.PRODUCT_NOT_FOUND,
            details={"resource_type": "Product", "resource_id": product_id},
        )


# ============================================================================
# Collaborator Errors
# ============================================================================


class CatalogUnavailableError(CatalogSearchError):
    """Raised when the catalog collaborator is unreachable, times out or answers garbage"""

    def __init__(self, message: str = "The product catalog is currently unavailable", reason: str | None = None):
        details = {"reason": reason} if reason else {}
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=ErrorCode.CATALOG_UNAVAILABLE,
            details=details,
        )


class StoreFailureError(CatalogSearchError):
    """Raised when the persistence layer is unreachable or a store call times out"""

    def __init__(self, message: str = "A storage error occurred", operation: str | None = None):
        details = {"operation": operation} if operation else {}
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=ErrorCode.STORE_FAILURE,
            details=details,
        )
