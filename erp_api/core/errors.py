"""
Domain error taxonomy.

Services raise these; the exception handlers in erp_api.api.main turn them
into the standard error envelope with the matching HTTP status.
"""
from __future__ import annotations

from typing import Any, Optional


class ERPError(Exception):
    """Base class for errors that carry an HTTP status and a client-safe message."""

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ERPError):
    """Request is well-formed but violates a business rule on one or more fields."""

    status_code = 400
    error_type = "validation_error"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls("Validation failed", details=[{"field": field, "message": message}])


class AuthError(ERPError):
    status_code = 401
    error_type = "auth_error"


class PermissionDenied(ERPError):
    status_code = 403
    error_type = "forbidden"


class NotFound(ERPError):
    status_code = 404
    error_type = "not_found"


class Conflict(ERPError):
    status_code = 409
    error_type = "conflict"


class InvalidTransition(Conflict):
    """Target status is not reachable from the order's current status."""

    error_type = "invalid_transition"

    def __init__(self, current: str, target: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Cannot transition production order from '{current}' to '{target}'",
            details={"current_status": current, "target_status": target},
        )
        self.current = current
        self.target = target


class InsufficientStock(Conflict):
    """One or more items would go below zero stock."""

    error_type = "insufficient_stock"

    def __init__(self, shortages: list[dict[str, Any]]) -> None:
        super().__init__("Insufficient stock", details={"shortages": shortages})
        self.shortages = shortages


class RateLimited(ERPError):
    status_code = 429
    error_type = "rate_limited"

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message, details={"retry_after": retry_after})
        self.retry_after = retry_after
