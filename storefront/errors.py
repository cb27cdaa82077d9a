"""
Outcome types for storefront operations.

Domain functions raise these; the HTTP layer renders them as
``{"detail": ..., "code": ...}`` with the matching status code.
"""

from __future__ import annotations

from typing import Any


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, details: Any | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details is not None:
            out["details"] = self.details
        return out


class ValidationFailed(StorefrontError):
    """Required input missing or malformed; nothing was written."""

    code = "validation_failed"
    status_code = 422


class NotFound(StorefrontError):
    """A referenced order, product or offer does not exist."""

    code = "not_found"
    status_code = 404


class InsufficientStock(StorefrontError):
    """Not enough stock to reserve every line of an order."""

    code = "insufficient_stock"
    status_code = 409


class BackendUnavailable(StorefrontError):
    """The database could not complete the request."""

    code = "backend_unavailable"
    status_code = 503
