"""Custom exception types for the service and API layers."""
from __future__ import annotations

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base app exception, rendered as ``{"error": message}`` with ``status_code``."""

    status_code = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """Missing or malformed request fields."""

    status_code = 400


class AuthenticationError(AppError):
    """Caller identity missing or not verifiable."""

    status_code = 401


class ForbiddenError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class PreconditionError(AppError):
    """An entity lacks a linked external id, plan or card the operation needs."""

    status_code = 400


class ProviderError(AppError):
    """Stripe rejected an operation; the message is the provider's own."""

    status_code = 500


class PersistenceError(AppError):
    """A store write failed, possibly after an external side effect already happened."""

    status_code = 500


class IntegrationError(AppError):
    """External integration call failure."""

    status_code = 500
