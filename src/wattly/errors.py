"""Exception hierarchy shared by every billing component."""

from __future__ import annotations

from typing import Any


class BillingError(Exception):
    """Base class for all errors raised by the engine."""

    status_code = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": type(self).__name__, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(BillingError):
    """Input rejected before any state was touched."""

    status_code = 422


class InvalidTransitionError(ValidationError):
    """Invoice status change not allowed from the current status."""


class UnreadableSourceError(BillingError):
    """A load-curve source could not be read at all."""

    status_code = 400


class ConfigurationError(BillingError):
    """Missing or inconsistent organization setup (tariffs, IBAN, ...)."""

    status_code = 400


class ConflictError(BillingError):
    status_code = 409


class AuthorizationError(BillingError):
    status_code = 403


class NotFoundError(BillingError):
    status_code = 404
