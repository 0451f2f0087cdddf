"""Domain errors raised by the sourcing services.

Every error derives from ``ValueError`` so callers that only care about
"the request was refused" can keep catching ``ValueError``; the API layer
uses ``code`` and ``details`` to build its responses.
"""
from __future__ import annotations

from typing import Any


class SourcingError(ValueError):
    code = "SOURCING_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def as_dict(self) -> dict[str, Any]:
        payload = {"detail": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ImportValidationError(SourcingError):
    """A single field of a single row (or form) failed validation."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, field: str = "", row: int | None = None):
        details = {"field": field}
        if row is not None:
            details["row"] = row
        super().__init__(message, details=details)
        self.field = field
        self.row = row


class SupplierRequiredError(SourcingError):
    code = "SUPPLIER_REQUIRED"


class NotFoundError(SourcingError):
    code = "NOT_FOUND"


class PersistenceError(SourcingError):
    """The database refused a write. Never retried here."""

    code = "PERSISTENCE_ERROR"
