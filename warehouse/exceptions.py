"""Typed errors raised by the warehouse services.

Every error carries a machine-readable ``code`` and the HTTP status the API
answers with, so routes never have to inspect messages::

    InventoryError
    +-- ValidationError        400
    +-- AuthenticationError    401
    +-- PermissionDenied       403
    +-- NotFound               404
    +-- ConflictError          409
        +-- ImmutableRecordError

Copyright (c) Bryn Gwalad 2025
"""

from typing import Any


class InventoryError(Exception):
    code: str = "INVENTORY_ERROR"
    status_code: int = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(InventoryError):
    """Malformed or out-of-range input (empty article, negative quantity, ...)."""

    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(InventoryError):
    code = "UNAUTHENTICATED"
    status_code = 401


class PermissionDenied(InventoryError):
    """Role or category check failed on a write path."""

    code = "PERMISSION_DENIED"
    status_code = 403


class NotFound(InventoryError):
    """Referenced record is absent, or hidden from the caller's category scope."""

    code = "NOT_FOUND"
    status_code = 404


class ConflictError(InventoryError):
    code = "CONFLICT"
    status_code = 409


class ImmutableRecordError(ConflictError):
    """An audit row (quantity history or scan log) was about to be modified."""

    code = "IMMUTABLE_RECORD"
