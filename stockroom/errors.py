"""Typed failures raised by the stock services.

Routes translate these into JSON responses (see ``routes/errors.py``); the
services themselves never format responses.
"""

from __future__ import annotations


class StockroomError(Exception):
    """Base class for expected, user-correctable failures."""

    status_code = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)
        self.message = str(self)


class NotFound(StockroomError):
    """Requested record does not exist."""

    status_code = 404


class InsufficientStock(StockroomError):
    """Withdrawal exceeds the available quantity."""

    status_code = 409

    def __init__(self, item_id: int, requested: int, available: int):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient quantity for item {item_id}: "
            f"requested {requested}, available {available}."
        )


class InvalidState(StockroomError):
    """Operation is not allowed in the record's current state."""

    status_code = 409


class ValidationError(StockroomError):
    """Malformed input."""

    status_code = 400

    def __init__(self, message: str | None = None, errors: list[str] | None = None):
        self.errors = list(errors or [])
        if message is None and self.errors:
            message = self.errors[0]
        super().__init__(message)
