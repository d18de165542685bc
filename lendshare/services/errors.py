"""Typed failures raised by marketplace operations.

Every service operation either returns its value or raises exactly one
:class:`LendingError` subclass. ``reason`` is a stable code callers can branch
on; ``message`` is a sentence suitable for showing to the user.
"""

from __future__ import annotations

import sqlite3
from functools import wraps
from typing import Callable, TypeVar

F = TypeVar("F", bound=Callable)


class LendingError(Exception):
    """Base class for marketplace rule violations."""

    kind = "lending_error"
    status_code = 400

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "reason": self.reason, "message": self.message}


class ValidationError(LendingError):
    """Malformed input the caller can correct."""

    kind = "validation_error"
    status_code = 400


class AuthorizationError(LendingError):
    """The actor is not allowed to perform the operation."""

    kind = "authorization_error"
    status_code = 403


class NotFoundError(LendingError):
    kind = "not_found"
    status_code = 404


class StateConflictError(LendingError):
    """The operation does not fit the entity's current lifecycle state."""

    kind = "state_conflict"
    status_code = 409


class TransientInfrastructureError(LendingError):
    """Storage failure that may succeed on a later retry."""

    kind = "transient_infrastructure_error"
    status_code = 503


def wraps_storage_errors(func: F) -> F:
    """Translate operational SQLite failures into TransientInfrastructureError."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except sqlite3.OperationalError as exc:
            raise TransientInfrastructureError(
                "storage_unavailable",
                "The marketplace database is temporarily unavailable. Please try again.",
            ) from exc

    return wrapper  # type: ignore[return-value]
