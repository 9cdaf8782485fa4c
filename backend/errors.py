"""
Error taxonomy raised by the lifecycle managers and the analytics engine.

Each error carries the HTTP status it is rendered with; main.py turns them
into the standard response envelope.
"""

from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class ValidationError(AppError):
    """Malformed or out-of-range input."""

    status_code = 400

    @classmethod
    def for_field(cls, param: str, msg: str, location: str = "body") -> "ValidationError":
        return cls("Validation failed", [{"msg": msg, "param": param, "location": location}])


class ReferenceNotFoundError(AppError):
    """A referenced entity (e.g. the assigned user) does not exist."""

    status_code = 400


class NotFoundError(AppError):
    """Target entity is absent or soft-deleted."""

    status_code = 404


class ForbiddenError(AppError):
    """Authenticated, but not allowed to perform this mutation."""

    status_code = 403


class ServerError(AppError):
    """Unexpected store or blob failure."""

    status_code = 500

    def __init__(self, message: str = "Server error"):
        super().__init__(message)
