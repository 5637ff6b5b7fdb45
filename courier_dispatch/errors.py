"""Dispatch error taxonomy.

Every guard violation raises one of these before any write happens. The API
layer turns them into JSON responses with the matching status code.
"""

from typing import Any


class DispatchError(Exception):
    """Base class for errors reported to callers of the dispatch engine."""

    status_code = 400
    default_code = "dispatch_error"

    def __init__(self, message: str, code: str | None = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            data["details"] = self.details
        return data


class NotFoundError(DispatchError):
    """A delivery, driver, order or restaurant does not exist."""

    status_code = 404
    default_code = "not_found"


class ConflictError(DispatchError):
    """The action is not valid for the record's current state."""

    status_code = 409
    default_code = "conflict"


class InvalidTransitionError(ConflictError):
    """A status change outside the transition table."""

    status_code = 400
    default_code = "invalid_transition"


class ConcurrentUpdateError(ConflictError):
    """The record changed between read and write."""

    default_code = "concurrent_update"


class UnauthorizedError(DispatchError):
    """The acting principal may not perform this action."""

    status_code = 403
    default_code = "unauthorized"


class InvalidInputError(DispatchError):
    """Malformed or out-of-range input."""

    status_code = 400
    default_code = "invalid_input"
