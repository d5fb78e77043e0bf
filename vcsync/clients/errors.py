"""API error taxonomy shared by every ClusterClient implementation.

The engine branches on these classes, never on raw HTTP status codes:

    NotFoundError       -- 404; "this side does not exist".
    AlreadyExistsError  -- 409 with reason AlreadyExists; create raced another writer.
    ConflictError       -- 409 otherwise; optimistic-lock failure, requeue silently.
    ForbiddenError      -- 403; RBAC or admission rejection, surfaced as an Event.
    InvalidError        -- 422; the object was rejected by validation.
"""

from __future__ import annotations


class ApiError(Exception):
    """An error response from a Kubernetes API server."""

    def __init__(self, status: int, reason: str = "", message: str = "") -> None:
        super().__init__(f"{status} {reason}: {message}".strip())
        self.status = status
        self.reason = reason
        self.message = message


class NotFoundError(ApiError):
    pass


class ConflictError(ApiError):
    pass


class AlreadyExistsError(ConflictError):
    pass


class ForbiddenError(ApiError):
    pass


class InvalidError(ApiError):
    pass


def error_from_status(status: int, reason: str = "", message: str = "") -> ApiError:
    """Build the most specific ApiError subclass for *status* / *reason*."""
    if status == 404:
        return NotFoundError(status, reason or "NotFound", message)
    if status == 409:
        if reason == "AlreadyExists":
            return AlreadyExistsError(status, reason, message)
        return ConflictError(status, reason or "Conflict", message)
    if status == 403:
        return ForbiddenError(status, reason or "Forbidden", message)
    if status == 422:
        return InvalidError(status, reason or "Invalid", message)
    return ApiError(status, reason, message)


def is_rejection(exc: BaseException) -> bool:
    """True for errors that will not go away by retrying immediately."""
    return isinstance(exc, ForbiddenError | InvalidError)
