"""
Error taxonomy raised by the Lifecycle Engine.

Every public engine operation fails with exactly one of these.  Each error
carries the HTTP status class it maps to and a single-sentence message that
is safe to show to the caller.  ``NotFoundError`` deliberately covers
"missing", "not yours" and "not in the required state" so a caller cannot
probe for the existence or ownership of other people's records.
"""

from __future__ import annotations


class LifecycleError(Exception):
    status_code: int = 500
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(LifecycleError):
    status_code = 400
    default_message = "Invalid request."


class PreconditionError(LifecycleError):
    status_code = 400
    default_message = "Operation not possible in the current account state."


class AuthenticationError(LifecycleError):
    status_code = 401
    default_message = "Missing or invalid caller identity."


class AuthorizationError(LifecycleError):
    status_code = 403
    default_message = "Forbidden: insufficient permissions."


class NotFoundError(LifecycleError):
    status_code = 404
    default_message = "Not found."


class ConflictError(NotFoundError):
    """Lost a race against another writer.

    Reported to the loser as not-found so it reveals nothing about who won.
    """

    default_message = "Not found or already taken."

    def __init__(self, message: str | None = None, status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class InternalError(LifecycleError):
    status_code = 500
    default_message = "Internal error."
