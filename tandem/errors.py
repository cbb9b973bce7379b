"""
Tandem — Engine error taxonomy.

Services raise these; ``tandem.main`` maps each class to an HTTP status
through a single exception handler.  Every error is request-scoped.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all errors surfaced by the engine."""

    status_code: int = 400
    code: str = "engine_error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)


class Unauthenticated(EngineError):
    """No authenticated user identity was supplied."""

    status_code = 401
    code = "unauthenticated"


class Unauthorized(EngineError):
    """The caller is not allowed to act on this resource."""

    status_code = 403
    code = "unauthorized"


class InvalidOperation(EngineError):
    """The request is malformed or not permitted by the engine rules."""

    status_code = 422
    code = "invalid_operation"


class DuplicateSwipe(EngineError):
    """A swipe for this user pair has already been recorded."""

    status_code = 409
    code = "duplicate_swipe"


class NotFound(EngineError):
    """The referenced resource does not exist."""

    status_code = 404
    code = "not_found"
