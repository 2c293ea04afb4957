"""Domain error types.

Every failure a client can observe is one of these. The exception handlers
in ``app.main`` render them as ``{"success": false, "message", "error"}``.
"""

from __future__ import annotations

from fastapi import status


class LabError(Exception):
    """Base domain error.

    Parameters
    ----------
    message : str | None, default=None
        Human-readable message. Falls back to the class default.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(LabError):
    """Malformed, missing or out-of-range input."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    default_message = "Invalid input"


class AuthenticationError(LabError):
    """Caller could not be identified."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "not_authenticated"
    default_message = "Not authenticated"


class AuthorizationError(LabError):
    """Caller has the wrong role or does not own the resource."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "Insufficient permissions"


class NotFoundError(LabError):
    """Referenced entity does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class StateConflictError(LabError):
    """Operation is not allowed in the entity's current state."""

    status_code = status.HTTP_409_CONFLICT
    code = "state_conflict"
    default_message = "Operation conflicts with current state"


class PersistenceError(LabError):
    """The store rejected a write."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "persistence_error"
    default_message = "Database error occurred"


class InsufficientInventoryError(StateConflictError):
    """Not enough units on hand."""

    code = "insufficient_inventory"
    default_message = "Insufficient inventory available for checkout"


class InvalidCodeError(NotFoundError):
    """Authorization code does not exist."""

    code = "invalid_code"
    default_message = "Invalid authorization code"


class CodeAlreadyUsedError(StateConflictError):
    """Authorization code was already redeemed."""

    code = "code_already_used"
    default_message = "Authorization code has already been used"


class CodeCancelledError(StateConflictError):
    """Authorization code was cancelled by staff."""

    code = "code_cancelled"
    default_message = "Authorization code has been cancelled"


class CodeExpiredError(StateConflictError):
    """Authorization code is past its expiry."""

    code = "code_expired"
    default_message = "Authorization code has expired"


class CodeNotActiveError(StateConflictError):
    """Authorization code is in some other non-active state."""

    code = "code_not_active"
    default_message = "Authorization code is not active"
