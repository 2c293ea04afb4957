"""SDK exception types."""

from __future__ import annotations


class LabInventoryError(Exception):
    """Base SDK error."""


class LabInventoryAPIError(LabInventoryError):
    """API request failed.

    Parameters
    ----------
    message : str
        Error message.
    status_code : int | None, default=None
        HTTP status code if available.
    error_code : str | None, default=None
        Machine-readable ``error`` field from the response body.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class LabInventoryAuthError(LabInventoryAPIError):
    """Authentication failed."""


class LabInventoryPermissionError(LabInventoryAPIError):
    """Caller lacks the role or ownership required."""


class LabInventoryValidationError(LabInventoryAPIError):
    """Request payload failed validation."""


class LabInventoryNotFoundError(LabInventoryAPIError):
    """Requested resource was not found."""


class LabInventoryConflictError(LabInventoryAPIError):
    """Request conflicted with current server state."""


class InsufficientInventoryError(LabInventoryConflictError):
    """Not enough units on hand."""


class InvalidCodeError(LabInventoryNotFoundError):
    """Authorization code does not exist."""


class CodeUnavailableError(LabInventoryConflictError):
    """Authorization code is used, cancelled, expired or otherwise inactive."""
