"""Python SDK for the lab inventory service."""

from lab_inventory.client import LabInventoryClient
from lab_inventory.exceptions import (
    CodeUnavailableError,
    InsufficientInventoryError,
    InvalidCodeError,
    LabInventoryAPIError,
    LabInventoryAuthError,
    LabInventoryConflictError,
    LabInventoryError,
    LabInventoryNotFoundError,
    LabInventoryPermissionError,
    LabInventoryValidationError,
)
from lab_inventory.types import (
    CheckoutInfo,
    CodeInfo,
    CodePreview,
    RequestInfo,
    TransitionResult,
)

__all__ = [
    "CheckoutInfo",
    "CodeInfo",
    "CodePreview",
    "CodeUnavailableError",
    "InsufficientInventoryError",
    "InvalidCodeError",
    "LabInventoryAPIError",
    "LabInventoryAuthError",
    "LabInventoryClient",
    "LabInventoryConflictError",
    "LabInventoryError",
    "LabInventoryNotFoundError",
    "LabInventoryPermissionError",
    "LabInventoryValidationError",
    "RequestInfo",
    "TransitionResult",
]
