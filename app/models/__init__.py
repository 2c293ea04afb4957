"""ORM models."""

from app.models.audit import ActivityLog
from app.models.authorization import AuthorizationCode
from app.models.checkout import Checkout
from app.models.inventory import InventoryItem
from app.models.issue import Issue
from app.models.request import EquipmentRequest
from app.models.token import ApiToken, User

__all__ = [
    "ActivityLog",
    "ApiToken",
    "AuthorizationCode",
    "Checkout",
    "EquipmentRequest",
    "InventoryItem",
    "Issue",
    "User",
]
