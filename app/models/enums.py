"""Status and role vocabularies."""

from enum import Enum


class Role(str, Enum):
    """Account role."""

    STUDENT = "student"
    STAFF = "staff"
    ADMIN = "admin"


class UserStatus(str, Enum):
    """Account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class ItemStatus(str, Enum):
    """Equipment status shown in the catalog."""

    AVAILABLE = "available"
    CHECKED_OUT = "checked-out"
    MAINTENANCE = "maintenance"
    DAMAGED = "damaged"


class RequestStatus(str, Enum):
    """Equipment request lifecycle."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class CodeStatus(str, Enum):
    """Authorization code lifecycle."""

    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class CheckoutStatus(str, Enum):
    """Custody state of a checkout."""

    CHECKED_OUT = "checked_out"
    RETURNED = "returned"


class ItemCondition(str, Enum):
    """Condition recorded on check-in."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    DAMAGED = "damaged"


class IssueType(str, Enum):
    """Kind of reported problem."""

    DAMAGE = "damage"
    MALFUNCTION = "malfunction"
    MISSING = "missing"
    OTHER = "other"


class IssueSeverity(str, Enum):
    """Reported problem severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IssueStatus(str, Enum):
    """Issue resolution state."""

    OPEN = "open"
    RESOLVED = "resolved"


STAFF_ROLES = frozenset({Role.STAFF, Role.ADMIN})
