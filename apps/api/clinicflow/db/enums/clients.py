"""Client and appointment enums."""

from enum import Enum


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class PortalStatus(str, Enum):
    """Client portal access state."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


DEFAULT_PORTAL_STATUS = PortalStatus.ACTIVE
DEFAULT_APPOINTMENT_STATUS = AppointmentStatus.SCHEDULED
