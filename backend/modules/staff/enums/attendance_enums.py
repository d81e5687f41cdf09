from enum import Enum


class TimeRequestType(str, Enum):
    PTO = "pto"
    UTO = "uto"
    MAKE_UP = "make_up"


class TimeRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    CANCELLED = "cancelled"
