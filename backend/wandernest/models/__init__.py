from .statuses import (
    RequestStatus,
    StudentStatus,
    SelectionStatus,
    ReliabilityBadge,
    ServiceType,
    OPEN_REQUEST_STATUSES,
)
from .student import Student, StudentAvailability
from .tourist_request import TouristRequest
from .request_selection import RequestSelection
from .review import Review

__all__ = [
    "RequestStatus",
    "StudentStatus",
    "SelectionStatus",
    "ReliabilityBadge",
    "ServiceType",
    "OPEN_REQUEST_STATUSES",
    "Student",
    "StudentAvailability",
    "TouristRequest",
    "RequestSelection",
    "Review",
]
