import enum


class RequestStatus(str, enum.Enum):
    """Lifecycle of a tourist's trip request."""
    PENDING = "PENDING"
    MATCHED = "MATCHED"
    ACCEPTED = "ACCEPTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


# Guides may still act on a request while it is in one of these states
OPEN_REQUEST_STATUSES = (RequestStatus.PENDING, RequestStatus.MATCHED)


class StudentStatus(str, enum.Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    SUSPENDED = "SUSPENDED"


class SelectionStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ReliabilityBadge(str, enum.Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


class ServiceType(str, enum.Enum):
    ITINERARY_HELP = "itinerary_help"
    GUIDED_EXPERIENCE = "guided_experience"
