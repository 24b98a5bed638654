from .tourist_request import TouristRequestCreate, TouristRequestResponse
from .student import (
    AvailabilitySlot,
    StudentCreate,
    StudentResponse,
    StudentStatusUpdate,
    StudentBulkStatusUpdate,
    StudentBulkStatusResponse,
)
from .selection import (
    GuideSelectionCreate,
    GuideAction,
    AssignGuideRequest,
    SelectionResponse,
    TouristContact,
    AcceptResponse,
    AssignResponse,
    SelectGuidesResponse,
    StudentRequestSummary,
    AssignedGuide,
    BookingSummary,
)
from .match import MatchCard, MatchListResponse, PriceRange
from .review import REVIEW_ATTRIBUTES, ReviewCreate, ReviewResponse, StudentMetrics
