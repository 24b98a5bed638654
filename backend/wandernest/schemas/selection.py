from pydantic import BaseModel, Field, field_validator
from typing import Any, Optional, List, Annotated
from datetime import datetime

from ..models.statuses import RequestStatus, SelectionStatus


class GuideSelectionCreate(BaseModel):
    """Tourist's shortlist, by the anonymous labels shown on match cards."""

    anonymous_ids: Annotated[List[str], Field(min_length=1, max_length=4)]

    @field_validator("anonymous_ids")
    @classmethod
    def dedupe(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(s.strip() for s in v if s.strip()))


class GuideAction(BaseModel):
    student_id: Annotated[str, Field(min_length=1)]


class AssignGuideRequest(BaseModel):
    request_id: Annotated[str, Field(min_length=1)]
    student_id: Annotated[str, Field(min_length=1)]


class SelectionResponse(BaseModel):
    id: str
    request_id: str
    student_id: str
    status: SelectionStatus
    accepted_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TouristContact(BaseModel):
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    contact_method: Optional[str] = None


class AcceptResponse(BaseModel):
    success: bool = True
    selection: SelectionResponse
    tourist_contact: TouristContact


class AssignResponse(BaseModel):
    success: bool = True
    selection_id: str


class SelectGuidesResponse(BaseModel):
    success: bool = True
    selections: List[SelectionResponse]


class StudentRequestSummary(BaseModel):
    """One shortlist entry on a guide's dashboard."""

    selection_id: str
    request_id: str
    tourist_name: Optional[str] = None
    city: str
    dates: dict[str, Any]
    number_of_guests: int
    service_type: str
    budget: Optional[float] = None
    request_status: RequestStatus
    status: SelectionStatus
    created_at: Optional[datetime] = None


class AssignedGuide(BaseModel):
    id: str
    name: Optional[str] = None
    email: str

    model_config = {"from_attributes": True}


class BookingSummary(BaseModel):
    id: str
    traveler_name: str
    traveler_email: str
    city: str
    service_type: str
    status: RequestStatus
    created_at: Optional[datetime] = None
    # First requested day, or None when the stored selector does not parse
    date: Optional[str] = None
    assigned_student: Optional[AssignedGuide] = None
    trip_notes: Optional[str] = None
