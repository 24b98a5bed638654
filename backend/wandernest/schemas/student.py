from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Annotated, Literal
from datetime import datetime

from ..models.statuses import StudentStatus, ReliabilityBadge


class AvailabilitySlot(BaseModel):
    # 0 = Sunday … 6 = Saturday
    day_of_week: Annotated[int, Field(ge=0, le=6)]
    start_time: str = "09:00"
    end_time: str = "17:00"
    note: Optional[str] = None

    model_config = {"from_attributes": True}


class StudentBase(BaseModel):
    name: Optional[str] = None
    city: Annotated[str, Field(min_length=1)]
    gender: Optional[str] = None
    nationality: Optional[str] = None
    institute: Optional[str] = None
    languages: List[str] = []
    interests: List[str] = []


class StudentCreate(StudentBase):
    email: EmailStr
    availability: List[AvailabilitySlot] = []


class StudentResponse(StudentBase):
    id: str
    email: str
    status: StudentStatus
    average_rating: Optional[float] = None
    no_show_count: int = 0
    trips_hosted: int = 0
    reliability_badge: Optional[ReliabilityBadge] = None
    availability: List[AvailabilitySlot] = []
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class StudentStatusUpdate(BaseModel):
    action: Literal["approve", "suspend"]


class StudentBulkStatusUpdate(BaseModel):
    student_ids: Annotated[List[str], Field(min_length=1, max_length=200)]
    action: Literal["approve", "suspend"]


class StudentBulkStatusResponse(BaseModel):
    success: bool = True
    count: int
    message: str
