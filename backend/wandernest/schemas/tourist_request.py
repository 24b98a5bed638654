from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List, Annotated, Any
from datetime import datetime

from ..models.statuses import RequestStatus, ServiceType
from ..services.matching import parse_date_selector


class TouristRequestBase(BaseModel):
    email: EmailStr
    tourist_name: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    contact_method: str = "email"

    city: Annotated[str, Field(min_length=1, max_length=120)]
    # {"date": "2026-05-01"} or {"start": "2026-05-01", "end": "2026-05-03"}
    dates: dict[str, Any]
    preferred_time: str = "flexible"
    number_of_guests: Annotated[int, Field(ge=1, le=50)] = 1
    group_type: str = "solo"
    service_type: ServiceType = ServiceType.GUIDED_EXPERIENCE

    preferred_nationality: Optional[str] = None
    preferred_languages: List[str] = []
    preferred_gender: Optional[str] = None
    interests: List[str] = []
    budget: Optional[Annotated[float, Field(ge=0)]] = None
    trip_notes: Optional[Annotated[str, Field(max_length=2000)]] = None


class TouristRequestCreate(TouristRequestBase):
    @field_validator("dates")
    @classmethod
    def dates_must_parse(cls, v: dict[str, Any]) -> dict[str, Any]:
        if parse_date_selector(v) is None:
            raise ValueError("Provide either 'date' or a 'start'/'end' range with end on or after start")
        return v

    @field_validator("city")
    @classmethod
    def strip_city(cls, v: str) -> str:
        return v.strip()


class TouristRequestResponse(TouristRequestBase):
    id: str
    email: str
    service_type: str
    status: RequestStatus
    assigned_student_id: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: datetime

    model_config = {"from_attributes": True}
