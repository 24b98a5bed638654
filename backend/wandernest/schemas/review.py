from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Annotated
from datetime import datetime

from ..core.config import settings
from ..models.statuses import ReliabilityBadge

# Tags a tourist can attach to a review
REVIEW_ATTRIBUTES = frozenset({
    "friendly",
    "knowledgeable",
    "punctual",
    "professional",
    "flexible",
    "good_communication",
    "local_insights",
    "great_recommendations",
    "patient",
    "enthusiastic",
    "well_prepared",
    "good_english",
    # Areas for improvement
    "late",
    "unprepared",
    "poor_communication",
    "rushed",
    "limited_knowledge",
})


class ReviewBase(BaseModel):
    rating: Annotated[int, Field(ge=1, le=5)]
    text: Optional[str] = None
    attributes: List[str] = []
    no_show: bool = False
    price_paid: Optional[Annotated[float, Field(ge=0)]] = None
    is_anonymous: bool = False


class ReviewCreate(ReviewBase):
    request_id: Annotated[str, Field(min_length=1)]
    student_id: Annotated[str, Field(min_length=1)]

    @field_validator("text")
    @classmethod
    def text_length(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) > settings.MAX_REVIEW_TEXT_LENGTH:
            raise ValueError(
                f"Review text must not exceed {settings.MAX_REVIEW_TEXT_LENGTH} characters"
            )
        return v

    @field_validator("attributes")
    @classmethod
    def known_attributes(cls, v: List[str]) -> List[str]:
        unknown = [a for a in v if a not in REVIEW_ATTRIBUTES]
        if unknown:
            raise ValueError(f"Invalid attribute: {unknown[0]}")
        return list(dict.fromkeys(v))


class ReviewResponse(ReviewBase):
    id: str
    request_id: str
    student_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class StudentMetrics(BaseModel):
    average_rating: Optional[float] = None
    completion_rate: float = 0.0
    reliability_badge: Optional[ReliabilityBadge] = None
    total_reviews: int = 0
    no_show_count: int = 0
    trips_hosted: int = 0
