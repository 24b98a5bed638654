from pydantic import BaseModel
from typing import Optional, List


class PriceRange(BaseModel):
    min: int
    max: int


class MatchCard(BaseModel):
    """A ranked guide as shown to a tourist; identity stays hidden."""

    anonymous_id: str
    score: float
    nationality: Optional[str] = None
    languages: List[str] = []
    interests: List[str] = []
    shared_interests: List[str] = []
    institute: Optional[str] = None
    average_rating: Optional[float] = None
    trips_hosted: int = 0
    no_show_count: int = 0
    reliability_badge: Optional[str] = None
    suggested_price: PriceRange


class MatchListResponse(BaseModel):
    request_id: str
    matches: List[MatchCard]
