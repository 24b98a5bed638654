"""Guide matching: filter candidate guides for a trip request and rank them.

Scoring is out of 100 points:

- availability (40): every requested day falls on one of the guide's weekly
  slots
- rating (20): ``average_rating × 4``, unrated guides count as 3.0
- reliability (20): minus 5 per recorded no-show
- interest overlap (20): share of the tourist's interests the guide lists

Unparsable or missing request dates only cost the availability points; they
never fail the match.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models import Student, StudentStatus, TouristRequest

logger = logging.getLogger(__name__)

AVAILABILITY_POINTS = 40
RATING_MULTIPLIER = 4
DEFAULT_RATING = 3.0
RELIABILITY_POINTS = 20
NO_SHOW_PENALTY = 5
INTEREST_POINTS = 20

NO_GENDER_PREFERENCE = "no_preference"


# ─── Date selectors ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SingleDate:
    day: date

    def days(self) -> List[date]:
        return [self.day]


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def days(self) -> List[date]:
        span = (self.end - self.start).days
        return [self.start + timedelta(days=i) for i in range(span + 1)]

    def weekdays(self) -> set[int]:
        # A week or more touches every weekday; skip walking long ranges.
        if (self.end - self.start).days >= 6:
            return set(range(7))
        return {day_of_week(d) for d in self.days()}


DateSelector = Union[SingleDate, DateRange]


def _parse_day(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def parse_date_selector(raw: Any) -> Optional[DateSelector]:
    """Decode the stored ``dates`` payload of a request.

    Accepts a JSON string or a mapping holding either ``start`` and ``end``
    or a single ``date``. Anything else, including a range whose end is
    before its start, yields ``None``.
    """
    if isinstance(raw, (SingleDate, DateRange)):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (TypeError, ValueError):
            return None
    if not isinstance(raw, dict):
        return None

    if raw.get("start") and raw.get("end"):
        start = _parse_day(raw["start"])
        end = _parse_day(raw["end"])
        if start is None or end is None or end < start:
            return None
        return DateRange(start, end)
    if raw.get("date"):
        day = _parse_day(raw["date"])
        return SingleDate(day) if day is not None else None
    return None


def day_of_week(day: date) -> int:
    """Weekday numbered 0 (Sunday) to 6 (Saturday), as availability slots are."""
    return (day.weekday() + 1) % 7


# ─── Filtering ─────────────────────────────────────────────────────────────────


def _status_value(status: Any) -> str:
    return getattr(status, "value", status) or ""


def is_eligible(student: Any, request: Any) -> bool:
    """Hard constraints a guide must meet before being scored at all."""
    if student.city != request.city:
        return False
    if _status_value(student.status) != StudentStatus.APPROVED.value:
        return False
    if request.preferred_nationality and student.nationality != request.preferred_nationality:
        return False
    preferred_languages = request.preferred_languages or []
    if preferred_languages and not set(preferred_languages) & set(student.languages or []):
        return False
    gender = request.preferred_gender
    if gender and gender != NO_GENDER_PREFERENCE and student.gender != gender:
        return False
    return True


def _candidate_query(db: Session, request: TouristRequest):
    query = db.query(Student).filter(
        Student.city == request.city,
        Student.status == StudentStatus.APPROVED,
    )
    if request.preferred_nationality:
        query = query.filter(Student.nationality == request.preferred_nationality)
    gender = request.preferred_gender
    if gender and gender != NO_GENDER_PREFERENCE:
        query = query.filter(Student.gender == gender)
    return query


# ─── Scoring ───────────────────────────────────────────────────────────────────


def check_availability(availability: Iterable[Any], dates: Any) -> bool:
    """True when every requested day lands on one of the weekly slots."""
    slot_days = {slot.day_of_week for slot in availability or []}
    if not slot_days:
        return False
    selector = parse_date_selector(dates)
    if selector is None:
        return False
    if isinstance(selector, DateRange):
        needed = selector.weekdays()
    else:
        needed = {day_of_week(selector.day)}
    return needed <= slot_days


def _round_half_up(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def calculate_score(student: Any, request: Any) -> float:
    score = 0.0

    if check_availability(student.availability, request.dates):
        score += AVAILABILITY_POINTS

    rating = student.average_rating if student.average_rating is not None else DEFAULT_RATING
    score += rating * RATING_MULTIPLIER

    no_shows = student.no_show_count or 0
    score += max(0, RELIABILITY_POINTS - no_shows * NO_SHOW_PENALTY)

    interests = request.interests or []
    if interests:
        offered = set(student.interests or [])
        overlap = sum(1 for interest in interests if interest in offered)
        score += overlap / len(interests) * INTEREST_POINTS

    return _round_half_up(score)


@dataclass
class ScoredStudent:
    student: Student
    score: float

    @property
    def id(self) -> str:
        return self.student.id


def rank_candidates(
    candidates: Iterable[Any], request: Any, limit: Optional[int] = None
) -> List[ScoredStudent]:
    """Score eligible candidates, best first; ties go to the lower student id."""
    limit = settings.MATCH_LIMIT if limit is None else limit
    scored = [
        ScoredStudent(student=c, score=calculate_score(c, request))
        for c in candidates
        if is_eligible(c, request)
    ]
    scored.sort(key=lambda s: (-s.score, str(s.student.id)))
    return scored[:limit]


def find_matches(
    db: Session, request: TouristRequest, limit: Optional[int] = None
) -> List[ScoredStudent]:
    """Return up to ``MATCH_LIMIT`` guides for ``request``, highest score first."""
    candidates = _candidate_query(db, request).all()
    ranked = rank_candidates(candidates, request, limit)
    logger.info(
        "Matched request %s: %d candidates, %d returned",
        request.id,
        len(candidates),
        len(ranked),
    )
    return ranked


# ─── Presentation helpers ──────────────────────────────────────────────────────


def generate_anonymous_id(student_id: str) -> str:
    """Stable ``Guide #NNNN`` label for showing a guide before booking.

    Display obfuscation only: the label space is 10,000 values. Only the
    shifted term is truncated to a signed 32-bit int, so the accumulator
    itself is never wrapped.
    """
    h = 0
    for ch in student_id:
        h = _to_int32(h << 5) - h + ord(ch)
    return f"Guide #{abs(h) % 10000:04d}"


def _to_int32(n: int) -> int:
    n &= 0xFFFFFFFF
    return n - 0x100000000 if n >= 0x80000000 else n


_CITY_RATES = {
    "paris": (25, 50),
    "london": (30, 60),
    "barcelona": (20, 40),
    "berlin": (20, 45),
}
_DEFAULT_RATE = (20, 40)
GUIDED_EXPERIENCE_MARKUP = 1.2


def suggested_price_range(city: str, service_type: str) -> dict:
    """Indicative hourly price band shown next to matches."""
    low, high = _CITY_RATES.get((city or "").strip().lower(), _DEFAULT_RATE)
    if (service_type or "").strip().lower() == "guided_experience":
        low = math.floor(low * GUIDED_EXPERIENCE_MARKUP + 0.5)
        high = math.floor(high * GUIDED_EXPERIENCE_MARKUP + 0.5)
    return {"min": low, "max": high}


def match_card(scored: ScoredStudent, request: Any) -> dict:
    """Serialisable view of a match.

    ``student_id`` is kept for server-side resolution of the tourist's picks;
    the public response schema drops it.
    """
    s = scored.student
    offered = set(s.interests or [])
    return {
        "anonymous_id": generate_anonymous_id(s.id),
        "student_id": s.id,
        "score": scored.score,
        "nationality": s.nationality,
        "languages": list(s.languages or []),
        "interests": list(s.interests or []),
        "shared_interests": [i for i in (request.interests or []) if i in offered],
        "institute": s.institute,
        "average_rating": s.average_rating,
        "trips_hosted": s.trips_hosted or 0,
        "no_show_count": s.no_show_count or 0,
        "reliability_badge": getattr(s.reliability_badge, "value", s.reliability_badge),
        "suggested_price": suggested_price_range(request.city, request.service_type),
    }
