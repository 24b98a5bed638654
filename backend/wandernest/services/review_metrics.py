"""Guide reputation derived from the reviews tourists leave."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from .. import models
from ..schemas.review import StudentMetrics
from ..utils.redis_cache import StudentMetricsCache

logger = logging.getLogger(__name__)

GOLD_COMPLETION_RATE = 95.0
GOLD_MIN_REVIEWS = 10
SILVER_COMPLETION_RATE = 90.0
SILVER_MIN_REVIEWS = 5


def reliability_badge(completion_rate: float, total_reviews: int) -> models.ReliabilityBadge:
    if completion_rate >= GOLD_COMPLETION_RATE and total_reviews >= GOLD_MIN_REVIEWS:
        return models.ReliabilityBadge.GOLD
    if completion_rate >= SILVER_COMPLETION_RATE and total_reviews >= SILVER_MIN_REVIEWS:
        return models.ReliabilityBadge.SILVER
    return models.ReliabilityBadge.BRONZE


def recompute_metrics(db: Session, student_id: str) -> Optional[StudentMetrics]:
    """Rebuild a guide's aggregates from every review they have received.

    Writes to the session without committing so it shares the caller's
    transaction. Returns ``None`` (and changes nothing) when the guide has no
    reviews yet.
    """
    rows = (
        db.query(models.Review.rating, models.Review.no_show)
        .filter(models.Review.student_id == student_id)
        .all()
    )
    if not rows:
        return None

    total = len(rows)
    average = sum(r.rating for r in rows) / total
    completed = sum(1 for r in rows if not r.no_show)
    no_shows = total - completed
    completion_rate = completed / total * 100
    badge = reliability_badge(completion_rate, total)

    db.query(models.Student).filter(models.Student.id == student_id).update(
        {
            "average_rating": average,
            "no_show_count": no_shows,
            "trips_hosted": completed,
            "reliability_badge": badge,
        },
        synchronize_session="fetch",
    )
    logger.info(
        "Recomputed metrics for student %s: avg=%.2f reviews=%d badge=%s",
        student_id,
        average,
        total,
        badge.value,
    )
    return StudentMetrics(
        average_rating=average,
        completion_rate=completion_rate,
        reliability_badge=badge,
        total_reviews=total,
        no_show_count=no_shows,
        trips_hosted=completed,
    )


def get_student_metrics(
    db: Session, student_id: str, cache: Optional[StudentMetricsCache] = None
) -> Optional[StudentMetrics]:
    """Stored metrics for a guide, served from cache when possible."""
    cache = cache or StudentMetricsCache()
    cached = cache.get(student_id)
    if cached is not None:
        return StudentMetrics(**cached)

    student = db.query(models.Student).filter(models.Student.id == student_id).first()
    if student is None:
        return None
    total = db.query(models.Review).filter(models.Review.student_id == student_id).count()
    completion_rate = (total - (student.no_show_count or 0)) / total * 100 if total else 0.0
    metrics = StudentMetrics(
        average_rating=student.average_rating,
        completion_rate=completion_rate,
        reliability_badge=student.reliability_badge or models.ReliabilityBadge.BRONZE,
        total_reviews=total,
        no_show_count=student.no_show_count or 0,
        trips_hosted=student.trips_hosted or 0,
    )
    cache.set(student_id, metrics.model_dump(mode="json"))
    return metrics
