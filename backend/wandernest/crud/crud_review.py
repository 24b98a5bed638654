import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..services.review_metrics import recompute_metrics
from ..utils.errors import RequestNotFound, ReviewAlreadyExists, ReviewNotPermitted
from ..utils.redis_cache import StudentMetricsCache

logger = logging.getLogger(__name__)


def get_review_by_request(db: Session, request_id: str) -> Optional[models.Review]:
    return db.query(models.Review).filter(models.Review.request_id == request_id).first()


def list_student_reviews(
    db: Session, student_id: str, skip: int = 0, limit: int = 100
) -> List[models.Review]:
    return (
        db.query(models.Review)
        .filter(models.Review.student_id == student_id)
        .order_by(models.Review.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def create_review(
    db: Session,
    review_in: schemas.ReviewCreate,
    cache: Optional[StudentMetricsCache] = None,
) -> models.Review:
    """Store the single review a request may receive and refresh the guide's
    metrics in the same transaction."""
    request = (
        db.query(models.TouristRequest)
        .filter(models.TouristRequest.id == review_in.request_id)
        .first()
    )
    if request is None:
        raise RequestNotFound()
    if (
        request.status != models.RequestStatus.ACCEPTED
        or request.assigned_student_id != review_in.student_id
    ):
        raise ReviewNotPermitted()

    if get_review_by_request(db, review_in.request_id) is not None:
        raise ReviewAlreadyExists()

    db_review = models.Review(**review_in.model_dump())
    db.add(db_review)
    try:
        db.flush()
        recompute_metrics(db, review_in.student_id)
        db.commit()
    except IntegrityError:
        # Lost a race against another review for the same request
        db.rollback()
        raise ReviewAlreadyExists()
    except Exception:
        db.rollback()
        raise
    db.refresh(db_review)

    (cache or StudentMetricsCache()).invalidate(review_in.student_id)
    logger.info("Review %s created for request %s", db_review.id, review_in.request_id)
    return db_review
