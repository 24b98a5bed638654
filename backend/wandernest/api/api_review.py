from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Any, List

from ..crud import crud_review
from ..schemas import ReviewCreate, ReviewResponse, StudentMetrics
from ..services import review_metrics
from ..utils.errors import StudentNotFound, WanderNestError, to_http_exception
from ..utils.redis_cache import StudentMetricsCache
from .dependencies import get_db, get_metrics_cache

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
def create_review(
    *,
    db: Session = Depends(get_db),
    review_in: ReviewCreate,
    cache: StudentMetricsCache = Depends(get_metrics_cache),
) -> Any:
    """
    Review the guide of an accepted request.
    Only one review per request; the guide's rating, no-show count and
    reliability badge are recomputed in the same transaction.
    """
    try:
        return crud_review.create_review(db, review_in, cache=cache)
    except WanderNestError as exc:
        raise to_http_exception(exc)


@router.get("/student/{student_id}", response_model=List[ReviewResponse])
def list_reviews_for_student(
    student_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    db: Session = Depends(get_db),
) -> Any:
    # Unknown guides get an empty list so profile pages still render
    return crud_review.list_student_reviews(db, student_id, skip=skip, limit=limit)


@router.get("/student/{student_id}/metrics", response_model=StudentMetrics)
def get_student_metrics(
    student_id: str,
    db: Session = Depends(get_db),
    cache: StudentMetricsCache = Depends(get_metrics_cache),
) -> Any:
    metrics = review_metrics.get_student_metrics(db, student_id, cache=cache)
    if metrics is None:
        raise to_http_exception(StudentNotFound())
    return metrics
