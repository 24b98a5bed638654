from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session
from typing import Any, List, Optional

from .. import models
from ..crud import crud_student, crud_tourist_request
from ..notifications.intents.booking_assignment import notify_booking_accepted
from ..schemas import (
    AssignGuideRequest,
    AssignResponse,
    AssignedGuide,
    BookingSummary,
    StudentBulkStatusResponse,
    StudentBulkStatusUpdate,
    StudentResponse,
    StudentStatusUpdate,
    TouristRequestResponse,
)
from ..services import assignment
from ..services.matching import parse_date_selector
from ..utils.errors import WanderNestError, to_http_exception
from ..utils.redis_cache import MatchCache, StudentMetricsCache
from .dependencies import get_db, get_match_cache, get_metrics_cache, require_admin

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


def _first_day(dates: Any) -> Optional[str]:
    selector = parse_date_selector(dates)
    if selector is None:
        return None
    return selector.days()[0].isoformat()


def _booking_summary(request: models.TouristRequest) -> dict:
    return {
        "id": request.id,
        "traveler_name": request.tourist_name or request.email,
        "traveler_email": request.email,
        "city": request.city,
        "service_type": request.service_type,
        "status": request.status,
        "created_at": request.created_at,
        "date": _first_day(request.dates),
        "assigned_student": (
            AssignedGuide.model_validate(request.assigned_student)
            if request.assigned_student is not None
            else None
        ),
        "trip_notes": request.trip_notes,
    }


@router.get("/requests", response_model=List[TouristRequestResponse])
def list_requests(
    skip: int = Query(0, ge=0),
    limit: int = Query(30, ge=1, le=200),
    db: Session = Depends(get_db),
) -> Any:
    return crud_tourist_request.get_tourist_requests(db, skip=skip, limit=limit)


@router.get("/bookings", response_model=List[BookingSummary])
def list_bookings(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
) -> Any:
    """Recent requests with their booked guide, if any."""
    return [
        _booking_summary(r)
        for r in crud_tourist_request.get_bookings(db, skip=skip, limit=limit)
    ]


@router.post("/bookings/assign", response_model=AssignResponse)
def assign_guide(
    assign_in: AssignGuideRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    cache: MatchCache = Depends(get_match_cache),
    metrics_cache: StudentMetricsCache = Depends(get_metrics_cache),
) -> Any:
    """Book a guide for a request directly, with or without a prior selection."""
    try:
        outcome = assignment.assign_guide(
            db,
            assign_in.request_id,
            assign_in.student_id,
            cache=cache,
            metrics_cache=metrics_cache,
        )
    except WanderNestError as exc:
        raise to_http_exception(exc)
    background_tasks.add_task(notify_booking_accepted, outcome.request, outcome.guide)
    return {"success": True, "selection_id": outcome.selection_id}


@router.get("/students/pending", response_model=List[StudentResponse])
def list_pending_students(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
    db: Session = Depends(get_db),
) -> Any:
    """Guides waiting for verification, newest sign-ups first."""
    return crud_student.get_pending_students(db, skip=skip, limit=limit)


@router.post("/students/bulk-approve", response_model=StudentBulkStatusResponse)
def bulk_update_student_status(
    bulk_in: StudentBulkStatusUpdate,
    db: Session = Depends(get_db),
) -> Any:
    count = crud_student.bulk_set_student_status(db, bulk_in.student_ids, bulk_in.action)
    verb = "approved" if bulk_in.action == "approve" else "suspended"
    return {"success": True, "count": count, "message": f"{count} student(s) {verb}"}


@router.post("/students/{student_id}/status", response_model=StudentResponse)
def update_student_status(
    student_id: str,
    status_in: StudentStatusUpdate,
    db: Session = Depends(get_db),
) -> Any:
    """Approve or suspend a guide waiting for verification."""
    try:
        return crud_student.set_student_status(db, student_id, status_in.action)
    except WanderNestError as exc:
        raise to_http_exception(exc)
