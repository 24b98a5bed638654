from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session
from typing import Any, List

from ..crud import crud_student, crud_tourist_request
from ..notifications.intents.booking_assignment import notify_booking_accepted
from ..schemas import AcceptResponse, GuideAction, SelectionResponse, StudentRequestSummary
from ..services import assignment
from ..utils.errors import StudentNotFound, WanderNestError, to_http_exception
from ..utils.redis_cache import MatchCache, StudentMetricsCache
from .dependencies import get_db, get_match_cache, get_metrics_cache

router = APIRouter(prefix="/student/requests", tags=["Guide Requests"])


@router.get("", response_model=List[StudentRequestSummary])
def list_student_requests(
    student_id: str = Query(..., min_length=1),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
    db: Session = Depends(get_db),
) -> Any:
    """Requests this guide has been shortlisted for, newest first."""
    if crud_student.get_student(db, student_id) is None:
        raise to_http_exception(StudentNotFound())
    selections = crud_tourist_request.get_selections_by_student(
        db, student_id, skip=skip, limit=limit
    )
    return [
        {
            "selection_id": s.id,
            "request_id": s.request_id,
            "tourist_name": s.request.tourist_name,
            "city": s.request.city,
            "dates": s.request.dates,
            "number_of_guests": s.request.number_of_guests,
            "service_type": s.request.service_type,
            "budget": s.request.budget,
            "request_status": s.request.status,
            "status": s.status,
            "created_at": s.created_at,
        }
        for s in selections
    ]


@router.post("/{request_id}/accept", response_model=AcceptResponse)
def accept_request(
    request_id: str,
    action: GuideAction,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    cache: MatchCache = Depends(get_match_cache),
    metrics_cache: StudentMetricsCache = Depends(get_metrics_cache),
) -> Any:
    """Take the booking. Losing a race to another guide returns 409."""
    try:
        outcome = assignment.accept_selection(
            db, request_id, action.student_id, cache=cache, metrics_cache=metrics_cache
        )
    except WanderNestError as exc:
        raise to_http_exception(exc)
    # Runs after the response; delivery failures never undo the booking.
    background_tasks.add_task(notify_booking_accepted, outcome.request, outcome.guide)
    return {
        "success": True,
        "selection": outcome.selection,
        "tourist_contact": outcome.tourist_contact,
    }


@router.post("/{request_id}/reject", response_model=SelectionResponse)
def reject_request(
    request_id: str,
    action: GuideAction,
    db: Session = Depends(get_db),
) -> Any:
    try:
        return assignment.reject_selection(db, request_id, action.student_id)
    except WanderNestError as exc:
        raise to_http_exception(exc)
