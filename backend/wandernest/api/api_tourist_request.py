from fastapi import APIRouter, BackgroundTasks, Depends, Path, status
from sqlalchemy.orm import Session
from typing import Any

from ..crud import crud_tourist_request
from ..notifications.intents.booking_assignment import notify_guides_selected
from ..schemas import (
    GuideSelectionCreate,
    MatchListResponse,
    SelectGuidesResponse,
    TouristRequestCreate,
    TouristRequestResponse,
)
from ..services import assignment
from ..utils.errors import WanderNestError, to_http_exception
from ..utils.redis_cache import MatchCache
from .dependencies import get_db, get_match_cache

router = APIRouter(prefix="/tourist/requests", tags=["Tourist Requests"])


@router.post("", response_model=TouristRequestResponse, status_code=status.HTTP_201_CREATED)
def create_tourist_request(
    *,
    db: Session = Depends(get_db),
    request_in: TouristRequestCreate,
) -> Any:
    """Submit a trip request; it stays open for ``REQUEST_EXPIRY_DAYS``."""
    return crud_tourist_request.create_tourist_request(db, request_in)


@router.get("/{request_id}", response_model=TouristRequestResponse)
def get_tourist_request(
    request_id: str = Path(..., title="The ID of the trip request"),
    db: Session = Depends(get_db),
) -> Any:
    """Read a request. A pending request past its deadline comes back EXPIRED."""
    try:
        return crud_tourist_request.get_tourist_request_or_404(db, request_id)
    except WanderNestError as exc:
        raise to_http_exception(exc)


@router.post("/{request_id}/cancel", response_model=TouristRequestResponse)
def cancel_tourist_request(
    request_id: str,
    db: Session = Depends(get_db),
    cache: MatchCache = Depends(get_match_cache),
) -> Any:
    try:
        return assignment.cancel_request(db, request_id, cache=cache)
    except WanderNestError as exc:
        raise to_http_exception(exc)


@router.get("/{request_id}/matches", response_model=MatchListResponse)
def get_matches(
    request_id: str,
    db: Session = Depends(get_db),
    cache: MatchCache = Depends(get_match_cache),
) -> Any:
    """Top guides for the request, identified only by anonymous labels."""
    try:
        cards = assignment.get_request_matches(db, request_id, cache=cache)
    except WanderNestError as exc:
        raise to_http_exception(exc)
    return {"request_id": request_id, "matches": cards}


@router.post("/{request_id}/selections", response_model=SelectGuidesResponse)
def select_guides(
    request_id: str,
    selection_in: GuideSelectionCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    cache: MatchCache = Depends(get_match_cache),
) -> Any:
    """Shortlist matched guides and let each of them know."""
    try:
        student_ids = assignment.resolve_anonymous_ids(
            db, request_id, selection_in.anonymous_ids, cache=cache
        )
        outcome = assignment.select_guides(db, request_id, student_ids, cache=cache)
    except WanderNestError as exc:
        raise to_http_exception(exc)
    background_tasks.add_task(notify_guides_selected, outcome.request, outcome.guides)
    return {"success": True, "selections": outcome.selections}
