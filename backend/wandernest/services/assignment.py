"""Booking assignment: how a tourist request finds its one guide.

Request lifecycle::

    PENDING ──select──▶ MATCHED ──accept/assign──▶ ACCEPTED
       │                   │
       ├──(expires_at)──▶ EXPIRED
       └──────cancel───────┴──────────────────────▶ CANCELLED

Each shortlisted guide has a ``RequestSelection`` that goes ``pending`` to
``accepted`` or ``rejected`` exactly once. At most one selection per request
is ever ``accepted``; the guarded ``UPDATE`` that moves the request to
ACCEPTED is what serialises competing guides.

Every operation commits before returning. Emails are the caller's job, after
the commit, using the snapshots in the returned outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..crud.crud_tourist_request import get_tourist_request_or_404
from ..models import OPEN_REQUEST_STATUSES, RequestStatus, SelectionStatus, StudentStatus
from ..notifications.intents.booking_assignment import (
    GuideSnapshot,
    RequestSnapshot,
    snapshot_guide,
    snapshot_request,
)
from ..utils.errors import (
    ConflictError,
    GuideNotApproved,
    InvalidSelection,
    RequestAlreadyAccepted,
    RequestClosed,
    RequestExpired,
    SelectionAlreadyResolved,
    SelectionConflict,
    SelectionNotFound,
    StudentNotFound,
)
from ..utils.redis_cache import MatchCache, StudentMetricsCache
from . import matching

logger = logging.getLogger(__name__)


@dataclass
class SelectionOutcome:
    request: RequestSnapshot
    guides: List[GuideSnapshot]
    selections: List[models.RequestSelection]


@dataclass
class AcceptOutcome:
    selection: models.RequestSelection
    request: RequestSnapshot
    guide: GuideSnapshot
    tourist_contact: dict = field(default_factory=dict)


@dataclass
class AssignOutcome:
    selection_id: str
    request: RequestSnapshot
    guide: GuideSnapshot
    previous_student_id: Optional[str] = None


# ─── Helpers ───────────────────────────────────────────────────────────────────


def _is_past_deadline(request: models.TouristRequest, now: datetime) -> bool:
    return request.expires_at is not None and now > request.expires_at


def _ensure_open(request: models.TouristRequest, now: datetime) -> None:
    """Raise unless guides may still be selected for or accept ``request``."""
    if request.status == RequestStatus.ACCEPTED:
        raise RequestAlreadyAccepted()
    if request.status == RequestStatus.CANCELLED:
        raise RequestClosed("This request has been cancelled.")
    if request.status == RequestStatus.EXPIRED or _is_past_deadline(request, now):
        raise RequestExpired()


def _lock_request(db: Session, request_id: str) -> models.TouristRequest:
    """Re-read the request row inside the write transaction.

    ``FOR UPDATE`` holds the row on databases that support it; SQLite
    serialises writers on its own.
    """
    request = (
        db.query(models.TouristRequest)
        .filter(models.TouristRequest.id == request_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if request is None:
        # Deleted between the pre-check and the transaction
        raise RequestClosed()
    return request


def _claim_failure(db: Session, request_id: str) -> ConflictError:
    """Explain why a guarded request update matched no row."""
    current = (
        db.query(models.TouristRequest.status)
        .filter(models.TouristRequest.id == request_id)
        .scalar()
    )
    db.rollback()
    if current == RequestStatus.CANCELLED:
        return RequestClosed("This request has been cancelled.")
    if current == RequestStatus.EXPIRED:
        return RequestExpired()
    if current == RequestStatus.ACCEPTED:
        return RequestAlreadyAccepted()
    return SelectionConflict(field="request_id")


def _invalidate_matches(cache: Optional[MatchCache], request_id: str) -> None:
    (cache or MatchCache()).invalidate(request_id)


def _invalidate_metrics(cache: Optional[StudentMetricsCache], *student_ids: Optional[str]) -> None:
    cache = cache or StudentMetricsCache()
    for student_id in student_ids:
        if student_id:
            cache.invalidate(student_id)


def _tourist_contact(request: models.TouristRequest) -> dict:
    return {
        "email": request.email,
        "name": request.tourist_name,
        "phone": request.phone,
        "whatsapp": request.whatsapp,
        "contact_method": request.contact_method,
    }


# ─── Matches ───────────────────────────────────────────────────────────────────


def get_request_matches(
    db: Session, request_id: str, cache: Optional[MatchCache] = None
) -> List[dict]:
    """Ranked match cards for an open request, cached for a few minutes."""
    request = get_tourist_request_or_404(db, request_id)
    _ensure_open(request, datetime.utcnow())

    cache = cache or MatchCache()
    cached = cache.get(request_id)
    if cached is not None:
        return cached

    cards = [matching.match_card(s, request) for s in matching.find_matches(db, request)]
    cache.set(request_id, cards)
    return cards


def resolve_anonymous_ids(
    db: Session,
    request_id: str,
    anonymous_ids: Iterable[str],
    cache: Optional[MatchCache] = None,
) -> List[str]:
    """Map the ``Guide #NNNN`` labels a tourist picked back to student ids.

    Only guides currently matched to this request can be resolved.
    """
    by_label = {
        card["anonymous_id"]: card["student_id"]
        for card in get_request_matches(db, request_id, cache)
    }
    student_ids = []
    for label in anonymous_ids:
        if label not in by_label:
            raise InvalidSelection(f"{label} is not a match for this request.", field="anonymous_ids")
        student_ids.append(by_label[label])
    return student_ids


# ─── Transitions ───────────────────────────────────────────────────────────────


def select_guides(
    db: Session,
    request_id: str,
    student_ids: Iterable[str],
    cache: Optional[MatchCache] = None,
) -> SelectionOutcome:
    """Shortlist guides for a request, replacing any previous shortlist."""
    request = get_tourist_request_or_404(db, request_id)
    now = datetime.utcnow()
    _ensure_open(request, now)

    ids = list(dict.fromkeys(student_ids))
    if not ids or len(ids) > settings.MAX_SELECTED_GUIDES:
        raise InvalidSelection(
            f"Select between 1 and {settings.MAX_SELECTED_GUIDES} guides."
        )
    students = (
        db.query(models.Student)
        .filter(
            models.Student.id.in_(ids),
            models.Student.status == StudentStatus.APPROVED,
        )
        .all()
    )
    if len(students) != len(ids):
        raise InvalidSelection()
    if any(s.city != request.city for s in students):
        raise InvalidSelection("Selected guides must be in the same city as the request.")

    try:
        claimed = (
            db.query(models.TouristRequest)
            .filter(
                models.TouristRequest.id == request_id,
                models.TouristRequest.status.in_(OPEN_REQUEST_STATUSES),
            )
            .update({"status": RequestStatus.MATCHED}, synchronize_session=False)
        )
        if claimed != 1:
            raise _claim_failure(db, request_id)

        db.query(models.RequestSelection).filter(
            models.RequestSelection.request_id == request_id
        ).delete(synchronize_session=False)
        by_id = {s.id: s for s in students}
        selections = [
            models.RequestSelection(
                request_id=request_id,
                student_id=student_id,
                status=SelectionStatus.PENDING,
            )
            for student_id in ids
        ]
        db.add_all(selections)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(request)
    for selection in selections:
        db.refresh(selection)
    _invalidate_matches(cache, request_id)
    logger.info("Request %s matched with %d guide(s)", request_id, len(selections))
    return SelectionOutcome(
        request=snapshot_request(request),
        guides=[snapshot_guide(by_id[i]) for i in ids],
        selections=selections,
    )


def accept_selection(
    db: Session,
    request_id: str,
    student_id: str,
    cache: Optional[MatchCache] = None,
    metrics_cache: Optional[StudentMetricsCache] = None,
) -> AcceptOutcome:
    """A shortlisted guide takes the booking.

    The first guide to commit wins. The request moves to ACCEPTED, the
    guide's selection to ``accepted`` and every sibling selection to
    ``rejected`` in a single transaction.
    """
    request = get_tourist_request_or_404(db, request_id)
    now = datetime.utcnow()
    _ensure_open(request, now)

    selection = (
        db.query(models.RequestSelection)
        .filter(
            models.RequestSelection.request_id == request_id,
            models.RequestSelection.student_id == student_id,
        )
        .first()
    )
    if selection is None:
        raise SelectionNotFound()
    if selection.status != SelectionStatus.PENDING:
        # Siblings are rejected by the winning accept; report that instead
        db.refresh(request)
        _ensure_open(request, now)
        raise SelectionAlreadyResolved()

    student = db.query(models.Student).filter(models.Student.id == student_id).first()
    if student is None:
        raise StudentNotFound()
    if student.status != StudentStatus.APPROVED:
        raise GuideNotApproved()

    try:
        request = _lock_request(db, request_id)
        _ensure_open(request, now)

        claimed = (
            db.query(models.TouristRequest)
            .filter(
                models.TouristRequest.id == request_id,
                models.TouristRequest.status.in_(OPEN_REQUEST_STATUSES),
                models.TouristRequest.assigned_student_id.is_(None),
            )
            .update(
                {"status": RequestStatus.ACCEPTED, "assigned_student_id": student_id},
                synchronize_session=False,
            )
        )
        if claimed != 1:
            raise _claim_failure(db, request_id)

        won = (
            db.query(models.RequestSelection)
            .filter(
                models.RequestSelection.id == selection.id,
                models.RequestSelection.status == SelectionStatus.PENDING,
            )
            .update(
                {"status": SelectionStatus.ACCEPTED, "accepted_at": now},
                synchronize_session=False,
            )
        )
        if won != 1:
            raise SelectionConflict()

        rejected = (
            db.query(models.RequestSelection)
            .filter(
                models.RequestSelection.request_id == request_id,
                models.RequestSelection.id != selection.id,
            )
            .update({"status": SelectionStatus.REJECTED}, synchronize_session=False)
        )
        db.query(models.Student).filter(models.Student.id == student_id).update(
            {"trips_hosted": models.Student.trips_hosted + 1},
            synchronize_session=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(request)
    db.refresh(selection)
    db.refresh(student)
    _invalidate_matches(cache, request_id)
    _invalidate_metrics(metrics_cache, student_id)
    logger.info(
        "Request %s accepted by student %s; %d sibling selection(s) rejected",
        request_id,
        student_id,
        rejected,
    )
    return AcceptOutcome(
        selection=selection,
        request=snapshot_request(request),
        guide=snapshot_guide(student),
        tourist_contact=_tourist_contact(request),
    )


def reject_selection(db: Session, request_id: str, student_id: str) -> models.RequestSelection:
    """A shortlisted guide declines; only a still-pending selection can move."""
    selection = (
        db.query(models.RequestSelection)
        .filter(
            models.RequestSelection.request_id == request_id,
            models.RequestSelection.student_id == student_id,
        )
        .first()
    )
    if selection is None:
        raise SelectionNotFound()
    if selection.status == SelectionStatus.REJECTED:
        raise SelectionAlreadyResolved("You have already rejected this request.")
    if selection.status == SelectionStatus.ACCEPTED:
        raise SelectionAlreadyResolved("Cannot reject an already accepted request.")
    _ensure_open(get_tourist_request_or_404(db, request_id), datetime.utcnow())

    updated = (
        db.query(models.RequestSelection)
        .filter(
            models.RequestSelection.id == selection.id,
            models.RequestSelection.status == SelectionStatus.PENDING,
        )
        .update({"status": SelectionStatus.REJECTED}, synchronize_session=False)
    )
    if updated == 0:
        db.rollback()
        raise SelectionConflict()
    db.commit()
    db.refresh(selection)
    logger.info("Student %s rejected request %s", student_id, request_id)
    return selection


def assign_guide(
    db: Session,
    request_id: str,
    student_id: str,
    cache: Optional[MatchCache] = None,
    metrics_cache: Optional[StudentMetricsCache] = None,
) -> AssignOutcome:
    """Admin override: book ``student_id`` for the request directly.

    Works with or without an existing selection and may move an accepted
    booking from one guide to another, keeping ``trips_hosted`` in step.
    """
    request = get_tourist_request_or_404(db, request_id)
    student = db.query(models.Student).filter(models.Student.id == student_id).first()
    if student is None:
        raise StudentNotFound()
    if student.status != StudentStatus.APPROVED:
        raise GuideNotApproved("Student must be approved before assignment.")

    now = datetime.utcnow()
    try:
        request = _lock_request(db, request_id)
        if request.status == RequestStatus.CANCELLED:
            raise RequestClosed("Cannot assign guides to a cancelled request.")
        if request.status == RequestStatus.EXPIRED or (
            request.status != RequestStatus.ACCEPTED and _is_past_deadline(request, now)
        ):
            raise RequestExpired("Cannot assign guides to an expired request.")

        observed_status = request.status
        previous_id = request.assigned_student_id
        was_accepted = observed_status == RequestStatus.ACCEPTED

        guard = db.query(models.TouristRequest).filter(
            models.TouristRequest.id == request_id,
            models.TouristRequest.status == observed_status,
        )
        if previous_id is None:
            guard = guard.filter(models.TouristRequest.assigned_student_id.is_(None))
        else:
            guard = guard.filter(models.TouristRequest.assigned_student_id == previous_id)
        claimed = guard.update(
            {"status": RequestStatus.ACCEPTED, "assigned_student_id": student_id},
            synchronize_session=False,
        )
        if claimed != 1:
            raise _claim_failure(db, request_id)

        selection = (
            db.query(models.RequestSelection)
            .filter(
                models.RequestSelection.request_id == request_id,
                models.RequestSelection.student_id == student_id,
            )
            .first()
        )
        if selection is None:
            selection = models.RequestSelection(request_id=request_id, student_id=student_id)
            db.add(selection)
        selection.status = SelectionStatus.ACCEPTED
        selection.accepted_at = now
        db.flush()

        db.query(models.RequestSelection).filter(
            models.RequestSelection.request_id == request_id,
            models.RequestSelection.id != selection.id,
            models.RequestSelection.status.in_((SelectionStatus.PENDING, SelectionStatus.ACCEPTED)),
        ).update({"status": SelectionStatus.REJECTED}, synchronize_session=False)

        if not was_accepted or previous_id != student_id:
            db.query(models.Student).filter(models.Student.id == student_id).update(
                {"trips_hosted": models.Student.trips_hosted + 1},
                synchronize_session=False,
            )
        if was_accepted and previous_id and previous_id != student_id:
            db.query(models.Student).filter(
                models.Student.id == previous_id,
                models.Student.trips_hosted > 0,
            ).update(
                {"trips_hosted": models.Student.trips_hosted - 1},
                synchronize_session=False,
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(request)
    db.refresh(student)
    _invalidate_matches(cache, request_id)
    _invalidate_metrics(metrics_cache, student_id, previous_id)
    logger.info(
        "Admin assigned student %s to request %s (previous=%s)",
        student_id,
        request_id,
        previous_id,
    )
    return AssignOutcome(
        selection_id=selection.id,
        request=snapshot_request(request),
        guide=snapshot_guide(student),
        previous_student_id=previous_id if previous_id != student_id else None,
    )


def cancel_request(
    db: Session, request_id: str, cache: Optional[MatchCache] = None
) -> models.TouristRequest:
    """Withdraw a request that no guide has taken yet."""
    request = get_tourist_request_or_404(db, request_id)
    if request.status not in OPEN_REQUEST_STATUSES:
        _ensure_open(request, datetime.utcnow())
    try:
        claimed = (
            db.query(models.TouristRequest)
            .filter(
                models.TouristRequest.id == request_id,
                models.TouristRequest.status.in_(OPEN_REQUEST_STATUSES),
            )
            .update({"status": RequestStatus.CANCELLED}, synchronize_session=False)
        )
        if claimed != 1:
            raise _claim_failure(db, request_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(request)
    _invalidate_matches(cache, request_id)
    logger.info("Request %s cancelled", request_id)
    return request
