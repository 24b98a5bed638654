import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from .. import models, schemas
from ..core.config import settings
from ..utils.errors import RequestNotFound

logger = logging.getLogger(__name__)


def create_tourist_request(
    db: Session, request_in: schemas.TouristRequestCreate
) -> models.TouristRequest:
    data = request_in.model_dump()
    data["service_type"] = request_in.service_type.value
    db_request = models.TouristRequest(
        **data,
        status=models.RequestStatus.PENDING,
        expires_at=datetime.utcnow() + timedelta(days=settings.REQUEST_EXPIRY_DAYS),
    )
    db.add(db_request)
    db.commit()
    db.refresh(db_request)
    logger.info("Created tourist request %s in %s", db_request.id, db_request.city)
    return db_request


def expire_if_due(db: Session, request: models.TouristRequest) -> models.TouristRequest:
    """Flip a PENDING request whose deadline has passed to EXPIRED.

    Expiry is detected on read; nothing sweeps requests in the background.
    """
    if (
        request.status == models.RequestStatus.PENDING
        and request.expires_at is not None
        and datetime.utcnow() > request.expires_at
    ):
        updated = (
            db.query(models.TouristRequest)
            .filter(
                models.TouristRequest.id == request.id,
                models.TouristRequest.status == models.RequestStatus.PENDING,
            )
            .update({"status": models.RequestStatus.EXPIRED}, synchronize_session=False)
        )
        db.commit()
        db.refresh(request)
        if updated:
            logger.info("TouristRequest id=%s expired on read", request.id)
    return request


def get_tourist_request(db: Session, request_id: str) -> Optional[models.TouristRequest]:
    request = db.query(models.TouristRequest).filter(models.TouristRequest.id == request_id).first()
    if request is None:
        return None
    return expire_if_due(db, request)


def get_tourist_request_or_404(db: Session, request_id: str) -> models.TouristRequest:
    request = get_tourist_request(db, request_id)
    if request is None:
        raise RequestNotFound()
    return request


def get_tourist_requests(db: Session, skip: int = 0, limit: int = 30) -> List[models.TouristRequest]:
    """Newest requests first, for the admin console."""
    rows = (
        db.query(models.TouristRequest)
        .order_by(models.TouristRequest.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return [expire_if_due(db, r) for r in rows]


def get_bookings(db: Session, skip: int = 0, limit: int = 50) -> List[models.TouristRequest]:
    """Like ``get_tourist_requests`` with the assigned guide loaded."""
    rows = (
        db.query(models.TouristRequest)
        .options(joinedload(models.TouristRequest.assigned_student))
        .order_by(models.TouristRequest.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return [expire_if_due(db, r) for r in rows]


def get_selections_by_student(
    db: Session, student_id: str, skip: int = 0, limit: int = 100
) -> List[models.RequestSelection]:
    """Every request a guide has been shortlisted for, newest selection first."""
    rows = (
        db.query(models.RequestSelection)
        .options(joinedload(models.RequestSelection.request))
        .filter(models.RequestSelection.student_id == student_id)
        .order_by(models.RequestSelection.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    for selection in rows:
        expire_if_due(db, selection.request)
    return rows
