import logging
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..utils.errors import ConflictError, StudentNotFound

logger = logging.getLogger(__name__)


def get_student(db: Session, student_id: str) -> Optional[models.Student]:
    return db.query(models.Student).filter(models.Student.id == student_id).first()


def create_student(db: Session, student_in: schemas.StudentCreate) -> models.Student:
    """Register a guide; they cannot be matched until an admin approves them."""
    data = student_in.model_dump(exclude={"availability"})
    db_student = models.Student(**data, status=models.StudentStatus.PENDING_APPROVAL)
    db_student.availability = [
        models.StudentAvailability(**slot.model_dump()) for slot in student_in.availability
    ]
    db.add(db_student)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("A guide with this email already exists.", field="email")
    db.refresh(db_student)
    return db_student


def set_student_status(db: Session, student_id: str, action: str) -> models.Student:
    """Approve or suspend a guide awaiting review."""
    student = get_student(db, student_id)
    if student is None:
        raise StudentNotFound()
    if student.status != models.StudentStatus.PENDING_APPROVAL:
        raise ConflictError(
            "Only guides pending approval can be approved or suspended.",
            field="student_id",
        )
    student.status = (
        models.StudentStatus.APPROVED if action == "approve" else models.StudentStatus.SUSPENDED
    )
    db.commit()
    db.refresh(student)
    return student


def get_pending_students(db: Session, skip: int = 0, limit: int = 100) -> List[models.Student]:
    return (
        db.query(models.Student)
        .filter(models.Student.status == models.StudentStatus.PENDING_APPROVAL)
        .order_by(models.Student.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def bulk_set_student_status(db: Session, student_ids: Iterable[str], action: str) -> int:
    """Approve or suspend many guides at once.

    Guides no longer pending approval are skipped; returns how many moved.
    """
    new_status = (
        models.StudentStatus.APPROVED if action == "approve" else models.StudentStatus.SUSPENDED
    )
    count = (
        db.query(models.Student)
        .filter(
            models.Student.id.in_(list(student_ids)),
            models.Student.status == models.StudentStatus.PENDING_APPROVAL,
        )
        .update({"status": new_status}, synchronize_session=False)
    )
    db.commit()
    logger.info("Bulk %s: %d student(s) moved to %s", action, count, new_status.value)
    return count
