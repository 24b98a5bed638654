from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Any

from ..crud import crud_student
from ..schemas import StudentCreate, StudentResponse
from ..utils.errors import StudentNotFound, WanderNestError, to_http_exception
from .dependencies import get_db

router = APIRouter(prefix="/students", tags=["Guides"])


@router.post("", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
def register_student(
    *,
    db: Session = Depends(get_db),
    student_in: StudentCreate,
) -> Any:
    """Sign a guide up; matching ignores them until an admin approves."""
    try:
        return crud_student.create_student(db, student_in)
    except WanderNestError as exc:
        raise to_http_exception(exc)


@router.get("/{student_id}", response_model=StudentResponse)
def get_student(student_id: str, db: Session = Depends(get_db)) -> Any:
    student = crud_student.get_student(db, student_id)
    if student is None:
        raise to_http_exception(StudentNotFound())
    return student
