from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel, new_id
from .statuses import SelectionStatus
from .types import CaseInsensitiveEnum


class RequestSelection(BaseModel):
    """A guide shortlisted for a tourist request."""

    __tablename__ = "request_selections"
    __table_args__ = (
        UniqueConstraint("request_id", "student_id", name="uq_request_selection_pair"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    request_id = Column(
        String(32),
        ForeignKey("tourist_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id = Column(
        String(32),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(
        CaseInsensitiveEnum(SelectionStatus, name="selectionstatus"),
        nullable=False,
        default=SelectionStatus.PENDING,
    )
    accepted_at = Column(DateTime, nullable=True)

    request = relationship("TouristRequest", back_populates="selections")
    student = relationship("Student", back_populates="selections")
