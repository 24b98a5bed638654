from sqlalchemy import Column, Integer, String, Text, Float, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship

from .base import BaseModel, new_id
from .statuses import RequestStatus
from .types import CaseInsensitiveEnum


class TouristRequest(BaseModel):
    """A trip request submitted by a tourist.

    ``dates`` holds the loosely typed selector the booking form submits,
    either ``{"date": "YYYY-MM-DD"}`` or ``{"start": ..., "end": ...}``.
    ``assigned_student_id`` is only ever set together with
    ``status == ACCEPTED``.
    """

    __tablename__ = "tourist_requests"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String, nullable=False, index=True)
    tourist_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    whatsapp = Column(String, nullable=True)
    contact_method = Column(String, nullable=False, default="email")

    city = Column(String, nullable=False, index=True)
    dates = Column(JSON, nullable=False)
    preferred_time = Column(String, nullable=False, default="flexible")
    number_of_guests = Column(Integer, nullable=False, default=1)
    group_type = Column(String, nullable=False, default="solo")
    service_type = Column(String, nullable=False, default="guided_experience")

    preferred_nationality = Column(String, nullable=True)
    preferred_languages = Column(JSON, nullable=False, default=list)
    preferred_gender = Column(String, nullable=True)
    interests = Column(JSON, nullable=False, default=list)
    budget = Column(Float, nullable=True)
    trip_notes = Column(Text, nullable=True)

    status = Column(
        CaseInsensitiveEnum(RequestStatus, name="requeststatus"),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )
    assigned_student_id = Column(
        String(32),
        ForeignKey("students.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    expires_at = Column(DateTime, nullable=False)

    selections = relationship(
        "RequestSelection",
        back_populates="request",
        cascade="all, delete-orphan",
    )
    assigned_student = relationship("Student", foreign_keys=[assigned_student_id])
    review = relationship("Review", back_populates="request", uselist=False)
