from sqlalchemy import Column, Integer, String, Float, JSON, ForeignKey
from sqlalchemy.orm import relationship

from .base import BaseModel, new_id
from .statuses import StudentStatus, ReliabilityBadge
from .types import CaseInsensitiveEnum


class Student(BaseModel):
    """A verified student who can be matched to tourists as a local guide."""

    __tablename__ = "students"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    city = Column(String, nullable=True, index=True)
    status = Column(
        CaseInsensitiveEnum(StudentStatus, name="studentstatus"),
        nullable=False,
        default=StudentStatus.PENDING_APPROVAL,
        index=True,
    )
    gender = Column(String, nullable=True)
    nationality = Column(String, nullable=True)
    institute = Column(String, nullable=True)
    languages = Column(JSON, nullable=False, default=list)
    interests = Column(JSON, nullable=False, default=list)

    # Aggregates recomputed whenever a review is created
    average_rating = Column(Float, nullable=True)
    no_show_count = Column(Integer, nullable=False, default=0)
    trips_hosted = Column(Integer, nullable=False, default=0)
    reliability_badge = Column(
        CaseInsensitiveEnum(ReliabilityBadge, name="reliabilitybadge"),
        nullable=True,
    )

    availability = relationship(
        "StudentAvailability",
        back_populates="student",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    selections = relationship("RequestSelection", back_populates="student")
    reviews = relationship("Review", back_populates="student")


class StudentAvailability(BaseModel):
    """One weekly slot; ``day_of_week`` runs 0 (Sunday) to 6 (Saturday)."""

    __tablename__ = "student_availability"

    id = Column(String(32), primary_key=True, default=new_id)
    student_id = Column(
        String(32),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(String, nullable=False, default="09:00")
    end_time = Column(String, nullable=False, default="17:00")
    note = Column(String, nullable=True)

    student = relationship("Student", back_populates="availability")
