from sqlalchemy import Column, Integer, String, Text, Float, Boolean, JSON, ForeignKey
from sqlalchemy.orm import relationship

from .base import BaseModel, new_id


class Review(BaseModel):
    __tablename__ = "reviews"

    id = Column(String(32), primary_key=True, default=new_id)
    # One review per request
    request_id = Column(
        String(32),
        ForeignKey("tourist_requests.id"),
        nullable=False,
        unique=True,
    )
    student_id = Column(String(32), ForeignKey("students.id"), nullable=False, index=True)

    rating = Column(Integer, nullable=False)
    text = Column(Text, nullable=True)
    attributes = Column(JSON, nullable=False, default=list)
    no_show = Column(Boolean, nullable=False, default=False)
    price_paid = Column(Float, nullable=True)
    is_anonymous = Column(Boolean, nullable=False, default=False)

    request = relationship("TouristRequest", back_populates="review")
    student = relationship("Student", back_populates="reviews")
