from datetime import datetime
import uuid

from sqlalchemy import Column, DateTime
from ..database import Base  # This is the same Base created by declarative_base()


def new_id() -> str:
    """Opaque string primary key."""
    return uuid.uuid4().hex


class BaseModel(Base):
    __abstract__ = True

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
