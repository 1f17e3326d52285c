"""Studio and artist model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String
from studio_scheduler.database import Base


class Studio(Base):
    """A bookable studio owned by a single studio user."""
    __tablename__ = "studios"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    hourly_rate = Column(Numeric(10, 2))
    instant_book = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Artist(Base):
    """The booking-side profile of an artist user."""
    __tablename__ = "artists"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)
