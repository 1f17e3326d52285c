"""Availability model definitions."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Time,
    UniqueConstraint,
    func,
)
from studio_scheduler.database import Base


class StudioAvailability(Base):
    """A window of time on one date during which a studio is open, or explicitly closed."""
    __tablename__ = "studio_availability"
    __table_args__ = (
        UniqueConstraint("studio_id", "date", "start_time", "end_time", name="uq_studio_availability_window"),
        CheckConstraint("end_time > start_time", name="check_studio_availability_range"),
        CheckConstraint("price_override IS NULL OR price_override >= 0", name="check_studio_availability_price"),
    )

    id = Column(Integer, primary_key=True)
    studio_id = Column(Integer, ForeignKey("studios.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    price_override = Column(Numeric(10, 2))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
