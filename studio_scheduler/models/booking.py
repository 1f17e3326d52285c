"""Booking model definitions."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from studio_scheduler.database import Base


class Booking(Base):
    """A studio booking requested by an artist. Rows are never deleted; cancellation is a status."""
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("end_datetime > start_datetime", name="check_booking_times"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
        CheckConstraint(
            "total_hours > 0 AND hourly_rate >= 0 AND total_amount >= 0",
            name="check_booking_amounts",
        ),
    )

    id = Column(Integer, primary_key=True)
    studio_id = Column(Integer, ForeignKey("studios.id", ondelete="CASCADE"), nullable=False, index=True)
    artist_id = Column(Integer, ForeignKey("artists.id", ondelete="CASCADE"), nullable=False, index=True)
    start_datetime = Column(DateTime, nullable=False)
    end_datetime = Column(DateTime, nullable=False)
    total_hours = Column(Numeric(6, 2), nullable=False)
    hourly_rate = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")
    booking_notes = Column(Text)
    artist_requirements = Column(Text)
    cancellation_reason = Column(Text)
    cancelled_by = Column(Integer, ForeignKey("users.id"))
    cancelled_at = Column(DateTime)
    confirmed_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
