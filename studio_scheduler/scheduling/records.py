"""Typed records handed out by the scheduling engine.

Rows read from the store are validated into these models at the adapter
boundary. A row that fails validation is logged and skipped instead of being
passed inward half-formed.
"""

import logging
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)


class Role(str, Enum):
    STUDIO = 'studio'
    ARTIST = 'artist'


class BookingStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'


ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class Participant(BaseModel):
    """An authenticated user and the side of the marketplace they act for."""
    user_id: int
    role: Role

    class Config:
        frozen = True


class AvailabilityWindow(BaseModel):
    id: int
    studio_id: int
    date: date
    start_time: time
    end_time: time
    price_override: Decimal | None = None
    is_available: bool = True

    class Config:
        from_attributes = True
        frozen = True

    @field_validator('price_override')
    @classmethod
    def validate_price_override(cls, value: Decimal | None) -> Decimal | None:
        if value is not None and value < 0:
            raise ValueError('Price override cannot be negative.')
        return value

    @model_validator(mode='after')
    def validate_range(self) -> 'AvailabilityWindow':
        if self.start_time >= self.end_time:
            raise ValueError('End time must be after start time.')
        return self

    def overlaps(self, start_time: time, end_time: time) -> bool:
        return self.start_time < end_time and start_time < self.end_time

    def covers(self, start: datetime, end: datetime) -> bool:
        return (
            start.date() == self.date
            and end.date() == self.date
            and self.start_time <= start.time()
            and end.time() <= self.end_time
        )


class Booking(BaseModel):
    id: int
    studio_id: int
    artist_id: int
    start_datetime: datetime
    end_datetime: datetime
    status: BookingStatus
    total_hours: Decimal
    hourly_rate: Decimal
    total_amount: Decimal
    booking_notes: str | None = None
    artist_requirements: str | None = None
    cancellation_reason: str | None = None
    cancelled_by: int | None = None
    cancelled_at: datetime | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    studio_name: str | None = None
    artist_name: str | None = None

    class Config:
        from_attributes = True
        frozen = True

    @model_validator(mode='after')
    def validate_range(self) -> 'Booking':
        if self.start_datetime >= self.end_datetime:
            raise ValueError('Booking must end after it starts.')
        return self

    @property
    def day(self) -> date:
        return self.start_datetime.date()


def to_window_records(rows: Iterable[Any]) -> list[AvailabilityWindow]:
    windows: list[AvailabilityWindow] = []
    for row in rows:
        try:
            windows.append(AvailabilityWindow.model_validate(row))
        except ValidationError as exc:
            logger.warning('Skipping malformed availability row id=%s: %s', getattr(row, 'id', None), exc)
    return windows


def to_booking_records(rows: Iterable[Any]) -> list[Booking]:
    """Validate booking rows, optionally given as ``(booking, studio_name, artist_name)`` tuples."""
    bookings: list[Booking] = []
    for row in rows:
        if isinstance(row, tuple):
            booking_row, studio_name, artist_name = row
        else:
            booking_row, studio_name, artist_name = row, None, None

        try:
            booking = Booking.model_validate(booking_row)
        except ValidationError as exc:
            logger.warning('Skipping malformed booking row id=%s: %s', getattr(booking_row, 'id', None), exc)
            continue

        if studio_name is not None or artist_name is not None:
            booking = booking.model_copy(update={'studio_name': studio_name, 'artist_name': artist_name})
        bookings.append(booking)
    return bookings
