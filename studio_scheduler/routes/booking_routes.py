from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from studio_scheduler.auth.dependencies import get_current_participant
from studio_scheduler.core.errors import SchedulingError, to_http_exception
from studio_scheduler.routes.deps import ensure_database_ready, get_db, get_now
from studio_scheduler.scheduling.booking_projector import BookingProjector
from studio_scheduler.scheduling.booking_service import BookingService
from studio_scheduler.scheduling.clock import fixed_clock
from studio_scheduler.scheduling.records import Booking, BookingStatus, Participant
from studio_scheduler.scheduling.time_grid import CalendarCell

router = APIRouter(tags=['bookings'])


class CreateBookingRequest(BaseModel):
    studio_id: int
    start_datetime: datetime
    end_datetime: datetime
    booking_notes: str | None = None
    artist_requirements: str | None = None

    @field_validator('start_datetime', 'end_datetime')
    @classmethod
    def require_naive_local_time(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            raise ValueError('Send booking times as local time without a time zone offset.')
        return value.replace(second=0, microsecond=0)


class CancelBookingRequest(BaseModel):
    reason: str | None = None


class BookingResponse(BaseModel):
    id: int
    studio_id: int
    artist_id: int
    studio_name: str | None = None
    artist_name: str | None = None
    start_datetime: datetime
    end_datetime: datetime
    status: BookingStatus
    total_hours: Decimal
    hourly_rate: Decimal
    total_amount: Decimal
    booking_notes: str | None = None
    artist_requirements: str | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None

    class Config:
        from_attributes = True


class BookingCellResponse(BaseModel):
    day_number: int
    is_current_month: bool
    is_today: bool
    full_date: date | None = None
    bookings: list[BookingResponse] = []
    overflow_count: int = 0


class BookingMonthResponse(BaseModel):
    year: int
    month: int
    total_bookings: int
    cells: list[BookingCellResponse]


def to_booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse.model_validate(booking)


def to_booking_cell_response(cell: CalendarCell) -> BookingCellResponse:
    return BookingCellResponse(
        day_number=cell.day_number,
        is_current_month=cell.is_current_month,
        is_today=cell.is_today,
        full_date=cell.full_date,
        bookings=[to_booking_response(booking) for booking in cell.items],
        overflow_count=cell.overflow_count,
    )


@router.get('/month', response_model=BookingMonthResponse)
def get_bookings_for_month(
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    participant: Participant = Depends(get_current_participant),
):
    ensure_database_ready()

    try:
        projection = BookingProjector(db, clock=fixed_clock(now)).get_bookings_for_month(participant, year, month)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return BookingMonthResponse(
        year=projection.year,
        month=projection.month,
        total_bookings=sum(len(bookings) for bookings in projection.bookings_by_day.values()),
        cells=[to_booking_cell_response(cell) for cell in projection.cells],
    )


@router.get('/day/{day}', response_model=list[BookingResponse])
def get_bookings_for_day(
    day: date,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    participant: Participant = Depends(get_current_participant),
):
    ensure_database_ready()

    try:
        bookings = BookingProjector(db, clock=fixed_clock(now)).get_bookings_for_day(participant, day)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [to_booking_response(booking) for booking in bookings]


@router.get('/history', response_model=list[BookingResponse])
def get_booking_history(
    booking_status: BookingStatus = Query(..., alias='status'),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    participant: Participant = Depends(get_current_participant),
):
    ensure_database_ready()

    try:
        bookings = BookingProjector(db, clock=fixed_clock(now)).get_booking_history(participant, booking_status)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [to_booking_response(booking) for booking in bookings]


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def request_booking(
    data: CreateBookingRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    participant: Participant = Depends(get_current_participant),
):
    ensure_database_ready()

    try:
        booking = BookingService(db, clock=fixed_clock(now)).request_booking(
            participant,
            data.studio_id,
            data.start_datetime,
            data.end_datetime,
            booking_notes=data.booking_notes,
            artist_requirements=data.artist_requirements,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_booking_response(booking)


@router.post('/{booking_id}/confirm', response_model=BookingResponse)
def confirm_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    participant: Participant = Depends(get_current_participant),
):
    ensure_database_ready()

    try:
        booking = BookingService(db, clock=fixed_clock(now)).confirm_booking(participant, booking_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_booking_response(booking)


@router.post('/{booking_id}/cancel', response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    data: CancelBookingRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    participant: Participant = Depends(get_current_participant),
):
    ensure_database_ready()

    try:
        booking = BookingService(db, clock=fixed_clock(now)).cancel_booking(participant, booking_id, reason=data.reason)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_booking_response(booking)
