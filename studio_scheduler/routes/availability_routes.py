from datetime import date, datetime, time, timedelta
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from studio_scheduler.auth.dependencies import get_current_participant, get_optional_participant
from studio_scheduler.core import config
from studio_scheduler.core.errors import InvalidRange, NotFound, SchedulingError, Unauthorized, to_http_exception
from studio_scheduler.routes.deps import ensure_database_ready, get_db, get_now
from studio_scheduler.scheduling.availability_store import AvailabilityStore
from studio_scheduler.scheduling.participants import get_owned_studio, require_studio_owner
from studio_scheduler.scheduling.records import Participant
from studio_scheduler.scheduling.time_grid import CalendarCell, build_month_grid

router = APIRouter(tags=['availability'])

MAX_LISTING_RANGE_DAYS = 92


class WindowRequest(BaseModel):
    date: date
    start_time: time
    end_time: time
    price_override: Decimal | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def drop_seconds(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @field_validator('price_override')
    @classmethod
    def round_price(cls, value: Decimal | None) -> Decimal | None:
        if value is None:
            return None
        return value.quantize(Decimal('0.01'))


class AvailabilityWindowResponse(BaseModel):
    id: int
    studio_id: int
    date: date
    start_time: time
    end_time: time
    price_override: Decimal | None = None
    is_available: bool

    class Config:
        from_attributes = True


class WindowSlotResponse(AvailabilityWindowResponse):
    is_booked: bool


class StagedWindowResponse(BaseModel):
    studio_id: int
    date: date
    start_time: time
    end_time: time
    price_override: Decimal | None = None


class CalendarCellResponse(BaseModel):
    day_number: int
    is_current_month: bool
    is_today: bool
    full_date: date | None = None
    has_availability: bool = False


class MonthGridResponse(BaseModel):
    year: int
    month: int
    cells: list[CalendarCellResponse]


def to_cell_response(cell: CalendarCell) -> CalendarCellResponse:
    return CalendarCellResponse(
        day_number=cell.day_number,
        is_current_month=cell.is_current_month,
        is_today=cell.is_today,
        full_date=cell.full_date,
        has_availability=cell.has_availability,
    )


def can_see_blackouts(db: Session, participant: Participant | None, studio_id: int) -> bool:
    if participant is None:
        return False
    try:
        require_studio_owner(db, participant, studio_id)
    except (NotFound, Unauthorized):
        return False
    return True


@router.get('/grid', response_model=MonthGridResponse)
def get_month_grid(
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
    studio_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    try:
        grid = build_month_grid(year, month, today=now.date())
    except ValueError as exc:
        raise to_http_exception(InvalidRange(str(exc))) from exc

    if studio_id is None:
        return MonthGridResponse(year=year, month=month, cells=[to_cell_response(cell) for cell in grid])

    ensure_database_ready()

    try:
        cells = AvailabilityStore(db).availability_grid(studio_id, grid)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return MonthGridResponse(year=year, month=month, cells=[to_cell_response(cell) for cell in cells])


@router.get('/studios/{studio_id}/dates/{day}', response_model=list[WindowSlotResponse])
def get_availability_for_date(
    studio_id: int,
    day: date,
    db: Session = Depends(get_db),
    participant: Participant | None = Depends(get_optional_participant),
):
    ensure_database_ready()

    try:
        include_blackouts = can_see_blackouts(db, participant, studio_id)
        occupancy = AvailabilityStore(db).availability_with_bookings(studio_id, day, day)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [
        WindowSlotResponse(**entry.window.model_dump(), is_booked=entry.is_booked)
        for entry in occupancy
        if include_blackouts or entry.window.is_available
    ]


@router.get('/studios/{studio_id}/windows', response_model=list[WindowSlotResponse])
def list_studio_windows(
    studio_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    participant: Participant | None = Depends(get_optional_participant),
):
    range_start = start_date or now.date()
    range_end = end_date or range_start + timedelta(days=config.BOOKING_LOOKAHEAD_DAYS)

    if range_end < range_start:
        raise to_http_exception(InvalidRange('end_date must not be before start_date.'))
    if (range_end - range_start).days > MAX_LISTING_RANGE_DAYS:
        raise to_http_exception(InvalidRange(f'Date ranges are limited to {MAX_LISTING_RANGE_DAYS} days.'))

    ensure_database_ready()

    try:
        include_blackouts = can_see_blackouts(db, participant, studio_id)
        occupancy = AvailabilityStore(db).availability_with_bookings(
            studio_id,
            range_start,
            range_end,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [
        WindowSlotResponse(**entry.window.model_dump(), is_booked=entry.is_booked)
        for entry in occupancy
        if include_blackouts or entry.window.is_available
    ]


@router.post('/studios/{studio_id}/windows/stage', response_model=StagedWindowResponse)
def stage_availability(
    studio_id: int,
    data: WindowRequest,
    db: Session = Depends(get_db),
    participant: Participant = Depends(get_current_participant),
):
    ensure_database_ready()

    try:
        require_studio_owner(db, participant, studio_id)
        AvailabilityStore(db).check_window(
            studio_id,
            data.date,
            data.start_time,
            data.end_time,
            price_override=data.price_override,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return StagedWindowResponse(studio_id=studio_id, **data.model_dump())


@router.post(
    '/studios/{studio_id}/windows',
    response_model=AvailabilityWindowResponse,
    status_code=status.HTTP_201_CREATED,
)
def commit_availability(
    studio_id: int,
    data: WindowRequest,
    is_available: bool = Query(default=True),
    db: Session = Depends(get_db),
    participant: Participant = Depends(get_current_participant),
):
    ensure_database_ready()

    try:
        require_studio_owner(db, participant, studio_id)
        window = AvailabilityStore(db).create_window(
            studio_id,
            data.date,
            data.start_time,
            data.end_time,
            price_override=data.price_override,
            is_available=is_available,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return window


@router.delete('/windows/{window_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_availability(
    window_id: int,
    db: Session = Depends(get_db),
    participant: Participant = Depends(get_current_participant),
):
    ensure_database_ready()

    try:
        studio = get_owned_studio(db, participant)
        AvailabilityStore(db).delete_window(window_id, studio_id=studio.id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
