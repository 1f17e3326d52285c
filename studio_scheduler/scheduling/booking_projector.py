"""Read side of the booking ledger: calendar projections per participant."""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from studio_scheduler.core import config
from studio_scheduler.core.errors import InvalidRange, StoreUnavailable
from studio_scheduler.models.booking import Booking as BookingRow
from studio_scheduler.models.studio import Artist, Studio
from studio_scheduler.models.user import User
from studio_scheduler.scheduling.booking_lifecycle import effective_status
from studio_scheduler.scheduling.clock import Clock, system_clock
from studio_scheduler.scheduling.participants import get_artist_id, get_owned_studio
from studio_scheduler.scheduling.records import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    Participant,
    Role,
    to_booking_records,
)
from studio_scheduler.scheduling.time_grid import CalendarCell, build_month_grid, mark_bookings, month_bounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingScope:
    role: Role
    owner_id: int


@dataclass(frozen=True)
class MonthBookings:
    year: int
    month: int
    cells: list[CalendarCell]
    bookings_by_day: dict[date, list[Booking]]


def group_by_day(bookings: Iterable[Booking]) -> dict[date, list[Booking]]:
    grouped: dict[date, list[Booking]] = defaultdict(list)
    for booking in bookings:
        grouped[booking.day].append(booking)
    return dict(grouped)


class BookingProjector:
    def __init__(self, db: Session, clock: Clock = system_clock) -> None:
        self.db = db
        self.clock = clock

    def resolve_scope(self, participant: Participant) -> BookingScope:
        if participant.role == Role.STUDIO:
            return BookingScope(role=Role.STUDIO, owner_id=get_owned_studio(self.db, participant).id)
        return BookingScope(role=Role.ARTIST, owner_id=get_artist_id(self.db, participant))

    def bookings_between(
        self,
        participant: Participant,
        start: datetime,
        end: datetime,
        statuses: Iterable[BookingStatus] = ACTIVE_BOOKING_STATUSES,
    ) -> list[Booking]:
        """Bookings starting within ``[start, end]``, earliest first, with display names attached."""
        scope = self.resolve_scope(participant)

        try:
            query = (
                self.db.query(BookingRow, Studio.name, User.full_name)
                .join(Studio, Studio.id == BookingRow.studio_id)
                .join(Artist, Artist.id == BookingRow.artist_id)
                .outerjoin(User, User.id == Artist.user_id)
                .filter(
                    BookingRow.start_datetime >= start,
                    BookingRow.start_datetime <= end,
                    BookingRow.status.in_([status.value for status in statuses]),
                )
            )
            if scope.role == Role.STUDIO:
                query = query.filter(BookingRow.studio_id == scope.owner_id)
            else:
                query = query.filter(BookingRow.artist_id == scope.owner_id)

            rows = query.order_by(BookingRow.start_datetime.asc(), BookingRow.id.asc()).all()
        except SQLAlchemyError as exc:
            logger.exception('Loading bookings failed for user %s', participant.user_id)
            raise StoreUnavailable() from exc

        return to_booking_records(tuple(row) for row in rows)

    def get_bookings_for_month(self, participant: Participant, year: int, month: int) -> MonthBookings:
        now = self.clock()
        try:
            grid = build_month_grid(year, month, today=now.date())
        except ValueError as exc:
            raise InvalidRange(str(exc)) from exc
        month_start, month_end = month_bounds(year, month)

        bookings = [
            booking
            for booking in self.bookings_between(participant, month_start, month_end)
            if effective_status(booking, now) in ACTIVE_BOOKING_STATUSES
        ]
        bookings_by_day = group_by_day(bookings)

        return MonthBookings(
            year=year,
            month=month,
            cells=mark_bookings(grid, bookings_by_day, config.DAY_PREVIEW_LIMIT),
            bookings_by_day=bookings_by_day,
        )

    def get_bookings_for_day(self, participant: Participant, day: date) -> list[Booking]:
        now = self.clock()
        return [
            booking
            for booking in self.bookings_between(
                participant,
                datetime.combine(day, time.min),
                datetime.combine(day, time.max),
            )
            if effective_status(booking, now) in ACTIVE_BOOKING_STATUSES
        ]

    def get_booking_history(
        self,
        participant: Participant,
        status: BookingStatus,
        start: datetime = datetime.min,
        end: datetime = datetime.max,
    ) -> list[Booking]:
        """Bookings whose status, after the time-based completion rule, equals ``status``."""
        now = self.clock()
        stored_statuses = {status}
        if status == BookingStatus.COMPLETED:
            stored_statuses.add(BookingStatus.CONFIRMED)

        history: list[Booking] = []
        for booking in self.bookings_between(participant, start, end, statuses=stored_statuses):
            current = effective_status(booking, now)
            if current == status:
                history.append(booking.model_copy(update={'status': current}))
        return history
