"""Availability windows as the studio owner publishes them.

Every call reads the store afresh; nothing is cached between calls.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from studio_scheduler.core.errors import Conflict, InvalidRange, NotFound, SchedulingError, StoreUnavailable
from studio_scheduler.models.availability import StudioAvailability
from studio_scheduler.models.booking import Booking as BookingRow
from studio_scheduler.models.studio import Studio
from studio_scheduler.scheduling.records import (
    ACTIVE_BOOKING_STATUSES,
    AvailabilityWindow,
    to_window_records,
)
from studio_scheduler.scheduling.time_grid import CalendarCell, MonthGrid, mark_availability

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowOccupancy:
    window: AvailabilityWindow
    is_booked: bool


def validate_window_range(start_time: time, end_time: time, price_override: Decimal | None = None) -> None:
    if start_time >= end_time:
        raise InvalidRange('End time must be after start time.')
    if price_override is not None and price_override < 0:
        raise InvalidRange('Price override cannot be negative.')


class AvailabilityStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def list_windows(
        self,
        studio_id: int,
        start_date: date,
        end_date: date,
        available_only: bool = False,
    ) -> list[AvailabilityWindow]:
        try:
            query = self.db.query(StudioAvailability).filter(
                StudioAvailability.studio_id == studio_id,
                StudioAvailability.date >= start_date,
                StudioAvailability.date <= end_date,
            )
            if available_only:
                query = query.filter(StudioAvailability.is_available.is_(True))
            rows = query.order_by(StudioAvailability.date.asc(), StudioAvailability.start_time.asc()).all()
        except SQLAlchemyError as exc:
            logger.exception('Listing availability failed for studio %s', studio_id)
            raise StoreUnavailable() from exc

        return to_window_records(rows)

    def windows_for_date(self, studio_id: int, day: date) -> list[AvailabilityWindow]:
        return self.list_windows(studio_id, day, day)

    def check_window(
        self,
        studio_id: int,
        day: date,
        start_time: time,
        end_time: time,
        price_override: Decimal | None = None,
    ) -> None:
        """Validate a proposed window against current store state without writing it."""
        validate_window_range(start_time, end_time, price_override)

        try:
            overlapping = self._find_overlapping_window(studio_id, day, start_time, end_time)
        except SQLAlchemyError as exc:
            logger.exception('Overlap check failed for studio %s on %s', studio_id, day)
            raise StoreUnavailable() from exc

        if overlapping is not None:
            raise Conflict('This window overlaps existing availability on that date.')

    def create_window(
        self,
        studio_id: int,
        day: date,
        start_time: time,
        end_time: time,
        price_override: Decimal | None = None,
        is_available: bool = True,
    ) -> AvailabilityWindow:
        validate_window_range(start_time, end_time, price_override)

        try:
            studio = self.db.query(Studio).filter(Studio.id == studio_id).with_for_update().first()
            if studio is None:
                raise NotFound('Studio not found.')

            if self._find_overlapping_window(studio_id, day, start_time, end_time) is not None:
                raise Conflict('This window overlaps existing availability on that date.')

            window = StudioAvailability(
                studio_id=studio_id,
                date=day,
                start_time=start_time,
                end_time=end_time,
                price_override=price_override,
                is_available=is_available,
            )
            self.db.add(window)
            self.db.commit()
            self.db.refresh(window)
        except SchedulingError:
            self.db.rollback()
            raise
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning('Store rejected overlapping window for studio %s on %s', studio_id, day)
            raise Conflict('This window overlaps existing availability on that date.') from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Creating availability failed for studio %s', studio_id)
            raise StoreUnavailable() from exc

        logger.info('Created availability window %s for studio %s on %s', window.id, studio_id, day)
        return AvailabilityWindow.model_validate(window)

    def delete_window(self, window_id: int, studio_id: int | None = None) -> None:
        try:
            query = self.db.query(StudioAvailability).filter(StudioAvailability.id == window_id)
            if studio_id is not None:
                query = query.filter(StudioAvailability.studio_id == studio_id)
            window = query.first()

            if window is None:
                raise NotFound('Availability window not found.')

            if window.is_available and self._has_active_booking(
                window.studio_id,
                datetime.combine(window.date, window.start_time),
                datetime.combine(window.date, window.end_time),
            ):
                raise Conflict('This window has pending or confirmed bookings. Cancel them first.')

            self.db.delete(window)
            self.db.commit()
        except SchedulingError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Deleting availability window %s failed', window_id)
            raise StoreUnavailable() from exc

        logger.info('Deleted availability window %s', window_id)

    def availability_with_bookings(self, studio_id: int, start_date: date, end_date: date) -> list[WindowOccupancy]:
        windows = self.list_windows(studio_id, start_date, end_date)

        try:
            booked_ranges = self.db.query(BookingRow.start_datetime, BookingRow.end_datetime).filter(
                BookingRow.studio_id == studio_id,
                BookingRow.status.in_([status.value for status in ACTIVE_BOOKING_STATUSES]),
                BookingRow.start_datetime >= datetime.combine(start_date, time.min),
                BookingRow.start_datetime <= datetime.combine(end_date, time.max),
            ).all()
        except SQLAlchemyError as exc:
            logger.exception('Listing booked ranges failed for studio %s', studio_id)
            raise StoreUnavailable() from exc

        occupancy: list[WindowOccupancy] = []
        for window in windows:
            window_start = datetime.combine(window.date, window.start_time)
            window_end = datetime.combine(window.date, window.end_time)
            is_booked = any(
                booked_start < window_end and booked_end > window_start
                for booked_start, booked_end in booked_ranges
            )
            occupancy.append(WindowOccupancy(window=window, is_booked=is_booked))
        return occupancy

    def availability_grid(self, studio_id: int, grid: MonthGrid) -> list[CalendarCell]:
        windows = self.list_windows(studio_id, grid.first_day, grid.last_day, available_only=True)
        return mark_availability(grid, windows)

    def _find_overlapping_window(
        self,
        studio_id: int,
        day: date,
        start_time: time,
        end_time: time,
    ) -> StudioAvailability | None:
        return self.db.query(StudioAvailability).filter(
            StudioAvailability.studio_id == studio_id,
            StudioAvailability.date == day,
            StudioAvailability.start_time < end_time,
            StudioAvailability.end_time > start_time,
        ).first()

    def _has_active_booking(self, studio_id: int, start: datetime, end: datetime) -> bool:
        return self.db.query(BookingRow.id).filter(
            BookingRow.studio_id == studio_id,
            BookingRow.status.in_([status.value for status in ACTIVE_BOOKING_STATUSES]),
            BookingRow.start_datetime < end,
            BookingRow.end_datetime > start,
        ).first() is not None
