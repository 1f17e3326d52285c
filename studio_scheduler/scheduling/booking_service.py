import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from studio_scheduler.core import config
from studio_scheduler.core.errors import Conflict, InvalidRange, NotFound, SchedulingError, StoreUnavailable, Unauthorized
from studio_scheduler.models.availability import StudioAvailability
from studio_scheduler.models.booking import Booking as BookingRow
from studio_scheduler.models.studio import Studio
from studio_scheduler.scheduling.booking_lifecycle import (
    Actor,
    BookingEvent,
    cancel_event_for,
    completion_cutoff,
    next_status,
)
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

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')
SECONDS_PER_HOUR = Decimal(3600)
MAX_BOOKING_TEXT_LENGTH = 1000


def _clean_text(value: str | None, field_name: str) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if len(normalized) > MAX_BOOKING_TEXT_LENGTH:
        raise InvalidRange(f'{field_name} must be {MAX_BOOKING_TEXT_LENGTH} characters or fewer.')
    return normalized


def booking_hours(start_datetime: datetime, end_datetime: datetime) -> Decimal:
    seconds = Decimal(int((end_datetime - start_datetime).total_seconds()))
    return (seconds / SECONDS_PER_HOUR).quantize(CENTS, rounding=ROUND_HALF_UP)


class BookingService:
    """Write side of the booking ledger.

    Every write re-validates against the store inside its own transaction, with
    the studio row locked, and the store's overlap guard has the final word.
    Nothing is retried: a losing request gets ``Conflict`` and the caller is
    expected to re-read availability before trying again.
    """

    def __init__(self, db: Session, clock: Clock = system_clock) -> None:
        self.db = db
        self.clock = clock

    def request_booking(
        self,
        participant: Participant,
        studio_id: int,
        start_datetime: datetime,
        end_datetime: datetime,
        booking_notes: str | None = None,
        artist_requirements: str | None = None,
    ) -> Booking:
        if start_datetime >= end_datetime:
            raise InvalidRange('End time must be after start time.')
        if start_datetime.date() != end_datetime.date():
            raise InvalidRange('Bookings must start and end on the same day.')

        now = self.clock()
        if start_datetime <= now:
            raise InvalidRange('Bookings must be scheduled in the future.')

        booking_notes = _clean_text(booking_notes, 'Booking notes')
        artist_requirements = _clean_text(artist_requirements, 'Artist requirements')
        artist_id = get_artist_id(self.db, participant)

        try:
            studio = self.db.query(Studio).filter(Studio.id == studio_id).with_for_update().first()
            if studio is None or not studio.is_active:
                raise NotFound('Studio not found.')

            window = self._covering_window(studio_id, start_datetime, end_datetime)
            if window is None:
                raise Conflict("This time is outside the studio's available hours.")

            if self._has_overlapping_booking(studio_id, start_datetime, end_datetime):
                raise Conflict('This time slot is no longer available.')

            hourly_rate = window.price_override if window.price_override is not None else (studio.hourly_rate or Decimal('0'))
            total_hours = booking_hours(start_datetime, end_datetime)

            row = BookingRow(
                studio_id=studio_id,
                artist_id=artist_id,
                start_datetime=start_datetime,
                end_datetime=end_datetime,
                total_hours=total_hours,
                hourly_rate=hourly_rate,
                total_amount=(total_hours * Decimal(hourly_rate)).quantize(CENTS, rounding=ROUND_HALF_UP),
                status=BookingStatus.PENDING.value,
                booking_notes=booking_notes,
                artist_requirements=artist_requirements,
            )
            self.db.add(row)
            self.db.flush()

            if config.ALLOW_INSTANT_BOOK and studio.instant_book:
                target = next_status(self._record(row), BookingEvent.ACCEPT, Actor.SYSTEM, now)
                row.status = target.value
                row.confirmed_at = now

            self.db.commit()
            self.db.refresh(row)
        except SchedulingError:
            self.db.rollback()
            raise
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning('Store rejected overlapping booking for studio %s at %s', studio_id, start_datetime)
            raise Conflict('This time slot is no longer available.') from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Creating booking failed for studio %s', studio_id)
            raise StoreUnavailable() from exc

        logger.info('Booking %s requested for studio %s (%s)', row.id, studio_id, row.status)
        return self._record(row)

    def confirm_booking(self, participant: Participant, booking_id: int) -> Booking:
        now = self.clock()

        try:
            row = self._load_for_update(booking_id)
            actor = self._authorize_party(participant, row)
            booking = self._record(row)
            target = next_status(booking, BookingEvent.ACCEPT, actor, now)

            if self._covering_window(row.studio_id, row.start_datetime, row.end_datetime) is None:
                raise Conflict("This booking is no longer inside the studio's available hours.")
            if self._has_overlapping_booking(row.studio_id, row.start_datetime, row.end_datetime, exclude_id=row.id):
                raise Conflict('This booking overlaps another booking.')

            row.status = target.value
            row.confirmed_at = now
            self.db.commit()
            self.db.refresh(row)
        except SchedulingError:
            self.db.rollback()
            raise
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict('This booking overlaps another booking.') from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Confirming booking %s failed', booking_id)
            raise StoreUnavailable() from exc

        logger.info('Booking %s confirmed', booking_id)
        return self._record(row)

    def cancel_booking(self, participant: Participant, booking_id: int, reason: str | None = None) -> Booking:
        now = self.clock()
        reason = _clean_text(reason, 'Cancellation reason')

        try:
            row = self._load_for_update(booking_id)
            actor = self._authorize_party(participant, row)
            booking = self._record(row)
            target = next_status(booking, cancel_event_for(booking.status, actor), actor, now)

            row.status = target.value
            row.cancelled_at = now
            row.cancelled_by = participant.user_id
            row.cancellation_reason = reason
            self.db.commit()
            self.db.refresh(row)
        except SchedulingError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Cancelling booking %s failed', booking_id)
            raise StoreUnavailable() from exc

        logger.info('Booking %s cancelled by %s', booking_id, actor.value)
        return self._record(row)

    def complete_elapsed_bookings(self) -> int:
        """Move every confirmed booking that has ended to ``completed``."""
        now = self.clock()

        try:
            rows = self.db.query(BookingRow).filter(
                BookingRow.status == BookingStatus.CONFIRMED.value,
                BookingRow.end_datetime <= completion_cutoff(now),
                BookingRow.completed_at.is_(None),
            ).with_for_update().all()

            completed = 0
            for row in rows:
                booking = to_booking_records([row])
                if not booking:
                    continue
                target = next_status(booking[0], BookingEvent.COMPLETE, Actor.SYSTEM, now)
                row.status = target.value
                row.completed_at = now
                completed += 1

            self.db.commit()
        except SchedulingError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Completing elapsed bookings failed')
            raise StoreUnavailable() from exc

        logger.info('Marked %s elapsed bookings as completed', completed)
        return completed

    def _record(self, row: BookingRow) -> Booking:
        records = to_booking_records([row])
        if not records:
            raise NotFound('Booking not found.')
        return records[0]

    def _load_for_update(self, booking_id: int) -> BookingRow:
        row = self.db.query(BookingRow).filter(BookingRow.id == booking_id).with_for_update().first()
        if row is None:
            raise NotFound('Booking not found.')
        return row

    def _authorize_party(self, participant: Participant, row: BookingRow) -> Actor:
        if participant.role == Role.STUDIO:
            if get_owned_studio(self.db, participant).id != row.studio_id:
                raise Unauthorized('Only the studio for this booking can change it.')
            return Actor.STUDIO

        if get_artist_id(self.db, participant) != row.artist_id:
            raise Unauthorized('Only the artist who requested this booking can change it.')
        return Actor.ARTIST

    def _covering_window(
        self,
        studio_id: int,
        start_datetime: datetime,
        end_datetime: datetime,
    ) -> StudioAvailability | None:
        return self.db.query(StudioAvailability).filter(
            StudioAvailability.studio_id == studio_id,
            StudioAvailability.date == start_datetime.date(),
            StudioAvailability.is_available.is_(True),
            StudioAvailability.start_time <= start_datetime.time(),
            StudioAvailability.end_time >= end_datetime.time(),
        ).first()

    def _has_overlapping_booking(
        self,
        studio_id: int,
        start_datetime: datetime,
        end_datetime: datetime,
        exclude_id: int | None = None,
    ) -> bool:
        query = self.db.query(BookingRow.id).filter(
            BookingRow.studio_id == studio_id,
            BookingRow.status.in_([status.value for status in ACTIVE_BOOKING_STATUSES]),
            BookingRow.start_datetime < end_datetime,
            BookingRow.end_datetime > start_datetime,
        )
        if exclude_id is not None:
            query = query.filter(BookingRow.id != exclude_id)
        return query.first() is not None
