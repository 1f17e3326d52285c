from datetime import date, datetime, time
from decimal import Decimal

import pytest
from sqlalchemy import text

from studio_scheduler.core.errors import Conflict, InvalidRange, InvalidTransition, NotFound, Unauthorized
from studio_scheduler.models.availability import StudioAvailability
from studio_scheduler.models.booking import Booking as BookingRow
from studio_scheduler.scheduling import booking_service
from studio_scheduler.scheduling.booking_service import BookingService, booking_hours
from studio_scheduler.scheduling.clock import fixed_clock
from studio_scheduler.scheduling.records import BookingStatus

DAY = date(2024, 6, 10)
NOW = datetime(2024, 6, 1, 12, 0)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime.combine(DAY, time(hour, minute))


@pytest.fixture
def open_day(world, add_window):
    add_window(world.studio.id, DAY, time(9, 0), time(17, 0))
    return world


@pytest.fixture
def service(world) -> BookingService:
    return BookingService(world.db, clock=fixed_clock(NOW))


def test_booking_hours_rounds_to_cents() -> None:
    assert booking_hours(at(9, 0), at(10, 20)) == Decimal('1.33')
    assert booking_hours(at(9, 30), at(10, 30)) == Decimal('1.00')


def test_request_booking_inside_window_is_pending(open_day, service: BookingService) -> None:
    booking = service.request_booking(
        open_day.artist,
        open_day.studio.id,
        at(9, 30),
        at(10, 30),
        booking_notes='  Flash day prep  ',
    )

    assert booking.status == BookingStatus.PENDING
    assert booking.artist_id == open_day.artist_id
    assert (booking.start_datetime, booking.end_datetime) == (at(9, 30), at(10, 30))
    assert booking.total_hours == Decimal('1.00')
    assert booking.hourly_rate == Decimal('100.00')
    assert booking.total_amount == Decimal('100.00')
    assert booking.booking_notes == 'Flash day prep'
    assert booking.confirmed_at is None


def test_overlapping_request_is_conflict(open_day, service: BookingService) -> None:
    service.request_booking(open_day.artist, open_day.studio.id, at(9, 30), at(10, 30))

    with pytest.raises(Conflict):
        service.request_booking(open_day.other_artist, open_day.studio.id, at(10, 0), at(11, 0))

    assert open_day.db.query(BookingRow).count() == 1


def test_back_to_back_requests_are_allowed(open_day, service: BookingService) -> None:
    service.request_booking(open_day.artist, open_day.studio.id, at(9, 30), at(10, 30))
    second = service.request_booking(open_day.other_artist, open_day.studio.id, at(10, 30), at(11, 30))

    assert second.status == BookingStatus.PENDING


def test_window_price_override_sets_rate(world, add_window, service: BookingService) -> None:
    add_window(world.studio.id, DAY, time(18, 0), time(22, 0), price_override=Decimal('150.00'))

    booking = service.request_booking(world.artist, world.studio.id, at(18, 0), at(19, 30))

    assert booking.hourly_rate == Decimal('150.00')
    assert booking.total_amount == Decimal('225.00')


@pytest.mark.parametrize(
    ('start', 'end'),
    [
        (datetime(2024, 6, 10, 8, 0), datetime(2024, 6, 10, 10, 0)),
        (datetime(2024, 6, 10, 16, 30), datetime(2024, 6, 10, 17, 30)),
        (datetime(2024, 6, 11, 10, 0), datetime(2024, 6, 11, 11, 0)),
    ],
)
def test_request_outside_available_hours_is_conflict(
    open_day,
    service: BookingService,
    start: datetime,
    end: datetime,
) -> None:
    with pytest.raises(Conflict):
        service.request_booking(open_day.artist, open_day.studio.id, start, end)


def test_blackout_window_does_not_cover_bookings(world, add_window, service: BookingService) -> None:
    add_window(world.studio.id, DAY, time(9, 0), time(17, 0), is_available=False)

    with pytest.raises(Conflict):
        service.request_booking(world.artist, world.studio.id, at(10, 0), at(11, 0))


@pytest.mark.parametrize(
    ('start', 'end'),
    [
        (datetime(2024, 6, 10, 11, 0), datetime(2024, 6, 10, 10, 0)),
        (datetime(2024, 6, 10, 10, 0), datetime(2024, 6, 10, 10, 0)),
        (datetime(2024, 6, 10, 22, 0), datetime(2024, 6, 11, 1, 0)),
        (datetime(2024, 5, 30, 10, 0), datetime(2024, 5, 30, 11, 0)),
    ],
)
def test_request_booking_rejects_invalid_ranges(open_day, service: BookingService, start: datetime, end: datetime) -> None:
    with pytest.raises(InvalidRange):
        service.request_booking(open_day.artist, open_day.studio.id, start, end)

    assert open_day.db.query(BookingRow).count() == 0


def test_request_booking_rejects_overlong_notes(open_day, service: BookingService) -> None:
    with pytest.raises(InvalidRange):
        service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11), booking_notes='x' * 1001)


def test_studio_account_cannot_request_booking(open_day, service: BookingService) -> None:
    with pytest.raises(Unauthorized):
        service.request_booking(open_day.owner, open_day.studio.id, at(10), at(11))


def test_request_for_unknown_or_inactive_studio_is_not_found(open_day, service: BookingService) -> None:
    with pytest.raises(NotFound):
        service.request_booking(open_day.artist, 9999, at(10), at(11))

    open_day.studio.is_active = False
    open_day.db.commit()

    with pytest.raises(NotFound):
        service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11))


def test_instant_book_studio_confirms_immediately(world, add_window, service: BookingService) -> None:
    add_window(world.rival_studio.id, DAY, time(9, 0), time(17, 0))

    booking = service.request_booking(world.artist, world.rival_studio.id, at(10), at(12))

    assert booking.status == BookingStatus.CONFIRMED
    assert booking.confirmed_at == NOW
    assert booking.total_amount == Decimal('160.00')


def test_instant_book_can_be_switched_off(world, add_window, service: BookingService, monkeypatch) -> None:
    monkeypatch.setattr(booking_service.config, 'ALLOW_INSTANT_BOOK', False)
    add_window(world.rival_studio.id, DAY, time(9, 0), time(17, 0))

    booking = service.request_booking(world.artist, world.rival_studio.id, at(10), at(12))

    assert booking.status == BookingStatus.PENDING


def test_store_guard_rejects_overlap_when_precheck_misses_it(
    open_day,
    service: BookingService,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    service.request_booking(open_day.artist, open_day.studio.id, at(9, 30), at(10, 30))
    monkeypatch.setattr(BookingService, '_has_overlapping_booking', lambda *args, **kwargs: False)

    with pytest.raises(Conflict):
        service.request_booking(open_day.other_artist, open_day.studio.id, at(10, 0), at(11, 0))

    assert open_day.db.query(BookingRow).count() == 1


def test_studio_confirms_pending_booking(open_day, service: BookingService) -> None:
    pending = service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11))

    confirmed = service.confirm_booking(open_day.owner, pending.id)

    assert confirmed.status == BookingStatus.CONFIRMED
    assert confirmed.confirmed_at == NOW


def test_artist_cannot_confirm_booking(open_day, service: BookingService) -> None:
    pending = service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11))

    with pytest.raises(Unauthorized):
        service.confirm_booking(open_day.artist, pending.id)

    assert open_day.db.get(BookingRow, pending.id).status == 'pending'


def test_other_studio_cannot_confirm_booking(open_day, service: BookingService) -> None:
    pending = service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11))

    with pytest.raises(Unauthorized):
        service.confirm_booking(open_day.rival_owner, pending.id)


def test_confirm_unknown_booking_is_not_found(open_day, service: BookingService) -> None:
    with pytest.raises(NotFound):
        service.confirm_booking(open_day.owner, 404)


def test_confirm_rechecks_window_coverage(open_day, service: BookingService) -> None:
    pending = service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11))

    open_day.db.query(StudioAvailability).delete()
    open_day.db.commit()

    with pytest.raises(Conflict):
        service.confirm_booking(open_day.owner, pending.id)


def test_confirm_rechecks_overlap_with_active_bookings(open_day, add_booking, service: BookingService) -> None:
    confirmed = service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11))
    service.confirm_booking(open_day.owner, confirmed.id)
    open_day.db.execute(text('DROP TRIGGER trg_bookings_no_overlap_insert'))
    open_day.db.commit()
    clashing = add_booking(open_day.studio.id, open_day.other_artist_id, at(10, 30), at(11, 30))

    with pytest.raises(Conflict):
        service.confirm_booking(open_day.owner, clashing.id)

    open_day.db.expire_all()
    assert open_day.db.get(BookingRow, clashing.id).status == 'pending'
    assert open_day.db.get(BookingRow, confirmed.id).status == 'confirmed'


def test_artist_withdraws_pending_booking_with_reason(open_day, service: BookingService) -> None:
    pending = service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11))

    cancelled = service.cancel_booking(open_day.artist, pending.id, reason=' Schedule changed ')

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancellation_reason == 'Schedule changed'
    assert cancelled.cancelled_by == open_day.artist.user_id
    assert cancelled.cancelled_at == NOW


def test_studio_declines_pending_booking(open_day, service: BookingService) -> None:
    pending = service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11))

    cancelled = service.cancel_booking(open_day.owner, pending.id)

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancelled_by == open_day.owner.user_id


def test_other_artist_cannot_cancel_booking(open_day, service: BookingService) -> None:
    pending = service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11))

    with pytest.raises(Unauthorized):
        service.cancel_booking(open_day.other_artist, pending.id)


def test_cancelled_booking_frees_the_slot(open_day, service: BookingService) -> None:
    first = service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11))
    service.cancel_booking(open_day.artist, first.id)

    second = service.request_booking(open_day.other_artist, open_day.studio.id, at(10), at(11))

    assert second.status == BookingStatus.PENDING


def test_cancelling_twice_is_invalid_transition(open_day, service: BookingService) -> None:
    pending = service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11))
    service.cancel_booking(open_day.artist, pending.id)

    with pytest.raises(InvalidTransition):
        service.cancel_booking(open_day.artist, pending.id)


def test_confirmed_booking_cannot_be_cancelled_after_start(open_day, service: BookingService) -> None:
    pending = service.request_booking(open_day.artist, open_day.studio.id, at(10), at(11))
    service.confirm_booking(open_day.owner, pending.id)

    late = BookingService(open_day.db, clock=fixed_clock(at(10, 15)))
    with pytest.raises(InvalidTransition):
        late.cancel_booking(open_day.artist, pending.id)


def test_complete_elapsed_bookings_only_touches_finished_confirmed(open_day, service: BookingService) -> None:
    morning = service.request_booking(open_day.artist, open_day.studio.id, at(9), at(10))
    afternoon = service.request_booking(open_day.artist, open_day.studio.id, at(14), at(15))
    still_pending = service.request_booking(open_day.other_artist, open_day.studio.id, at(11), at(12))
    service.confirm_booking(open_day.owner, morning.id)
    service.confirm_booking(open_day.owner, afternoon.id)

    sweeper = BookingService(open_day.db, clock=fixed_clock(at(12, 0)))

    assert sweeper.complete_elapsed_bookings() == 1
    assert open_day.db.get(BookingRow, morning.id).status == 'completed'
    assert open_day.db.get(BookingRow, morning.id).completed_at == at(12, 0)
    assert open_day.db.get(BookingRow, afternoon.id).status == 'confirmed'
    assert open_day.db.get(BookingRow, still_pending.id).status == 'pending'
    assert sweeper.complete_elapsed_bookings() == 0
