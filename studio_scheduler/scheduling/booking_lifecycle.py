"""Booking status transitions.

    pending   --accept-->   confirmed   (studio, or system for instant book)
    pending   --decline-->  cancelled   (studio)
    pending   --withdraw--> cancelled   (artist)
    confirmed --cancel-->   cancelled   (artist or studio, before start)
    confirmed --complete--> completed   (system, once the booking has ended)

cancelled and completed are terminal.
"""

from datetime import datetime, timedelta
from enum import Enum

from studio_scheduler.core import config
from studio_scheduler.core.errors import InvalidTransition, Unauthorized
from studio_scheduler.scheduling.records import Booking, BookingStatus


class BookingEvent(str, Enum):
    ACCEPT = 'accept'
    DECLINE = 'decline'
    WITHDRAW = 'withdraw'
    CANCEL = 'cancel'
    COMPLETE = 'complete'


class Actor(str, Enum):
    ARTIST = 'artist'
    STUDIO = 'studio'
    SYSTEM = 'system'


TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], tuple[BookingStatus, frozenset[Actor]]] = {
    (BookingStatus.PENDING, BookingEvent.ACCEPT): (BookingStatus.CONFIRMED, frozenset({Actor.STUDIO, Actor.SYSTEM})),
    (BookingStatus.PENDING, BookingEvent.DECLINE): (BookingStatus.CANCELLED, frozenset({Actor.STUDIO})),
    (BookingStatus.PENDING, BookingEvent.WITHDRAW): (BookingStatus.CANCELLED, frozenset({Actor.ARTIST})),
    (BookingStatus.CONFIRMED, BookingEvent.CANCEL): (
        BookingStatus.CANCELLED,
        frozenset({Actor.ARTIST, Actor.STUDIO}),
    ),
    (BookingStatus.CONFIRMED, BookingEvent.COMPLETE): (BookingStatus.COMPLETED, frozenset({Actor.SYSTEM})),
}

TERMINAL_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})


def completion_cutoff(now: datetime) -> datetime:
    return now - timedelta(minutes=config.AUTO_COMPLETE_GRACE_MINUTES)


def has_elapsed(booking: Booking, now: datetime) -> bool:
    return booking.end_datetime <= completion_cutoff(now)


def effective_status(booking: Booking, now: datetime) -> BookingStatus:
    """Status as the calendar should show it, applying the time-based completion rule."""
    if booking.status == BookingStatus.CONFIRMED and has_elapsed(booking, now):
        return BookingStatus.COMPLETED
    return booking.status


def cancel_event_for(status: BookingStatus, actor: Actor) -> BookingEvent:
    """Pick the event a cancel request maps to for the booking's current status."""
    if status == BookingStatus.PENDING:
        return BookingEvent.DECLINE if actor == Actor.STUDIO else BookingEvent.WITHDRAW
    return BookingEvent.CANCEL


def next_status(booking: Booking, event: BookingEvent, actor: Actor, now: datetime) -> BookingStatus:
    if booking.status in TERMINAL_STATUSES:
        raise InvalidTransition(f'This booking is already {booking.status.value}.')

    transition = TRANSITIONS.get((booking.status, event))
    if transition is None:
        raise InvalidTransition(f'Cannot {event.value} a {booking.status.value} booking.')

    target, allowed_actors = transition
    if actor not in allowed_actors:
        raise Unauthorized(f'A {actor.value} cannot {event.value} this booking.')

    if event == BookingEvent.CANCEL and now >= booking.start_datetime:
        raise InvalidTransition('Confirmed bookings can only be cancelled before they start.')

    if event == BookingEvent.COMPLETE and not has_elapsed(booking, now):
        raise InvalidTransition('Bookings can only be completed after they end.')

    if event == BookingEvent.ACCEPT and now >= booking.start_datetime:
        raise InvalidTransition('This booking has already started.')

    return target
