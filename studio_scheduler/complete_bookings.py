"""Mark confirmed bookings whose end time has passed as completed.

Meant to run on a schedule (cron or similar).

Usage:
    python -m studio_scheduler.complete_bookings
"""
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from studio_scheduler.core import config
from studio_scheduler.core.errors import SchedulingError
from studio_scheduler.database import SessionLocal, ensure_scheduling_schema
from studio_scheduler.models import availability, booking, studio, user  # noqa: F401
from studio_scheduler.scheduling.booking_service import BookingService


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    try:
        ensure_scheduling_schema()
    except SQLAlchemyError as exc:
        print(f"Database unavailable: {exc}", file=sys.stderr)
        sys.exit(1)

    db = SessionLocal()
    try:
        completed = BookingService(db).complete_elapsed_bookings()
    except SchedulingError as exc:
        print(f"Completing bookings failed: {exc.detail}", file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()

    print(f"Completed {completed} booking(s).")


if __name__ == "__main__":
    main()
