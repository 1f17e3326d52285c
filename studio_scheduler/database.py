import logging
import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.orm import declarative_base, sessionmaker


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./studio_scheduler.db")

engine = create_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

logger = logging.getLogger(__name__)

_schema_lock = Lock()
_scheduling_schema_checked = False

ACTIVE_BOOKING_STATUSES_SQL = "('pending', 'confirmed')"

_SQLITE_OVERLAP_GUARDS = [
    """
    CREATE TRIGGER IF NOT EXISTS trg_studio_availability_no_overlap
    BEFORE INSERT ON studio_availability
    WHEN EXISTS (
        SELECT 1 FROM studio_availability
        WHERE studio_id = NEW.studio_id
          AND date = NEW.date
          AND start_time < NEW.end_time
          AND end_time > NEW.start_time
    )
    BEGIN
        SELECT RAISE(ABORT, 'availability window overlaps an existing window');
    END
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS trg_bookings_no_overlap_insert
    BEFORE INSERT ON bookings
    WHEN NEW.status IN {ACTIVE_BOOKING_STATUSES_SQL} AND EXISTS (
        SELECT 1 FROM bookings
        WHERE studio_id = NEW.studio_id
          AND status IN {ACTIVE_BOOKING_STATUSES_SQL}
          AND start_datetime < NEW.end_datetime
          AND end_datetime > NEW.start_datetime
    )
    BEGIN
        SELECT RAISE(ABORT, 'booking overlaps an existing booking');
    END
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS trg_bookings_no_overlap_update
    BEFORE UPDATE OF status, start_datetime, end_datetime ON bookings
    WHEN NEW.status IN {ACTIVE_BOOKING_STATUSES_SQL} AND EXISTS (
        SELECT 1 FROM bookings
        WHERE studio_id = NEW.studio_id
          AND id != NEW.id
          AND status IN {ACTIVE_BOOKING_STATUSES_SQL}
          AND start_datetime < NEW.end_datetime
          AND end_datetime > NEW.start_datetime
    )
    BEGIN
        SELECT RAISE(ABORT, 'booking overlaps an existing booking');
    END
    """,
]

_POSTGRES_OVERLAP_GUARDS = {
    'studio_availability_no_overlap': (
        'ALTER TABLE studio_availability ADD CONSTRAINT studio_availability_no_overlap '
        'EXCLUDE USING gist (studio_id WITH =, tsrange(date + start_time, date + end_time) WITH &&)'
    ),
    'bookings_no_overlap': (
        'ALTER TABLE bookings ADD CONSTRAINT bookings_no_overlap '
        'EXCLUDE USING gist (studio_id WITH =, tsrange(start_datetime, end_datetime) WITH &&) '
        f'WHERE (status IN {ACTIVE_BOOKING_STATUSES_SQL})'
    ),
}


def install_overlap_guards(connection: Connection) -> None:
    """Install the store-side overlap rejection for windows and active bookings."""
    dialect = connection.dialect.name

    if dialect == 'sqlite':
        for statement in _SQLITE_OVERLAP_GUARDS:
            connection.execute(text(statement))
        return

    if dialect == 'postgresql':
        connection.execute(text('CREATE EXTENSION IF NOT EXISTS btree_gist'))
        for constraint_name, statement in _POSTGRES_OVERLAP_GUARDS.items():
            exists = connection.execute(
                text('SELECT 1 FROM pg_constraint WHERE conname = :name'),
                {'name': constraint_name},
            ).first()
            if not exists:
                connection.execute(text(statement))
        return

    logger.warning('No store-side overlap guard for dialect %s; relying on pre-checks only.', dialect)


def ensure_scheduling_schema() -> None:
    global _scheduling_schema_checked

    if _scheduling_schema_checked:
        return

    with _schema_lock:
        if _scheduling_schema_checked:
            return

        inspector = inspect(engine)
        table_names = set(inspector.get_table_names())

        if not {'studio_availability', 'bookings'} <= table_names:
            _scheduling_schema_checked = True
            return

        existing_booking_columns = {column['name'] for column in inspector.get_columns('bookings')}
        migration_steps = [
            ('booking_notes', 'ALTER TABLE bookings ADD COLUMN booking_notes TEXT'),
            ('artist_requirements', 'ALTER TABLE bookings ADD COLUMN artist_requirements TEXT'),
            ('cancellation_reason', 'ALTER TABLE bookings ADD COLUMN cancellation_reason TEXT'),
            ('cancelled_by', 'ALTER TABLE bookings ADD COLUMN cancelled_by INTEGER'),
            ('cancelled_at', 'ALTER TABLE bookings ADD COLUMN cancelled_at TIMESTAMP'),
            ('confirmed_at', 'ALTER TABLE bookings ADD COLUMN confirmed_at TIMESTAMP'),
            ('completed_at', 'ALTER TABLE bookings ADD COLUMN completed_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_booking_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_studio_availability_studio_date ON studio_availability(studio_id, date)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_studio_start ON bookings(studio_id, start_datetime)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_artist_start ON bookings(artist_id, start_datetime)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_status ON bookings(status)')
            )
            install_overlap_guards(connection)

        _scheduling_schema_checked = True
