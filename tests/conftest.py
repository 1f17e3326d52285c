import os
from datetime import date, datetime, time
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from studio_scheduler.database import Base, install_overlap_guards  # noqa: E402
from studio_scheduler.models.availability import StudioAvailability  # noqa: E402
from studio_scheduler.models.booking import Booking  # noqa: E402
from studio_scheduler.models.studio import Artist, Studio  # noqa: E402
from studio_scheduler.models.user import User  # noqa: E402
from studio_scheduler.scheduling.records import Participant, Role  # noqa: E402

TABLES = [User.__table__, Studio.__table__, Artist.__table__, StudioAvailability.__table__, Booking.__table__]


@pytest.fixture
def scheduling_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)
    with engine.begin() as connection:
        install_overlap_guards(connection)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


def _add_user(db, email: str, full_name: str, role: Role) -> User:
    user = User(email=email, full_name=full_name, role=role.value)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def world(scheduling_db):
    """Two studios and two artists, each with their own login."""
    db = scheduling_db

    owner = _add_user(db, 'owner@inkhouse.test', 'Ink House Owner', Role.STUDIO)
    rival_owner = _add_user(db, 'owner@needlepoint.test', 'Needlepoint Owner', Role.STUDIO)
    first_artist_user = _add_user(db, 'mara@artists.test', 'Mara Quinn', Role.ARTIST)
    second_artist_user = _add_user(db, 'theo@artists.test', 'Theo Lind', Role.ARTIST)

    studio = Studio(user_id=owner.id, name='Ink House', hourly_rate=Decimal('100.00'), instant_book=False)
    rival_studio = Studio(user_id=rival_owner.id, name='Needlepoint', hourly_rate=Decimal('80.00'), instant_book=True)
    first_artist = Artist(user_id=first_artist_user.id)
    second_artist = Artist(user_id=second_artist_user.id)
    db.add_all([studio, rival_studio, first_artist, second_artist])
    db.commit()
    for record in (studio, rival_studio, first_artist, second_artist):
        db.refresh(record)

    return SimpleNamespace(
        db=db,
        studio=studio,
        rival_studio=rival_studio,
        owner=Participant(user_id=owner.id, role=Role.STUDIO),
        rival_owner=Participant(user_id=rival_owner.id, role=Role.STUDIO),
        artist=Participant(user_id=first_artist_user.id, role=Role.ARTIST),
        other_artist=Participant(user_id=second_artist_user.id, role=Role.ARTIST),
        artist_id=first_artist.id,
        other_artist_id=second_artist.id,
    )


@pytest.fixture
def add_window(scheduling_db):
    def _add_window(
        studio_id: int,
        day: date,
        start: time,
        end: time,
        price_override: Decimal | None = None,
        is_available: bool = True,
    ) -> StudioAvailability:
        window = StudioAvailability(
            studio_id=studio_id,
            date=day,
            start_time=start,
            end_time=end,
            price_override=price_override,
            is_available=is_available,
        )
        scheduling_db.add(window)
        scheduling_db.commit()
        scheduling_db.refresh(window)
        return window

    return _add_window


@pytest.fixture
def add_booking(scheduling_db):
    def _add_booking(
        studio_id: int,
        artist_id: int,
        start: datetime,
        end: datetime,
        status: str = 'pending',
    ) -> Booking:
        booking = Booking(
            studio_id=studio_id,
            artist_id=artist_id,
            start_datetime=start,
            end_datetime=end,
            total_hours=Decimal('1.00'),
            hourly_rate=Decimal('100.00'),
            total_amount=Decimal('100.00'),
            status=status,
        )
        scheduling_db.add(booking)
        scheduling_db.commit()
        scheduling_db.refresh(booking)
        return booking

    return _add_booking
