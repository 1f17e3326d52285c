import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import sessionmaker

from studio_scheduler.auth import jwt_handler
from studio_scheduler.auth.dependencies import get_current_participant, get_optional_participant, participant_from_token
from studio_scheduler.models.user import User
from studio_scheduler.scheduling.records import Role


@pytest.fixture
def token_db(world, monkeypatch: pytest.MonkeyPatch):
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=world.db.get_bind())
    monkeypatch.setattr('studio_scheduler.auth.dependencies.SessionLocal', session_local)
    return world


def test_token_subject_is_normalized() -> None:
    token = jwt_handler.create_access_token('Mara@Artists.TEST')

    assert jwt_handler.read_token_subject(token) == 'mara@artists.test'


def test_expired_token_is_rejected() -> None:
    token = jwt_handler.create_access_token('mara@artists.test', expires_minutes=-5)

    with pytest.raises(jwt_handler.InvalidToken):
        jwt_handler.read_token_subject(token)


def test_token_signed_with_other_key_is_rejected() -> None:
    token = jwt.encode({'sub': 'mara@artists.test', 'exp': 4102444800}, 'someone-else', algorithm='HS256')

    with pytest.raises(jwt_handler.InvalidToken):
        jwt_handler.read_token_subject(token)


def test_token_without_subject_is_rejected() -> None:
    token = jwt.encode({'exp': 4102444800}, jwt_handler.config.JWT_SECRET_KEY, algorithm=jwt_handler.config.JWT_ALGORITHM)

    with pytest.raises(jwt_handler.InvalidToken):
        jwt_handler.read_token_subject(token)


def test_participant_from_token_looks_up_role(token_db) -> None:
    participant = participant_from_token(jwt_handler.create_access_token('mara@artists.test'))

    assert participant == token_db.artist
    assert participant.role == Role.ARTIST


def test_current_participant_reads_bearer_credentials(token_db) -> None:
    credentials = HTTPAuthorizationCredentials(
        scheme='Bearer',
        credentials=jwt_handler.create_access_token('owner@inkhouse.test'),
    )

    assert get_current_participant(credentials) == token_db.owner


def test_optional_participant_is_none_without_credentials() -> None:
    assert get_optional_participant(None) is None


def test_unknown_user_returns_401(token_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        participant_from_token(jwt_handler.create_access_token('nobody@artists.test'))

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'User not found'


def test_garbage_token_returns_401(token_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        participant_from_token('not-a-token')

    assert exception_info.value.status_code == 401


def test_user_without_scheduling_role_returns_403(token_db) -> None:
    token_db.db.add(User(email='visitor@inkhouse.test', full_name='Visitor', role='guest'))
    token_db.db.commit()

    with pytest.raises(HTTPException) as exception_info:
        participant_from_token(jwt_handler.create_access_token('visitor@inkhouse.test'))

    assert exception_info.value.status_code == 403
