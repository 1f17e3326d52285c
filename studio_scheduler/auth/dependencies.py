from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError

from studio_scheduler.auth import jwt_handler
from studio_scheduler.database import SessionLocal
from studio_scheduler.models.user import User
from studio_scheduler.scheduling.records import Participant, Role

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def participant_from_token(token: str) -> Participant:
    try:
        email = jwt_handler.read_token_subject(token)
    except jwt_handler.InvalidToken as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc
    finally:
        db.close()

    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    try:
        role = Role(user.role)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Complete your studio or artist profile first",
        ) from exc

    return Participant(user_id=user.id, role=role)


def get_current_participant(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Participant:
    return participant_from_token(credentials.credentials)


def get_optional_participant(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_security),
) -> Participant | None:
    if credentials is None:
        return None
    return participant_from_token(credentials.credentials)
