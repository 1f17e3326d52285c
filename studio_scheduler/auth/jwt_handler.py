"""Bearer tokens issued by the identity provider.

Only the subject (the user's email) is trusted; roles are looked up from the
users table so a stale token cannot carry an old role.
"""
from datetime import datetime, timedelta, timezone

import jwt

from studio_scheduler.core import config


class InvalidToken(Exception):
    pass


def create_access_token(email: str, expires_minutes: int | None = None) -> str:
    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    payload = {"sub": email, "iat": issued_at, "exp": expires_at}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def read_token_subject(token: str) -> str:
    try:
        payload = jwt.decode(
            token,
            config.JWT_SECRET_KEY,
            algorithms=[config.JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.PyJWTError as exc:
        raise InvalidToken("Invalid token") from exc

    subject = str(payload.get("sub") or "").strip().lower()
    if not subject:
        raise InvalidToken("Invalid token subject")
    return subject
