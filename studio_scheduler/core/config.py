import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:3000"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Optional IANA zone for the system clock. Timestamps stay naive local time.
SCHEDULER_TIME_ZONE = os.getenv("SCHEDULER_TIME_ZONE", "")

# A confirmed booking counts as completed once its end is this far in the past.
AUTO_COMPLETE_GRACE_MINUTES = int(os.getenv("AUTO_COMPLETE_GRACE_MINUTES", "0"))

# Bookings shown per calendar cell before collapsing into "+N more".
DAY_PREVIEW_LIMIT = int(os.getenv("DAY_PREVIEW_LIMIT", "2"))

BOOKING_LOOKAHEAD_DAYS = int(os.getenv("BOOKING_LOOKAHEAD_DAYS", "30"))

ALLOW_INSTANT_BOOK = _get_bool(os.getenv("ALLOW_INSTANT_BOOK"), default=True)

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if DAY_PREVIEW_LIMIT < 0:
        raise RuntimeError("DAY_PREVIEW_LIMIT must be zero or greater.")
