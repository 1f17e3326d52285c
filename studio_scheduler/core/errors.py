"""
Typed failures raised by the scheduling engine.
Each error carries the HTTP status the routes answer with, so the route layer
only has to translate, never classify.
"""
from __future__ import annotations

from fastapi import HTTPException, status


class SchedulingError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Scheduling request failed.'

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidRange(SchedulingError):
    """Start is not strictly before end, or an amount is out of bounds."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'End time must be after start time.'


class Unauthorized(SchedulingError):
    """The acting participant lacks rights for the requested change."""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You are not allowed to perform this action.'


class NotFound(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Requested record was not found.'


class Conflict(SchedulingError):
    """The store holds an overlapping window or booking."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This time overlaps an existing entry.'


class InvalidTransition(SchedulingError):
    """The requested status change or editor step is not allowed from the current state."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This change is not allowed in the current state.'


class StoreUnavailable(SchedulingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def to_http_exception(exc: SchedulingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)
