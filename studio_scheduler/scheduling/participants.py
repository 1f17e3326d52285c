import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from studio_scheduler.core.errors import NotFound, StoreUnavailable, Unauthorized
from studio_scheduler.models.studio import Artist, Studio
from studio_scheduler.scheduling.records import Participant, Role

logger = logging.getLogger(__name__)


def get_owned_studio(db: Session, participant: Participant) -> Studio:
    if participant.role != Role.STUDIO:
        raise Unauthorized('Only studio accounts can manage studio availability.')

    try:
        studio = db.query(Studio).filter(Studio.user_id == participant.user_id).first()
    except SQLAlchemyError as exc:
        logger.exception('Studio lookup failed for user %s', participant.user_id)
        raise StoreUnavailable() from exc

    if studio is None:
        raise NotFound('No studio is registered for this account.')
    return studio


def get_artist_id(db: Session, participant: Participant) -> int:
    if participant.role != Role.ARTIST:
        raise Unauthorized('Only artist accounts can request bookings.')

    try:
        artist_id = db.query(Artist.id).filter(Artist.user_id == participant.user_id).scalar()
    except SQLAlchemyError as exc:
        logger.exception('Artist lookup failed for user %s', participant.user_id)
        raise StoreUnavailable() from exc

    if artist_id is None:
        raise NotFound('You must be registered as an artist to make bookings.')
    return artist_id


def require_studio_owner(db: Session, participant: Participant, studio_id: int) -> Studio:
    studio = get_owned_studio(db, participant)
    if studio.id != studio_id:
        raise Unauthorized('Only the studio owner can change this availability.')
    return studio
