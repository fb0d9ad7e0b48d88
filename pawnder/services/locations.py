import logging
from dataclasses import dataclass

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from pawnder.core import clock
from pawnder.core.errors import NotFoundError
from pawnder.models.appointment import PetAppointment
from pawnder.models.location import AppointmentLocation

logger = logging.getLogger(__name__)

DEFAULT_PLACE_TYPE = 'custom'
DEFAULT_RECENT_LIMIT = 10


@dataclass
class LocationData:
    name: str
    address: str
    latitude: float
    longitude: float
    city: str | None = None
    district: str | None = None
    place_type: str | None = None
    google_place_id: str | None = None


def get_location(db: Session, location_id: int) -> AppointmentLocation:
    location = db.query(AppointmentLocation).filter(AppointmentLocation.location_id == location_id).first()
    if location is None:
        raise NotFoundError('Location not found.')
    return location


def create_location(db: Session, data: LocationData, commit: bool = True) -> AppointmentLocation:
    """Create a meeting place, reusing the existing row for a known Google place id."""
    if data.google_place_id:
        existing = db.query(AppointmentLocation).filter(
            AppointmentLocation.google_place_id == data.google_place_id,
        ).first()
        if existing is not None:
            return existing

    now = clock.now()
    location = AppointmentLocation(
        name=data.name,
        address=data.address,
        latitude=data.latitude,
        longitude=data.longitude,
        city=data.city,
        district=data.district,
        is_pet_friendly=True,
        place_type=data.place_type or DEFAULT_PLACE_TYPE,
        google_place_id=data.google_place_id or None,
        created_at=now,
        updated_at=now,
    )
    db.add(location)
    if commit:
        db.commit()
        db.refresh(location)
    else:
        db.flush()

    logger.info('Created location %s (%s)', location.location_id, location.name)
    return location


def get_recent_locations(db: Session, user_id: int, limit: int = DEFAULT_RECENT_LIMIT) -> list[AppointmentLocation]:
    """Distinct places from the user's appointments, most recent appointment first."""
    last_used = func.max(PetAppointment.created_at).label('last_used')
    recent = db.query(
        PetAppointment.location_id.label('location_id'),
        last_used,
    ).filter(
        or_(PetAppointment.inviter_user_id == user_id, PetAppointment.invitee_user_id == user_id),
        PetAppointment.location_id.is_not(None),
    ).group_by(PetAppointment.location_id).subquery()

    return db.query(AppointmentLocation).join(
        recent, recent.c.location_id == AppointmentLocation.location_id,
    ).order_by(
        recent.c.last_used.desc(),
        AppointmentLocation.location_id.desc(),
    ).limit(limit).all()
