from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from pawnder.models.appointment import CONFIRMED, ON_GOING, PENDING, PetAppointment

CONFLICT_WINDOW = timedelta(hours=2)
LIVE_STATUSES = (PENDING, CONFIRMED, ON_GOING)


def has_conflict(
    db: Session,
    user_id: int,
    appointment_datetime: datetime,
    exclude_appointment_id: int | None = None,
) -> bool:
    """True if the user holds another live appointment within two hours of the given time."""
    query = db.query(PetAppointment.appointment_id).filter(
        or_(PetAppointment.inviter_user_id == user_id, PetAppointment.invitee_user_id == user_id),
        PetAppointment.status.in_(LIVE_STATUSES),
        PetAppointment.appointment_datetime >= appointment_datetime - CONFLICT_WINDOW,
        PetAppointment.appointment_datetime <= appointment_datetime + CONFLICT_WINDOW,
    )
    if exclude_appointment_id is not None:
        query = query.filter(PetAppointment.appointment_id != exclude_appointment_id)

    return query.first() is not None
