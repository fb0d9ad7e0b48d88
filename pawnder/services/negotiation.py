"""
Appointment negotiation and lifecycle.

Statuses: pending -> confirmed | rejected | cancelled | expired
          confirmed -> on_going | cancelled | no_show
          on_going -> completed | no_show

While pending exactly one participant holds decision rights. A counter-offer
hands them to the other participant, at most MAX_COUNTER_OFFERS times.
Every mutation locks the row, changes it through `transition`, commits, and
only then sends notifications.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from pawnder.core import clock
from pawnder.core.errors import InvalidStateError, NotFoundError, UnauthorizedError, ValidationError
from pawnder.models.appointment import (
    ACTIVITY_TYPES,
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    EXPIRED,
    LATE_CANCELLATION_MARKER,
    MAX_REASON_LENGTH,
    NO_SHOW,
    ON_GOING,
    PENDING,
    REJECTED,
    PetAppointment,
)
from pawnder.models.pet import Pet
from pawnder.services import conflicts, eligibility, locations
from pawnder.services.notifications import Notifier, send_notification
from pawnder.utils.geo import haversine_meters

logger = logging.getLogger(__name__)

MIN_HOURS_ADVANCE = 2
MAX_COUNTER_OFFERS = 3
CHECK_IN_RADIUS_METERS = 100.0
CHECK_IN_BEFORE_MINUTES = 30
CHECK_IN_AFTER_MINUTES = 90
LATE_CANCELLATION_HOURS = 2
DATETIME_DISPLAY_FORMAT = '%d/%m/%Y %H:%M'

ALLOWED_TRANSITIONS = {
    PENDING: frozenset({CONFIRMED, REJECTED, CANCELLED, EXPIRED}),
    CONFIRMED: frozenset({ON_GOING, CANCELLED, NO_SHOW}),
    ON_GOING: frozenset({COMPLETED, NO_SHOW}),
}


@dataclass
class AppointmentView:
    appointment: PetAppointment
    has_conflict: bool = False


def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(current_status, frozenset())


def transition(appointment: PetAppointment, new_status: str, now: datetime) -> None:
    if not can_transition(appointment.status, new_status):
        raise InvalidStateError(
            f"Appointment is '{appointment.status}' and cannot move to '{new_status}'."
        )
    logger.info(
        'Appointment %s transitioned: %s -> %s',
        appointment.appointment_id,
        appointment.status,
        new_status,
    )
    appointment.status = new_status
    appointment.updated_at = now


def _format_time(value: datetime) -> str:
    return value.strftime(DATETIME_DISPLAY_FORMAT)


def _get_for_update(db: Session, appointment_id: int) -> PetAppointment:
    appointment = db.query(PetAppointment).filter(
        PetAppointment.appointment_id == appointment_id,
    ).with_for_update().first()
    if appointment is None:
        raise NotFoundError('Appointment not found.')
    return appointment


def _require_participant(appointment: PetAppointment, user_id: int, action: str) -> None:
    if not appointment.is_participant(user_id):
        raise UnauthorizedError(f'You are not allowed to {action} this appointment.')


def _require_status(appointment: PetAppointment, allowed: tuple[str, ...], message: str) -> None:
    if appointment.status not in allowed:
        raise InvalidStateError(message)


def _require_decision_holder(appointment: PetAppointment, user_id: int, action: str) -> None:
    if appointment.current_decision_user_id != user_id:
        raise UnauthorizedError(f'It is not your turn to {action} this appointment.')


def _validate_advance_time(appointment_datetime: datetime, now: datetime) -> None:
    if appointment_datetime < now + timedelta(hours=MIN_HOURS_ADVANCE):
        raise ValidationError(f'The appointment must be at least {MIN_HOURS_ADVANCE} hours from now.')


def _resolve_location_id(
    db: Session,
    location_id: int | None,
    custom_location: locations.LocationData | None,
) -> int | None:
    if location_id is not None:
        return locations.get_location(db, location_id).location_id
    if custom_location is not None:
        return locations.create_location(db, custom_location, commit=False).location_id
    return None


def create_appointment(
    db: Session,
    acting_user_id: int,
    match_id: int,
    inviter_pet_id: int,
    invitee_pet_id: int,
    appointment_datetime: datetime,
    location_id: int | None = None,
    custom_location: locations.LocationData | None = None,
    activity_type: str = 'other',
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> PetAppointment:
    now = now or clock.now()

    is_valid, reason = eligibility.validate_preconditions(db, match_id, inviter_pet_id, invitee_pet_id)
    if not is_valid:
        raise ValidationError(reason)

    if activity_type not in ACTIVITY_TYPES:
        raise ValidationError(f"Invalid activity type. Use one of: {', '.join(ACTIVITY_TYPES)}.")

    inviter_pet = db.query(Pet).filter(Pet.id == inviter_pet_id).first()
    invitee_pet = db.query(Pet).filter(Pet.id == invitee_pet_id).first()
    if inviter_pet is None or invitee_pet is None:
        raise NotFoundError('Pet or pet owner not found.')

    if inviter_pet.user_id != acting_user_id:
        raise UnauthorizedError('You can only send invitations on behalf of your own pet.')

    match = eligibility.get_accepted_match(db, match_id)
    if {inviter_pet.user_id, invitee_pet.user_id} != {match.from_user_id, match.to_user_id}:
        raise ValidationError('Both pets must belong to the two users of this match.')

    appointment_datetime = clock.to_reference_time(appointment_datetime)
    _validate_advance_time(appointment_datetime, now)

    resolved_location_id = _resolve_location_id(db, location_id, custom_location)

    appointment = PetAppointment(
        match_id=match_id,
        inviter_pet_id=inviter_pet_id,
        inviter_user_id=inviter_pet.user_id,
        invitee_pet_id=invitee_pet_id,
        invitee_user_id=invitee_pet.user_id,
        appointment_datetime=appointment_datetime,
        location_id=resolved_location_id,
        activity_type=activity_type,
        status=PENDING,
        current_decision_user_id=invitee_pet.user_id,
        counter_offer_count=0,
        inviter_checked_in=False,
        invitee_checked_in=False,
        created_at=now,
        updated_at=now,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)

    logger.info('Appointment %s created on match %s', appointment.appointment_id, match_id)

    send_notification(
        notifier,
        appointment.invitee_user_id,
        'New meet-up invitation!',
        f'{inviter_pet.name} would like to meet {invitee_pet.name} on {_format_time(appointment_datetime)}',
        'appointment_invite',
    )
    return appointment


def get_appointment(db: Session, appointment_id: int, viewer_user_id: int | None = None) -> AppointmentView:
    appointment = db.query(PetAppointment).filter(PetAppointment.appointment_id == appointment_id).first()
    if appointment is None:
        raise NotFoundError('Appointment not found.')

    if viewer_user_id is not None:
        _require_participant(appointment, viewer_user_id, 'view')

    view = AppointmentView(appointment=appointment)
    if appointment.status == PENDING and appointment.current_decision_user_id is not None:
        view.has_conflict = conflicts.has_conflict(
            db,
            appointment.current_decision_user_id,
            appointment.appointment_datetime,
            exclude_appointment_id=appointment.appointment_id,
        )
    return view


def list_by_match(db: Session, match_id: int) -> list[AppointmentView]:
    appointments = db.query(PetAppointment).filter(
        PetAppointment.match_id == match_id,
    ).order_by(PetAppointment.created_at.desc(), PetAppointment.appointment_id.desc()).all()
    return [AppointmentView(appointment=appointment) for appointment in appointments]


def list_by_user(db: Session, user_id: int) -> list[AppointmentView]:
    appointments = db.query(PetAppointment).filter(
        (PetAppointment.inviter_user_id == user_id) | (PetAppointment.invitee_user_id == user_id),
    ).order_by(PetAppointment.appointment_datetime.desc()).all()

    views = []
    for appointment in appointments:
        view = AppointmentView(appointment=appointment)
        if appointment.status == PENDING and appointment.current_decision_user_id == user_id:
            view.has_conflict = conflicts.has_conflict(
                db,
                user_id,
                appointment.appointment_datetime,
                exclude_appointment_id=appointment.appointment_id,
            )
        views.append(view)
    return views


def respond(
    db: Session,
    appointment_id: int,
    acting_user_id: int,
    accept: bool,
    decline_reason: str | None = None,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> PetAppointment:
    now = now or clock.now()
    appointment = _get_for_update(db, appointment_id)

    _require_participant(appointment, acting_user_id, 'respond to')
    _require_status(
        appointment,
        (PENDING,),
        f"Appointment is '{appointment.status}' and can no longer be answered.",
    )
    _require_decision_holder(appointment, acting_user_id, 'respond to')

    decline_reason = (decline_reason or '').strip()
    if not accept and not decline_reason:
        raise ValidationError('Please give a reason for declining.')
    if len(decline_reason) > MAX_REASON_LENGTH:
        raise ValidationError(f'The reason must be at most {MAX_REASON_LENGTH} characters.')

    if accept:
        transition(appointment, CONFIRMED, now)
        appointment.current_decision_user_id = None
    else:
        transition(appointment, REJECTED, now)
        appointment.current_decision_user_id = None
        appointment.cancelled_by = acting_user_id
        appointment.cancel_reason = decline_reason

    db.commit()
    db.refresh(appointment)

    other_user_id = appointment.other_party(acting_user_id)
    actor_pet = appointment.pet_name_for(acting_user_id)
    other_pet = appointment.pet_name_for(other_user_id)
    when = _format_time(appointment.appointment_datetime)
    if accept:
        send_notification(
            notifier,
            other_user_id,
            'Appointment confirmed!',
            f'{actor_pet} agreed to meet on {when}',
            'appointment_accepted',
        )
        send_notification(
            notifier,
            acting_user_id,
            'You confirmed the appointment!',
            f'Your meet-up with {other_pet} on {when} is confirmed',
            'appointment_accepted',
        )
    else:
        send_notification(
            notifier,
            other_user_id,
            'Appointment declined',
            f'{actor_pet} cannot make it. Reason: {decline_reason}',
            'appointment_rejected',
        )
        send_notification(
            notifier,
            acting_user_id,
            'You declined the appointment',
            f'You declined the meet-up with {other_pet}',
            'appointment_rejected',
        )
    return appointment


def counter_offer(
    db: Session,
    appointment_id: int,
    acting_user_id: int,
    new_datetime: datetime | None = None,
    new_location_id: int | None = None,
    new_custom_location: locations.LocationData | None = None,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> PetAppointment:
    now = now or clock.now()
    appointment = _get_for_update(db, appointment_id)

    _require_participant(appointment, acting_user_id, 'counter-offer')
    _require_status(appointment, (PENDING,), 'Appointment is no longer awaiting a response.')
    _require_decision_holder(appointment, acting_user_id, 'counter-offer')

    if appointment.counter_offer_count >= MAX_COUNTER_OFFERS:
        raise InvalidStateError(f'The limit of {MAX_COUNTER_OFFERS} counter-offers has been reached.')

    if new_datetime is None and new_location_id is None and new_custom_location is None:
        raise ValidationError('Please propose a new time or a new location.')

    time_changed = False
    if new_datetime is not None:
        new_datetime = clock.to_reference_time(new_datetime)
        time_changed = new_datetime != appointment.appointment_datetime
        if time_changed:
            _validate_advance_time(new_datetime, now)

    proposed_location_id = _resolve_location_id(db, new_location_id, new_custom_location)
    location_changed = proposed_location_id is not None and proposed_location_id != appointment.location_id

    if not time_changed and not location_changed:
        db.rollback()
        raise ValidationError('The counter-offer does not change the time or the location.')

    if time_changed:
        appointment.appointment_datetime = new_datetime
    if location_changed:
        appointment.location_id = proposed_location_id

    appointment.current_decision_user_id = appointment.other_party(acting_user_id)
    appointment.counter_offer_count += 1
    appointment.updated_at = now

    db.commit()
    db.refresh(appointment)

    logger.info(
        'Appointment %s counter-offer %s/%s by user %s',
        appointment.appointment_id,
        appointment.counter_offer_count,
        MAX_COUNTER_OFFERS,
        acting_user_id,
    )

    send_notification(
        notifier,
        appointment.current_decision_user_id,
        'New proposal for your appointment!',
        'The other side proposed a new time or place for your meet-up',
        'appointment_counter_offer',
    )
    return appointment


def cancel(
    db: Session,
    appointment_id: int,
    acting_user_id: int,
    reason: str,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> PetAppointment:
    now = now or clock.now()
    appointment = _get_for_update(db, appointment_id)

    _require_participant(appointment, acting_user_id, 'cancel')
    if appointment.status in (COMPLETED, CANCELLED):
        raise InvalidStateError('Appointment is already completed or cancelled.')

    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('Please give a reason for cancelling.')
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f'The reason must be at most {MAX_REASON_LENGTH} characters.')

    is_late = appointment.appointment_datetime <= now + timedelta(hours=LATE_CANCELLATION_HOURS)

    transition(appointment, CANCELLED, now)
    appointment.current_decision_user_id = None
    appointment.cancelled_by = acting_user_id
    appointment.cancel_reason = reason + (LATE_CANCELLATION_MARKER if is_late else '')

    db.commit()
    db.refresh(appointment)

    send_notification(
        notifier,
        appointment.other_party(acting_user_id),
        'Appointment cancelled at the last minute' if is_late else 'Appointment cancelled',
        f'The appointment was cancelled. Reason: {reason}',
        'appointment_cancelled',
    )
    return appointment


def check_in(
    db: Session,
    appointment_id: int,
    acting_user_id: int,
    latitude: float,
    longitude: float,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> tuple[PetAppointment, float | None]:
    """Record one party's arrival; returns the appointment and the measured distance."""
    now = now or clock.now()
    appointment = _get_for_update(db, appointment_id)

    _require_participant(appointment, acting_user_id, 'check in to')
    _require_status(
        appointment,
        (CONFIRMED, ON_GOING),
        'Appointment is not confirmed or has already ended.',
    )

    earliest = appointment.appointment_datetime - timedelta(minutes=CHECK_IN_BEFORE_MINUTES)
    latest = appointment.appointment_datetime + timedelta(minutes=CHECK_IN_AFTER_MINUTES)
    if now < earliest:
        raise InvalidStateError(
            f'Check-in opens at {earliest:%H:%M} ({CHECK_IN_BEFORE_MINUTES} minutes before the appointment).'
        )
    if now > latest:
        raise InvalidStateError(
            f'Check-in closed at {latest:%H:%M} ({CHECK_IN_AFTER_MINUTES} minutes after the appointment).'
        )

    distance = None
    if appointment.location is not None:
        distance = haversine_meters(
            latitude,
            longitude,
            appointment.location.latitude,
            appointment.location.longitude,
        )
        if distance > CHECK_IN_RADIUS_METERS:
            raise ValidationError(
                f'You are {distance:,.0f}m from the meeting place. '
                f'You need to be within {CHECK_IN_RADIUS_METERS:.0f}m to check in.'
            )

    if acting_user_id == appointment.inviter_user_id:
        appointment.inviter_checked_in = True
        appointment.inviter_check_in_time = now
    else:
        appointment.invitee_checked_in = True
        appointment.invitee_check_in_time = now
    appointment.updated_at = now

    started = (
        appointment.status == CONFIRMED
        and appointment.inviter_checked_in
        and appointment.invitee_checked_in
    )
    if started:
        transition(appointment, ON_GOING, now)

    db.commit()
    db.refresh(appointment)

    if started:
        for user_id in (appointment.inviter_user_id, appointment.invitee_user_id):
            send_notification(
                notifier,
                user_id,
                'Your meet-up has started!',
                'Both of you have checked in. Have a great time!',
                'appointment_ongoing',
            )
    elif appointment.status == CONFIRMED:
        pet_name = appointment.pet_name_for(acting_user_id) or 'The other side'
        send_notification(
            notifier,
            appointment.other_party(acting_user_id),
            'The other side has checked in!',
            f'{pet_name} has arrived at the meeting place. Check in soon!',
            'appointment_checkin',
        )
    return appointment, distance


def complete(
    db: Session,
    appointment_id: int,
    acting_user_id: int,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> PetAppointment:
    now = now or clock.now()
    appointment = _get_for_update(db, appointment_id)

    _require_participant(appointment, acting_user_id, 'complete')
    _require_status(appointment, (ON_GOING,), 'Only an ongoing appointment can be completed.')
    if now < appointment.appointment_datetime:
        raise InvalidStateError('The appointment time has not arrived yet.')

    transition(appointment, COMPLETED, now)
    db.commit()
    db.refresh(appointment)

    for user_id in (appointment.other_party(acting_user_id), acting_user_id):
        send_notification(
            notifier,
            user_id,
            'Appointment finished',
            'Your meet-up is complete. Thanks for using Pawnder!',
            'appointment_completed',
        )
    return appointment
