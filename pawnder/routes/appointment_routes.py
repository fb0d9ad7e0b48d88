from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pawnder.auth.dependencies import get_current_user
from pawnder.core.errors import AppointmentError
from pawnder.database import get_db
from pawnder.models.match import Match
from pawnder.models.user import User
from pawnder.routes.common import database_unavailable, ensure_database_ready, get_notifier, to_http_exception
from pawnder.schemas.appointment import (
    AppointmentResponse,
    CancelAppointmentRequest,
    CancelAppointmentResult,
    CheckInRequest,
    CheckInResult,
    CompleteAppointmentResult,
    CounterOfferRequest,
    CounterOfferResult,
    CreateAppointmentRequest,
    CreateAppointmentResult,
    PreconditionResult,
    RespondAppointmentRequest,
    RespondAppointmentResult,
)
from pawnder.services import eligibility, negotiation
from pawnder.services.notifications import Notifier

router = APIRouter(tags=['appointments'])

ELIGIBLE_MESSAGE = 'Eligible to create an appointment.'


@router.get('/validate-preconditions', response_model=PreconditionResult)
def validate_preconditions(
    match_id: int = Query(..., gt=0),
    inviter_pet_id: int = Query(..., gt=0),
    invitee_pet_id: int = Query(..., gt=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        is_valid, reason = eligibility.validate_preconditions(db, match_id, inviter_pet_id, invitee_pet_id)
        return PreconditionResult(is_valid=is_valid, message=reason or ELIGIBLE_MESSAGE)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=CreateAppointmentResult, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = negotiation.create_appointment(
            db,
            acting_user_id=current_user.id,
            match_id=data.match_id,
            inviter_pet_id=data.inviter_pet_id,
            invitee_pet_id=data.invitee_pet_id,
            appointment_datetime=data.appointment_datetime,
            location_id=data.location_id,
            custom_location=data.custom_location.to_location_data() if data.custom_location else None,
            activity_type=data.activity_type,
            notifier=notifier,
        )
        return CreateAppointmentResult.model_validate(appointment)
    except AppointmentError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        views = negotiation.list_by_user(db, current_user.id)
        return [AppointmentResponse.from_view(view) for view in views]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/by-match/{match_id}', response_model=list[AppointmentResponse])
def list_match_appointments(
    match_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        match = db.query(Match).filter(Match.match_id == match_id).first()
        if match is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Match not found.')
        if current_user.id not in (match.from_user_id, match.to_user_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only the two matched users can view these appointments.',
            )

        views = negotiation.list_by_match(db, match_id)
        return [AppointmentResponse.from_view(view) for view in views]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        view = negotiation.get_appointment(db, appointment_id, viewer_user_id=current_user.id)
        return AppointmentResponse.from_view(view)
    except AppointmentError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{appointment_id}/respond', response_model=RespondAppointmentResult)
def respond_to_appointment(
    appointment_id: int,
    data: RespondAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = negotiation.respond(
            db,
            appointment_id,
            current_user.id,
            accept=data.accept,
            decline_reason=data.decline_reason,
            notifier=notifier,
        )
        return RespondAppointmentResult.model_validate(appointment)
    except AppointmentError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/{appointment_id}/counter-offer', response_model=CounterOfferResult)
def counter_offer_appointment(
    appointment_id: int,
    data: CounterOfferRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = negotiation.counter_offer(
            db,
            appointment_id,
            current_user.id,
            new_datetime=data.new_datetime,
            new_location_id=data.new_location_id,
            new_custom_location=(
                data.new_custom_location.to_location_data() if data.new_custom_location else None
            ),
            notifier=notifier,
        )
        return CounterOfferResult.from_appointment(appointment)
    except AppointmentError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/{appointment_id}/cancel', response_model=CancelAppointmentResult)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = negotiation.cancel(db, appointment_id, current_user.id, data.reason, notifier=notifier)
        return CancelAppointmentResult.from_appointment(appointment)
    except AppointmentError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/check-in', response_model=CheckInResult)
def check_in_appointment(
    appointment_id: int,
    data: CheckInRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment, distance = negotiation.check_in(
            db,
            appointment_id,
            current_user.id,
            latitude=data.latitude,
            longitude=data.longitude,
            notifier=notifier,
        )
        return CheckInResult.from_appointment(appointment, current_user.id, distance)
    except AppointmentError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/{appointment_id}/complete', response_model=CompleteAppointmentResult)
def complete_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = negotiation.complete(db, appointment_id, current_user.id, notifier=notifier)
        return CompleteAppointmentResult.model_validate(appointment)
    except AppointmentError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
