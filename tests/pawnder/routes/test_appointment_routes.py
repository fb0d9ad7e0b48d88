from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from conftest import NOW, PARK_LATITUDE, PARK_LONGITUDE
from pawnder.core import clock
from pawnder.models.appointment import CONFIRMED, MAX_REASON_LENGTH, ON_GOING, PetAppointment
from pawnder.models.user import User
from pawnder.routes import appointment_routes
from pawnder.routes.common import DATABASE_UNAVAILABLE_DETAIL
from pawnder.schemas.appointment import (
    CancelAppointmentRequest,
    CheckInRequest,
    CounterOfferRequest,
    CreateAppointmentRequest,
    RespondAppointmentRequest,
)


@pytest.fixture(autouse=True)
def fixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('pawnder.routes.appointment_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr(clock, 'now', lambda: NOW)


def create_request(matched_pair, **overrides) -> CreateAppointmentRequest:
    values = dict(
        match_id=matched_pair.match.match_id,
        inviter_pet_id=matched_pair.inviter_pet.id,
        invitee_pet_id=matched_pair.invitee_pet.id,
        appointment_datetime=NOW + timedelta(hours=3),
        activity_type='walk',
    )
    values.update(overrides)
    return CreateAppointmentRequest(**values)


def test_create_appointment_request_normalizes_activity_type(matched_pair) -> None:
    request = create_request(matched_pair, activity_type=' Cafe ')

    assert request.activity_type == 'cafe'


def test_create_appointment_request_rejects_unknown_activity_type(matched_pair) -> None:
    with pytest.raises(ValidationError):
        create_request(matched_pair, activity_type='karaoke')


def test_cancel_request_strips_and_requires_real_reason() -> None:
    assert CancelAppointmentRequest(reason='  Raining hard  ').reason == 'Raining hard'

    with pytest.raises(ValidationError):
        CancelAppointmentRequest(reason='  no  ')


def test_check_in_request_rejects_impossible_coordinates() -> None:
    with pytest.raises(ValidationError):
        CheckInRequest(latitude=91, longitude=0)


def test_validate_preconditions_reports_ok(db, matched_pair) -> None:
    result = appointment_routes.validate_preconditions(
        match_id=matched_pair.match.match_id,
        inviter_pet_id=matched_pair.inviter_pet.id,
        invitee_pet_id=matched_pair.invitee_pet.id,
        current_user=matched_pair.inviter,
        db=db,
    )

    assert result.is_valid is True
    assert result.message == appointment_routes.ELIGIBLE_MESSAGE


def test_create_appointment_returns_pending_invitation(db, matched_pair, notifier) -> None:
    result = appointment_routes.create_appointment(
        data=create_request(matched_pair),
        current_user=matched_pair.inviter,
        db=db,
        notifier=notifier,
    )

    assert result.status == 'pending'
    assert result.current_decision_user_id == matched_pair.invitee.id
    assert notifier.types_for(matched_pair.invitee.id) == ['appointment_invite']


def test_create_appointment_converts_aware_datetime(db, matched_pair, notifier) -> None:
    result = appointment_routes.create_appointment(
        data=create_request(matched_pair, appointment_datetime=datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)),
        current_user=matched_pair.inviter,
        db=db,
        notifier=notifier,
    )

    assert result.appointment_datetime == datetime(2026, 3, 2, 13, 0)


def test_create_appointment_too_soon_is_bad_request(db, matched_pair, notifier) -> None:
    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.create_appointment(
            data=create_request(matched_pair, appointment_datetime=NOW + timedelta(hours=1)),
            current_user=matched_pair.inviter,
            db=db,
            notifier=notifier,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'The appointment must be at least 2 hours from now.'
    assert notifier.sent == []


def test_create_appointment_for_someone_elses_pet_is_forbidden(db, matched_pair, notifier) -> None:
    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.create_appointment(
            data=create_request(matched_pair),
            current_user=matched_pair.invitee,
            db=db,
            notifier=notifier,
        )

    assert exception_info.value.status_code == 403


def test_get_missing_appointment_is_not_found(db, matched_pair) -> None:
    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.get_appointment(appointment_id=404, current_user=matched_pair.inviter, db=db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointment not found.'


def test_get_appointment_includes_pet_names_and_location(db, appointment_factory, matched_pair, park) -> None:
    appointment = appointment_factory(NOW + timedelta(hours=4), location_id=park.location_id)

    response = appointment_routes.get_appointment(
        appointment_id=appointment.appointment_id,
        current_user=matched_pair.invitee,
        db=db,
    )

    assert response.inviter_pet_name == 'Mochi'
    assert response.invitee_pet_name == 'Bean'
    assert response.location.name == 'Tao Dan Park'
    assert response.has_conflict is False


def test_respond_out_of_turn_is_forbidden(db, appointment_factory, matched_pair, notifier) -> None:
    appointment = appointment_factory(NOW + timedelta(hours=4))

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.respond_to_appointment(
            appointment_id=appointment.appointment_id,
            data=RespondAppointmentRequest(accept=True),
            current_user=matched_pair.inviter,
            db=db,
            notifier=notifier,
        )

    assert exception_info.value.status_code == 403


def test_respond_twice_is_conflict(db, appointment_factory, matched_pair, notifier) -> None:
    appointment = appointment_factory(NOW + timedelta(hours=4))
    appointment_routes.respond_to_appointment(
        appointment_id=appointment.appointment_id,
        data=RespondAppointmentRequest(accept=True),
        current_user=matched_pair.invitee,
        db=db,
        notifier=notifier,
    )

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.respond_to_appointment(
            appointment_id=appointment.appointment_id,
            data=RespondAppointmentRequest(accept=True),
            current_user=matched_pair.invitee,
            db=db,
            notifier=notifier,
        )

    assert exception_info.value.status_code == 409


def test_counter_offer_reports_remaining_offers(db, appointment_factory, matched_pair, notifier) -> None:
    appointment = appointment_factory(NOW + timedelta(hours=4))

    result = appointment_routes.counter_offer_appointment(
        appointment_id=appointment.appointment_id,
        data=CounterOfferRequest(new_datetime=NOW + timedelta(hours=6)),
        current_user=matched_pair.invitee,
        db=db,
        notifier=notifier,
    )

    assert result.counter_offer_count == 1
    assert result.counter_offers_remaining == 2
    assert result.current_decision_user_id == matched_pair.inviter.id


def test_counter_offer_without_changes_is_bad_request(db, appointment_factory, matched_pair, notifier) -> None:
    appointment = appointment_factory(NOW + timedelta(hours=4))

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.counter_offer_appointment(
            appointment_id=appointment.appointment_id,
            data=CounterOfferRequest(),
            current_user=matched_pair.invitee,
            db=db,
            notifier=notifier,
        )

    assert exception_info.value.status_code == 400


def test_cancel_flags_late_cancellation(db, appointment_factory, matched_pair, notifier) -> None:
    appointment = appointment_factory(NOW + timedelta(hours=1), status=CONFIRMED)

    result = appointment_routes.cancel_appointment(
        appointment_id=appointment.appointment_id,
        data=CancelAppointmentRequest(reason='Mochi hurt a paw'),
        current_user=matched_pair.inviter,
        db=db,
        notifier=notifier,
    )

    assert result.status == 'cancelled'
    assert result.is_late_cancellation is True
    assert result.cancel_reason == 'Mochi hurt a paw (late cancellation)'


def test_check_in_reports_distance(db, appointment_factory, matched_pair, park, notifier) -> None:
    appointment = appointment_factory(NOW, status=CONFIRMED, location_id=park.location_id)

    result = appointment_routes.check_in_appointment(
        appointment_id=appointment.appointment_id,
        data=CheckInRequest(latitude=PARK_LATITUDE, longitude=PARK_LONGITUDE),
        current_user=matched_pair.invitee,
        db=db,
        notifier=notifier,
    )

    assert result.status == CONFIRMED
    assert result.invitee_checked_in is True
    assert result.check_in_time == NOW
    assert result.distance_meters == 0


def test_check_in_far_away_is_bad_request(db, appointment_factory, matched_pair, park, notifier) -> None:
    appointment = appointment_factory(NOW, status=CONFIRMED, location_id=park.location_id)

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.check_in_appointment(
            appointment_id=appointment.appointment_id,
            data=CheckInRequest(latitude=PARK_LATITUDE + 0.01, longitude=PARK_LONGITUDE),
            current_user=matched_pair.invitee,
            db=db,
            notifier=notifier,
        )

    assert exception_info.value.status_code == 400


def test_complete_by_outsider_is_forbidden(db, appointment_factory, notifier) -> None:
    appointment = appointment_factory(NOW - timedelta(minutes=30), status=ON_GOING)
    outsider = User(id=3, email='stranger@example.com', full_name='Stranger', role='user')

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.complete_appointment(
            appointment_id=appointment.appointment_id,
            current_user=outsider,
            db=db,
            notifier=notifier,
        )

    assert exception_info.value.status_code == 403


def test_list_match_appointments_requires_match_party(db, appointment_factory) -> None:
    appointment_factory(NOW + timedelta(hours=4))
    outsider = User(id=3, email='stranger@example.com', full_name='Stranger', role='user')

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.list_match_appointments(match_id=100, current_user=outsider, db=db)

    assert exception_info.value.status_code == 403


def test_list_match_appointments_unknown_match(db, matched_pair) -> None:
    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.list_match_appointments(match_id=555, current_user=matched_pair.inviter, db=db)

    assert exception_info.value.status_code == 404


def test_list_my_appointments_flags_conflicts(db, appointment_factory, matched_pair) -> None:
    appointment_factory(NOW + timedelta(hours=4), status=CONFIRMED)
    appointment_factory(NOW + timedelta(hours=5))

    responses = appointment_routes.list_my_appointments(current_user=matched_pair.invitee, db=db)

    assert [response.has_conflict for response in responses] == [True, False]


def test_database_errors_become_service_unavailable(db, matched_pair, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_list(_db, _user_id):
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    monkeypatch.setattr('pawnder.services.negotiation.list_by_user', broken_list)

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.list_my_appointments(current_user=matched_pair.inviter, db=db)

    assert exception_info.value.status_code == 503
    assert exception_info.value.detail == DATABASE_UNAVAILABLE_DETAIL


def test_counter_offer_out_of_turn_is_forbidden(db, appointment_factory, matched_pair, notifier) -> None:
    appointment = appointment_factory(NOW + timedelta(hours=4))

    with pytest.raises(HTTPException) as exception_info:
        appointment_routes.counter_offer_appointment(
            appointment_id=appointment.appointment_id,
            data=CounterOfferRequest(new_datetime=NOW + timedelta(hours=6)),
            current_user=matched_pair.inviter,
            db=db,
            notifier=notifier,
        )

    assert exception_info.value.status_code == 403
    stored = db.get(PetAppointment, appointment.appointment_id)
    assert stored.counter_offer_count == 0
    assert stored.current_decision_user_id == matched_pair.invitee.id


def test_cancel_with_longest_reason_keeps_late_marker(db, appointment_factory, matched_pair, notifier) -> None:
    appointment = appointment_factory(NOW + timedelta(hours=1), status=CONFIRMED)

    result = appointment_routes.cancel_appointment(
        appointment_id=appointment.appointment_id,
        data=CancelAppointmentRequest(reason='x' * MAX_REASON_LENGTH),
        current_user=matched_pair.inviter,
        db=db,
        notifier=notifier,
    )

    assert result.is_late_cancellation is True
    assert len(result.cancel_reason) <= PetAppointment.__table__.c.cancel_reason.type.length


def test_cancel_request_rejects_reason_over_limit() -> None:
    with pytest.raises(ValidationError):
        CancelAppointmentRequest(reason='x' * (MAX_REASON_LENGTH + 1))
