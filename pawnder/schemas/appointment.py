from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from pawnder.models.appointment import ACTIVITY_TYPES, LATE_CANCELLATION_MARKER, MAX_REASON_LENGTH, PetAppointment
from pawnder.schemas.location import CreateLocationRequest, LocationResponse
from pawnder.services.negotiation import MAX_COUNTER_OFFERS, AppointmentView


class CreateAppointmentRequest(BaseModel):
    match_id: int = Field(gt=0)
    inviter_pet_id: int = Field(gt=0)
    invitee_pet_id: int = Field(gt=0)
    appointment_datetime: datetime
    location_id: int | None = Field(default=None, gt=0)
    custom_location: CreateLocationRequest | None = None
    activity_type: str = 'other'

    @field_validator('activity_type')
    @classmethod
    def validate_activity_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in ACTIVITY_TYPES:
            raise ValueError(f"Invalid activity type ({', '.join(ACTIVITY_TYPES)}).")
        return normalized


class RespondAppointmentRequest(BaseModel):
    accept: bool
    decline_reason: str | None = Field(default=None, max_length=MAX_REASON_LENGTH)


class CounterOfferRequest(BaseModel):
    new_datetime: datetime | None = None
    new_location_id: int | None = Field(default=None, gt=0)
    new_custom_location: CreateLocationRequest | None = None


class CancelAppointmentRequest(BaseModel):
    reason: str = Field(min_length=5, max_length=MAX_REASON_LENGTH)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) < 5:
            raise ValueError('Cancellation reason must be between 5 and 500 characters.')
        return normalized


class CheckInRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class AppointmentResponse(BaseModel):
    appointment_id: int
    match_id: int
    inviter_pet_id: int
    inviter_pet_name: str | None = None
    inviter_user_id: int
    invitee_pet_id: int
    invitee_pet_name: str | None = None
    invitee_user_id: int
    appointment_datetime: datetime
    location: LocationResponse | None = None
    activity_type: str
    status: str
    current_decision_user_id: int | None = None
    counter_offer_count: int
    inviter_checked_in: bool
    invitee_checked_in: bool
    inviter_check_in_time: datetime | None = None
    invitee_check_in_time: datetime | None = None
    cancelled_by: int | None = None
    cancel_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    has_conflict: bool = False

    @classmethod
    def from_view(cls, view: AppointmentView) -> 'AppointmentResponse':
        appointment = view.appointment
        return cls(
            appointment_id=appointment.appointment_id,
            match_id=appointment.match_id,
            inviter_pet_id=appointment.inviter_pet_id,
            inviter_pet_name=appointment.inviter_pet.name if appointment.inviter_pet else None,
            inviter_user_id=appointment.inviter_user_id,
            invitee_pet_id=appointment.invitee_pet_id,
            invitee_pet_name=appointment.invitee_pet.name if appointment.invitee_pet else None,
            invitee_user_id=appointment.invitee_user_id,
            appointment_datetime=appointment.appointment_datetime,
            location=LocationResponse.model_validate(appointment.location) if appointment.location else None,
            activity_type=appointment.activity_type or 'other',
            status=appointment.status,
            current_decision_user_id=appointment.current_decision_user_id,
            counter_offer_count=appointment.counter_offer_count or 0,
            inviter_checked_in=bool(appointment.inviter_checked_in),
            invitee_checked_in=bool(appointment.invitee_checked_in),
            inviter_check_in_time=appointment.inviter_check_in_time,
            invitee_check_in_time=appointment.invitee_check_in_time,
            cancelled_by=appointment.cancelled_by,
            cancel_reason=appointment.cancel_reason,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
            has_conflict=view.has_conflict,
        )


class CreateAppointmentResult(BaseModel):
    appointment_id: int
    status: str
    appointment_datetime: datetime
    location_id: int | None = None
    current_decision_user_id: int | None = None

    class Config:
        from_attributes = True


class RespondAppointmentResult(BaseModel):
    appointment_id: int
    status: str
    current_decision_user_id: int | None = None
    cancelled_by: int | None = None
    cancel_reason: str | None = None

    class Config:
        from_attributes = True


class CounterOfferResult(BaseModel):
    appointment_id: int
    status: str
    appointment_datetime: datetime
    location_id: int | None = None
    current_decision_user_id: int | None = None
    counter_offer_count: int
    counter_offers_remaining: int

    @classmethod
    def from_appointment(cls, appointment: PetAppointment) -> 'CounterOfferResult':
        return cls(
            appointment_id=appointment.appointment_id,
            status=appointment.status,
            appointment_datetime=appointment.appointment_datetime,
            location_id=appointment.location_id,
            current_decision_user_id=appointment.current_decision_user_id,
            counter_offer_count=appointment.counter_offer_count,
            counter_offers_remaining=max(0, MAX_COUNTER_OFFERS - appointment.counter_offer_count),
        )


class CancelAppointmentResult(BaseModel):
    appointment_id: int
    status: str
    cancelled_by: int | None = None
    cancel_reason: str | None = None
    is_late_cancellation: bool

    @classmethod
    def from_appointment(cls, appointment: PetAppointment) -> 'CancelAppointmentResult':
        return cls(
            appointment_id=appointment.appointment_id,
            status=appointment.status,
            cancelled_by=appointment.cancelled_by,
            cancel_reason=appointment.cancel_reason,
            is_late_cancellation=(appointment.cancel_reason or '').endswith(LATE_CANCELLATION_MARKER),
        )


class CheckInResult(BaseModel):
    appointment_id: int
    status: str
    inviter_checked_in: bool
    invitee_checked_in: bool
    check_in_time: datetime | None = None
    distance_meters: float | None = None

    @classmethod
    def from_appointment(
        cls,
        appointment: PetAppointment,
        acting_user_id: int,
        distance_meters: float | None,
    ) -> 'CheckInResult':
        if acting_user_id == appointment.inviter_user_id:
            check_in_time = appointment.inviter_check_in_time
        else:
            check_in_time = appointment.invitee_check_in_time
        return cls(
            appointment_id=appointment.appointment_id,
            status=appointment.status,
            inviter_checked_in=bool(appointment.inviter_checked_in),
            invitee_checked_in=bool(appointment.invitee_checked_in),
            check_in_time=check_in_time,
            distance_meters=round(distance_meters, 1) if distance_meters is not None else None,
        )


class CompleteAppointmentResult(BaseModel):
    appointment_id: int
    status: str
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class PreconditionResult(BaseModel):
    is_valid: bool
    message: str
