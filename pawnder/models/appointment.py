"""Appointment model definitions."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from pawnder.database import Base
# Referenced tables must be registered on Base.metadata before mapping.
from pawnder.models import location, match, pet, user  # noqa: F401

PENDING = "pending"
CONFIRMED = "confirmed"
REJECTED = "rejected"
CANCELLED = "cancelled"
EXPIRED = "expired"
NO_SHOW = "no_show"
ON_GOING = "on_going"
COMPLETED = "completed"

TERMINAL_STATUSES = frozenset({REJECTED, CANCELLED, EXPIRED, NO_SHOW, COMPLETED})
ACTIVITY_TYPES = ("walk", "cafe", "playdate", "park", "other")

MAX_REASON_LENGTH = 500
LATE_CANCELLATION_MARKER = " (late cancellation)"


class PetAppointment(Base):
    """Represents a proposed or scheduled meeting between two matched pets."""
    __tablename__ = "pet_appointments"
    __table_args__ = (
        CheckConstraint("inviter_pet_id <> invitee_pet_id", name="ck_pet_appointments_distinct_pets"),
        CheckConstraint("counter_offer_count BETWEEN 0 AND 3", name="ck_pet_appointments_counter_offer_count"),
    )

    appointment_id = Column(Integer, primary_key=True)
    match_id = Column(Integer, ForeignKey("matches.match_id"), nullable=False, index=True)
    inviter_pet_id = Column(Integer, ForeignKey("pets.id"), nullable=False)
    inviter_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    invitee_pet_id = Column(Integer, ForeignKey("pets.id"), nullable=False)
    invitee_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    appointment_datetime = Column(DateTime, nullable=False)
    location_id = Column(Integer, ForeignKey("appointment_locations.location_id"))
    activity_type = Column(String(20), default="other")
    status = Column(String(20), nullable=False, default=PENDING)
    current_decision_user_id = Column(Integer, ForeignKey("users.id"))
    counter_offer_count = Column(Integer, nullable=False, default=0)
    inviter_checked_in = Column(Boolean, nullable=False, default=False)
    invitee_checked_in = Column(Boolean, nullable=False, default=False)
    inviter_check_in_time = Column(DateTime)
    invitee_check_in_time = Column(DateTime)
    cancelled_by = Column(Integer, ForeignKey("users.id"))
    # Room for a full-length reason plus the late cancellation marker.
    cancel_reason = Column(String(MAX_REASON_LENGTH + len(LATE_CANCELLATION_MARKER)))
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    location = relationship("AppointmentLocation")
    inviter_pet = relationship("Pet", foreign_keys=[inviter_pet_id])
    invitee_pet = relationship("Pet", foreign_keys=[invitee_pet_id])

    def is_participant(self, user_id: int) -> bool:
        return user_id in (self.inviter_user_id, self.invitee_user_id)

    def other_party(self, user_id: int) -> int:
        return self.invitee_user_id if user_id == self.inviter_user_id else self.inviter_user_id

    def pet_name_for(self, user_id: int) -> str | None:
        pet = self.inviter_pet if user_id == self.inviter_user_id else self.invitee_pet
        return pet.name if pet is not None else None
