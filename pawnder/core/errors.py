"""
Exception hierarchy for the appointment core.

Services raise these; the HTTP layer maps each type to a status code.
"""


class AppointmentError(Exception):
    """Base exception for appointment and location operations."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(AppointmentError):
    """Appointment, location, match or pet does not exist."""


class UnauthorizedError(AppointmentError):
    """Actor is not a participant or does not hold decision rights."""


class InvalidStateError(AppointmentError):
    """Action is not allowed from the appointment's current status."""


class ValidationError(AppointmentError):
    """Request data breaks a business rule (reason, lead time, distance)."""
