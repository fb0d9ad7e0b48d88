"""Single source of "now" for appointment handlers and the expiration sweeper."""

from datetime import datetime
from zoneinfo import ZoneInfo

from pawnder.core import config


def reference_zone() -> ZoneInfo:
    return ZoneInfo(config.APPOINTMENT_TIMEZONE)


def now() -> datetime:
    """Current wall-clock time in the reference zone, without tzinfo."""
    return datetime.now(reference_zone()).replace(tzinfo=None, microsecond=0)


def to_reference_time(value: datetime) -> datetime:
    """Normalize a client-supplied datetime to naive reference time.

    Aware values are converted into the reference zone; naive values are
    taken to already be reference wall-clock time.
    """
    if value.tzinfo is not None:
        value = value.astimezone(reference_zone()).replace(tzinfo=None)
    return value.replace(microsecond=0)
