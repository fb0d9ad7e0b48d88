"""Meeting location model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String
from pawnder.database import Base


class AppointmentLocation(Base):
    """Represents a physical place where two pets can meet."""
    __tablename__ = "appointment_locations"

    location_id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    address = Column(String(500), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    city = Column(String(100))
    district = Column(String(100))
    is_pet_friendly = Column(Boolean, default=True)
    place_type = Column(String(50), default="custom")
    google_place_id = Column(String(255), unique=True, index=True)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)
