"""Pet profile model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from pawnder.database import Base
from pawnder.models import user  # noqa: F401


class Pet(Base):
    """Represents a pet profile owned by a user."""
    __tablename__ = "pets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    name = Column(String)
    breed = Column(String)
    is_deleted = Column(Boolean, default=False)

    photos = relationship("PetPhoto", back_populates="pet")


class PetPhoto(Base):
    """Represents a photo attached to a pet profile."""
    __tablename__ = "pet_photos"

    id = Column(Integer, primary_key=True)
    pet_id = Column(Integer, ForeignKey("pets.id"), index=True)
    url = Column(String)
    is_primary = Column(Boolean, default=False)
    is_deleted = Column(Boolean, default=False)

    pet = relationship("Pet", back_populates="photos")
