from pydantic import BaseModel, Field, field_validator

from pawnder.services.locations import LocationData


class CreateLocationRequest(BaseModel):
    name: str = Field(min_length=2, max_length=200)
    address: str = Field(min_length=5, max_length=500)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    city: str | None = Field(default=None, max_length=100)
    district: str | None = Field(default=None, max_length=100)
    place_type: str | None = Field(default=None, max_length=50)
    google_place_id: str | None = Field(default=None, max_length=255)

    @field_validator('name', 'address')
    @classmethod
    def strip_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Value cannot be blank.')
        return normalized

    @field_validator('google_place_id')
    @classmethod
    def normalize_place_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    def to_location_data(self) -> LocationData:
        return LocationData(**self.model_dump())


class LocationResponse(BaseModel):
    location_id: int
    name: str
    address: str
    latitude: float
    longitude: float
    city: str | None = None
    district: str | None = None
    is_pet_friendly: bool = True
    place_type: str | None = None
    google_place_id: str | None = None

    class Config:
        from_attributes = True
