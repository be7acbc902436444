from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Literal
from enum import Enum

from .pet import Species

ServiceType = Literal["dog_walking", "pet_sitting", "grooming", "training", "daycare", "boarding", "other"]
Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
PetSize = Literal["small", "medium", "large", "extra_large"]

TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class PriceType(str, Enum):
    hourly = "hourly"
    daily = "daily"
    weekly = "weekly"
    per_service = "per_service"


class Coordinates(BaseModel):
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)


class Location(BaseModel):
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    coordinates: Optional[Coordinates] = None


class AvailabilityWindow(BaseModel):
    day: Weekday
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str = Field(..., pattern=TIME_PATTERN)


class ServiceCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, allow_inf_nan=False)

    service_type: ServiceType
    title: str = Field(..., min_length=5, max_length=100)
    description: str = Field(..., min_length=10, max_length=1000)
    price: float = Field(..., ge=0)
    price_type: PriceType = PriceType.hourly
    duration: Optional[int] = Field(None, ge=15, description="Minutos")
    location: Location
    availability: List[AvailabilityWindow] = []
    pet_types: List[Species] = Field(..., min_length=1)
    pet_sizes: List[PetSize] = []
    max_pets: int = Field(1, ge=1)
    amenities: List[str] = []
    instant_booking: bool = False


class ServiceUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, allow_inf_nan=False)

    service_type: Optional[ServiceType] = None
    title: Optional[str] = Field(None, min_length=5, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=1000)
    price: Optional[float] = Field(None, ge=0)
    price_type: Optional[PriceType] = None
    duration: Optional[int] = Field(None, ge=15)
    location: Optional[Location] = None
    availability: Optional[List[AvailabilityWindow]] = None
    pet_types: Optional[List[Species]] = Field(None, min_length=1)
    pet_sizes: Optional[List[PetSize]] = None
    max_pets: Optional[int] = Field(None, ge=1)
    amenities: Optional[List[str]] = None
    instant_booking: Optional[bool] = None
