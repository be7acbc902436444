from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Literal

Species = Literal["dog", "cat", "bird", "fish", "rabbit", "hamster", "other"]
Gender = Literal["male", "female", "unknown"]


class VetInfo(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None


class PetCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, allow_inf_nan=False)

    name: str = Field(..., min_length=1, max_length=50)
    species: Species
    breed: Optional[str] = Field(None, max_length=50)
    age: Optional[int] = Field(None, ge=0, le=30)
    weight: Optional[float] = Field(None, ge=0)
    gender: Gender = "unknown"
    color: Optional[str] = None
    special_needs: Optional[str] = Field(None, max_length=500)
    vaccinated: bool = False
    microchipped: bool = False
    spayed_neutered: bool = False
    medications: List[str] = []
    allergies: List[str] = []
    vet_info: Optional[VetInfo] = None
    behavior_notes: Optional[str] = Field(None, max_length=1000)


class PetUpdate(BaseModel):
    """Actualización parcial: sólo se aplican los campos enviados."""
    model_config = ConfigDict(str_strip_whitespace=True, allow_inf_nan=False)

    name: Optional[str] = Field(None, min_length=1, max_length=50)
    species: Optional[Species] = None
    breed: Optional[str] = Field(None, max_length=50)
    age: Optional[int] = Field(None, ge=0, le=30)
    weight: Optional[float] = Field(None, ge=0)
    gender: Optional[Gender] = None
    color: Optional[str] = None
    special_needs: Optional[str] = Field(None, max_length=500)
    vaccinated: Optional[bool] = None
    microchipped: Optional[bool] = None
    spayed_neutered: Optional[bool] = None
    medications: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    vet_info: Optional[VetInfo] = None
    behavior_notes: Optional[str] = Field(None, max_length=1000)
