from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List
from enum import Enum
import logging

logger = logging.getLogger(__name__)

PHONE_PATTERN = r"^\+?[1-9]\d{0,15}$"


class Role(str, Enum):
    owner = "owner"
    sitter = "sitter"


def validate_password_strength(password: str) -> str:
    """Mínimo 6 caracteres; bcrypt no admite más de 72 bytes."""
    if len(password) < 6:
        raise ValueError("Password must be at least 6 characters long")
    if len(password.encode("utf-8")) > 72:
        raise ValueError("Password cannot exceed 72 bytes")
    if password.isdigit() or password.isalpha():
        logger.warning("Contraseña débil detectada (solo números o solo letras)")
    return password


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class EmergencyContact(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None


class Register(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str
    role: Role
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    bio: Optional[str] = Field(None, max_length=500)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)


class Login(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class Reactivate(Login):
    pass


class PasswordUpdate(BaseModel):
    current_password: str = Field(..., min_length=1, validation_alias=AliasChoices("current_password", "currentPassword"))
    new_password: str = Field(..., validation_alias=AliasChoices("new_password", "newPassword"))

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)


class UpdateMe(BaseModel):
    """Campos editables del perfil. El resto se ignora."""
    model_config = ConfigDict(str_strip_whitespace=True, allow_inf_nan=False)

    name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    bio: Optional[str] = Field(None, max_length=500)
    address: Optional[Address] = None
    experience: Optional[str] = Field(None, max_length=1000)
    certifications: Optional[List[str]] = None
    hourly_rate: Optional[float] = Field(None, ge=0)
    emergency_contact: Optional[EmergencyContact] = None
