from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum
from datetime import datetime


class BookingStatus(str, Enum):
    pending     = "pending"
    confirmed   = "confirmed"
    in_progress = "in_progress"
    completed   = "completed"
    cancelled   = "cancelled"
    declined    = "declined"


class BookingContact(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    relationship: Optional[str] = None


class BookingCreate(BaseModel):
    service_id: str
    pet_id: str
    start_date: datetime
    end_date: datetime
    notes: Optional[str] = Field(None, max_length=500)
    emergency_contact: Optional[BookingContact] = None


class StatusPatch(BaseModel):
    status: BookingStatus
    notes: Optional[str] = Field(None, max_length=500)


class BookingUpdateIn(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)
    photos: List[str] = []


class CheckInOut(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)
    photos: List[str] = []
