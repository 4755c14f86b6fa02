from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import List, Optional, Literal
from datetime import datetime
from decimal import Decimal
from enum import Enum

from src.bookings.pricing import RefundQuote

class BookingStatus(str, Enum):
    """Booking status enumeration"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    COMPLETED = "completed"

ACTIVE_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)

# Passenger Information
class PassengerInfo(BaseModel):
    """Individual passenger travelling on one seat"""
    name: str = Field(..., min_length=1, max_length=255)
    age: int = Field(..., ge=0, le=120)
    gender: Literal["male", "female", "other"]
    phone: str = Field(..., min_length=6, max_length=30)
    email: Optional[EmailStr] = None

# Booking Request Models
class BookingCreateRequest(BaseModel):
    """Request to book seats on a schedule"""
    schedule_id: int
    seat_numbers: List[int] = Field(..., min_length=1, max_length=10)
    passengers: List[PassengerInfo]
    session_id: Optional[str] = Field(None, min_length=8, max_length=128)
    guest_name: Optional[str] = None
    guest_email: Optional[EmailStr] = None
    guest_phone: Optional[str] = None
    pickup_point: Optional[str] = None
    dropoff_point: Optional[str] = None

    @field_validator("seat_numbers")
    @classmethod
    def validate_seat_numbers(cls, v):
        if len(set(v)) != len(v):
            raise ValueError("Seat numbers must be unique")
        if any(n < 1 for n in v):
            raise ValueError("Seat numbers start at 1")
        return v

    @model_validator(mode="after")
    def validate_passengers_match_seats(self):
        if len(self.passengers) != len(self.seat_numbers):
            raise ValueError("Number of passengers must match number of seats")
        return self

class BookingCancellationRequest(BaseModel):
    """Request to cancel a booking"""
    reason: Optional[str] = Field(None, max_length=500)

# Booking Response Models
class BookingResponse(BaseModel):
    """Booking details"""
    id: int
    booking_reference: str
    customer_id: Optional[int] = None
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    schedule_id: int
    seat_numbers: List[int]
    passengers: List[PassengerInfo]
    fare: Decimal
    convenience_fee: Decimal
    bank_charge: Decimal
    total_amount: Decimal
    currency: str
    pickup_point: Optional[str] = None
    dropoff_point: Optional[str] = None
    status: BookingStatus
    expires_at: Optional[datetime] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    reminder_sent_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BookingCancellationResponse(BaseModel):
    message: str
    booking: BookingResponse
    refund: Optional[RefundQuote] = None

class ExpirePendingResponse(BaseModel):
    count: int
