from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
from enum import Enum

class SeatState(str, Enum):
    AVAILABLE = "available"
    LOCKED = "locked"
    HELD = "held"  # locked by the requesting session
    BOOKED = "booked"

class SeatLockRequest(BaseModel):
    """Hold seats while the customer fills in passenger details and pays"""
    schedule_id: int
    seat_numbers: List[int] = Field(..., min_length=1, max_length=10)
    session_id: str = Field(..., min_length=8, max_length=128)
    ttl_minutes: Optional[int] = Field(None, ge=1, le=15)

    @field_validator("seat_numbers")
    @classmethod
    def dedupe_seats(cls, v):
        return sorted(set(v))

class SeatReleaseRequest(BaseModel):
    schedule_id: int
    session_id: str = Field(..., min_length=8, max_length=128)
    seat_numbers: Optional[List[int]] = None

class SeatExtendRequest(BaseModel):
    schedule_id: int
    session_id: str = Field(..., min_length=8, max_length=128)
    additional_minutes: int = Field(5, ge=1, le=15)

class SeatLockInfo(BaseModel):
    schedule_id: int
    seat_number: int
    expires_at: datetime

    class Config:
        from_attributes = True

class SeatLockResponse(BaseModel):
    message: str
    locks: List[SeatLockInfo]
    expires_at: datetime

class SeatReleaseResponse(BaseModel):
    message: str
    released_count: int

class SeatExtendResponse(BaseModel):
    message: str
    expires_at: datetime
    additional_minutes: int

class SeatStatus(BaseModel):
    seat_number: int
    status: SeatState
    lock_expires_at: Optional[datetime] = None

class SeatAvailability(BaseModel):
    """Seat-by-seat view of one schedule evaluated at request time"""
    schedule_id: int
    total_seats: int
    seats: List[SeatStatus]
    booked_seats: List[int]
    locked_seats: List[int]
    held_seats: List[int] = []
    available_count: int
    evaluated_at: datetime
