from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

class ScheduleStatus(str, Enum):
    """Schedule status enumeration"""
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

# Schedule Request Models
class ScheduleCreate(BaseModel):
    """Create a trip of one bus on one route"""
    route_id: int
    bus_id: int
    departure_city: Optional[str] = None
    arrival_city: Optional[str] = None
    departure_at: datetime
    arrival_at: datetime
    booking_closes_at: Optional[datetime] = None
    price_per_seat: Decimal = Field(..., gt=0)

    @model_validator(mode="after")
    def validate_times(self):
        if self.arrival_at <= self.departure_at:
            raise ValueError("arrival_at must be after departure_at")
        if self.booking_closes_at is not None and self.booking_closes_at > self.departure_at:
            raise ValueError("booking_closes_at cannot be after departure_at")
        return self

class ScheduleUpdate(BaseModel):
    """Fields that may change while a schedule is still Scheduled"""
    departure_at: Optional[datetime] = None
    arrival_at: Optional[datetime] = None
    booking_closes_at: Optional[datetime] = None
    price_per_seat: Optional[Decimal] = Field(None, gt=0)

class ScheduleCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

# Schedule Response Models
class ScheduleResponse(BaseModel):
    id: int
    route_id: int
    bus_id: int
    departure_city: str
    arrival_city: str
    departure_at: datetime
    arrival_at: datetime
    booking_closes_at: datetime
    total_seats: int
    available_seats: int
    price_per_seat: Decimal
    status: ScheduleStatus
    departed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    class Config:
        from_attributes = True

class ScheduleListResponse(BaseModel):
    schedules: List[ScheduleResponse]
    total: int
    page: int
    per_page: int

class ScheduleTransitionResponse(BaseModel):
    """Result of cancelling or completing a schedule"""
    message: str
    schedule: ScheduleResponse
    bookings_affected: int
