from pydantic import BaseModel
from typing import Dict, List, Optional
from datetime import datetime
from decimal import Decimal

from src.bookings.schemas import BookingResponse

# Dashboard
class DashboardMetrics(BaseModel):
    """Aggregates computed at request time"""
    total_users: int
    total_bookings: int
    bookings_by_status: Dict[str, int]
    revenue: Decimal
    currency: str
    upcoming_schedules: int
    seats_booked_upcoming: int
    seats_locked_now: int
    pending_payment: int

class RecentActivity(BaseModel):
    type: str
    count: int

class DashboardData(BaseModel):
    metrics: DashboardMetrics
    recent_activity: List[RecentActivity]
    generated_at: datetime

# Bookings
class AdminBookingList(BaseModel):
    bookings: List[BookingResponse]
    total: int
    page: int
    per_page: int

# Maintenance
class SweepResult(BaseModel):
    expired_bookings: int
    reminders_sent: int
    reminders_failed: int
    reminders_skipped: int = 0
    schedules_departed: int
    schedules_completed: int
    locks_purged: int
    errors: List[str] = []
    skipped: bool = False

class PurgeResult(BaseModel):
    message: str
    purged: int

class MessageResponse(BaseModel):
    message: str
    booking_reference: Optional[str] = None
