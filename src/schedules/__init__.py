"""
Schedules Module

Trips of one bus on one route, and their lifecycle:

- Scheduled: open for seat locks and bookings until booking closes
- In Progress: departed, no new bookings
- Completed: arrived, confirmed bookings are completed with it
- Cancelled: every active booking on the trip is cancelled

Key Components:
- service.py: ScheduleService plus the bookability checks used by seats and bookings
- router.py: FastAPI endpoints for search and admin management
- schemas.py: Pydantic models for schedule requests and responses
"""

from .router import router
from .service import ScheduleService, ensure_bookable, get_schedule_or_404
from .schemas import (
    ScheduleStatus, ScheduleCreate, ScheduleUpdate, ScheduleResponse, ScheduleListResponse
)

__all__ = [
    "router",
    "ScheduleService",
    "ensure_bookable",
    "get_schedule_or_404",
    "ScheduleStatus",
    "ScheduleCreate",
    "ScheduleUpdate",
    "ScheduleResponse",
    "ScheduleListResponse"
]
