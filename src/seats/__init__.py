"""
Seats Module

Short-lived seat locks that keep a seat for one customer session while they
enter passenger details and pay. Locks expire on their own; an expired lock
counts as free everywhere even before the sweeper deletes its row.
"""

from .router import router
from .lock_service import SeatLockService
from .schemas import SeatState, SeatAvailability

__all__ = ["router", "SeatLockService", "SeatState", "SeatAvailability"]
