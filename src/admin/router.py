from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from src.admin.admin_service import AdminDashboardService
from src.admin.schemas import (
    AdminBookingList, DashboardData, MessageResponse, PurgeResult, SweepResult
)
from src.auth.dependencies import require_admin, require_admin_or_cron
from src.auth.schemas import Actor
from src.bookings.booking_service import BookingService
from src.bookings.schemas import BookingStatus
from src.database import get_db
from src.seats.lock_service import SeatLockService
from src.sweeper.service import Sweeper

router = APIRouter()

def get_sweeper(request: Request) -> Sweeper:
    return request.app.state.sweeper

# Dashboard Endpoints
@router.get("/dashboard", response_model=DashboardData)
def get_dashboard(
    admin_user = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Booking, revenue and seat figures as of now"""
    return AdminDashboardService(db).get_dashboard()

# Booking Management Endpoints
@router.get("/bookings", response_model=AdminBookingList)
def get_bookings(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    schedule_id: Optional[int] = Query(None),
    admin_user = Depends(require_admin),
    db: Session = Depends(get_db)
):
    bookings, total = BookingService(db).search(
        status=booking_status, schedule_id=schedule_id, skip=skip, limit=limit
    )
    return AdminBookingList(bookings=bookings, total=total, page=(skip // limit) + 1, per_page=limit)

@router.delete("/bookings/{booking_id}", response_model=MessageResponse)
def delete_booking(
    booking_id: int,
    admin_user = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Permanently delete a booking; active bookings give their seats back first"""
    service = BookingService(db)
    reference = service.get(booking_id).booking_reference
    service.hard_delete(booking_id)
    return MessageResponse(message="Booking deleted", booking_reference=reference)

# Maintenance Endpoints
@router.post("/sweep", response_model=SweepResult)
def run_sweep(
    actor: Actor = Depends(require_admin_or_cron),
    sweeper: Sweeper = Depends(get_sweeper)
):
    """Run one sweeper pass now"""
    return SweepResult(**asdict(sweeper.run_once()))

@router.post("/seat-locks/purge", response_model=PurgeResult)
def purge_seat_locks(
    actor: Actor = Depends(require_admin_or_cron),
    db: Session = Depends(get_db)
):
    purged = SeatLockService(db).purge_expired()
    return PurgeResult(message=f"Purged {purged} expired seat lock(s)", purged=purged)
