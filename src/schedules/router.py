from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from src.auth.dependencies import require_admin
from src.database import get_db
from src.events import event_bus
from src.schedules.schemas import (
    ScheduleCancelRequest, ScheduleCreate, ScheduleListResponse, ScheduleResponse,
    ScheduleStatus, ScheduleTransitionResponse, ScheduleUpdate
)
from src.schedules.service import ScheduleService

router = APIRouter()

@router.get("/", response_model=ScheduleListResponse)
def list_schedules(
    skip: int = Query(0, ge=0, description="Number of schedules to skip"),
    limit: int = Query(50, ge=1, le=100, description="Number of schedules to return"),
    departure_city: Optional[str] = Query(None, description="Filter by departure city"),
    arrival_city: Optional[str] = Query(None, description="Filter by arrival city"),
    travel_date: Optional[date] = Query(None, description="Departure date (YYYY-MM-DD)"),
    schedule_status: Optional[ScheduleStatus] = Query(None, alias="status", description="Filter by status"),
    db: Session = Depends(get_db)
):
    """Search trips"""
    schedules, total = ScheduleService(db).list_schedules(
        skip=skip,
        limit=limit,
        departure_city=departure_city,
        arrival_city=arrival_city,
        travel_date=travel_date,
        status=schedule_status
    )
    return ScheduleListResponse(
        schedules=schedules,
        total=total,
        page=(skip // limit) + 1,
        per_page=limit
    )

@router.get("/{schedule_id}", response_model=ScheduleResponse)
def get_schedule(schedule_id: int, db: Session = Depends(get_db)):
    return ScheduleService(db).get(schedule_id)

@router.post("/", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    schedule: ScheduleCreate,
    db: Session = Depends(get_db),
    admin_user = Depends(require_admin)
):
    """Create a new trip (admin only)"""
    return ScheduleService(db).create(schedule)

@router.put("/{schedule_id}", response_model=ScheduleResponse)
def update_schedule(
    schedule_id: int,
    schedule: ScheduleUpdate,
    db: Session = Depends(get_db),
    admin_user = Depends(require_admin)
):
    return ScheduleService(db).update(schedule_id, schedule)

@router.post("/{schedule_id}/cancel", response_model=ScheduleTransitionResponse)
def cancel_schedule(
    schedule_id: int,
    request: ScheduleCancelRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin_user = Depends(require_admin)
):
    """Cancel a trip; every pending or confirmed booking on it is cancelled too"""
    service = ScheduleService(db)
    schedule, cancelled = service.cancel(schedule_id, reason=request.reason, cancelled_by=admin_user.id)
    background_tasks.add_task(event_bus.publish_all, service.drain_events())
    return ScheduleTransitionResponse(
        message=f"Schedule cancelled, {cancelled} booking(s) cancelled",
        schedule=schedule,
        bookings_affected=cancelled
    )

@router.post("/{schedule_id}/complete", response_model=ScheduleTransitionResponse)
def complete_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    admin_user = Depends(require_admin)
):
    """Mark a trip completed; confirmed bookings become completed"""
    schedule, completed = ScheduleService(db).complete(schedule_id)
    return ScheduleTransitionResponse(
        message=f"Schedule completed, {completed} booking(s) completed",
        schedule=schedule,
        bookings_affected=completed
    )
