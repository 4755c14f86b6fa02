from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from src.auth.dependencies import get_actor, get_current_user, require_admin_or_cron
from src.auth.schemas import Actor
from src.bookings.booking_service import BookingService
from src.bookings.schemas import (
    BookingCancellationRequest, BookingCancellationResponse, BookingCreateRequest,
    BookingResponse, BookingStatus, ExpirePendingResponse
)
from src.database import get_db
from src.events import event_bus

router = APIRouter()

def _publish_after_response(background_tasks: BackgroundTasks, service: BookingService) -> None:
    events = service.drain_events()
    if events:
        background_tasks.add_task(event_bus.publish_all, events)

@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingCreateRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Book locked seats; the booking stays pending until payment confirms it"""
    service = BookingService(db)
    booking = service.create(request, actor)
    _publish_after_response(background_tasks, service)
    return booking

@router.get("/me", response_model=List[BookingResponse])
def get_my_bookings(
    booking_status: Optional[BookingStatus] = Query(None, alias="status", description="Filter by status"),
    current_user = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Bookings of the authenticated customer, newest first"""
    return BookingService(db).list_for_customer(current_user.id, status=booking_status)

@router.get("/reference/{booking_reference}", response_model=BookingResponse)
def get_booking_by_reference(
    booking_reference: str,
    email: Optional[str] = Query(None, description="Guest email used when booking"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Look a booking up by reference; guests prove ownership with their email"""
    service = BookingService(db)
    booking = service.get_by_reference(booking_reference)
    if email and actor.user_id is None:
        actor = Actor(guest_email=email)
    service.authorize(booking, actor)
    return booking

@router.post("/expire-pending", response_model=ExpirePendingResponse)
def expire_pending_bookings(
    actor: Actor = Depends(require_admin_or_cron),
    db: Session = Depends(get_db)
):
    """Expire pending bookings past their payment window (admin or scheduler)"""
    return ExpirePendingResponse(count=BookingService(db).expire_pending())

@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: int,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    service = BookingService(db)
    booking = service.get(booking_id)
    service.authorize(booking, actor)
    return booking

@router.post("/{booking_id}/confirm", response_model=BookingResponse)
def confirm_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Payment succeeded: the owner or an admin confirms the pending booking"""
    service = BookingService(db)
    booking = service.confirm(booking_id, actor)
    _publish_after_response(background_tasks, service)
    return booking

@router.post("/{booking_id}/cancel", response_model=BookingCancellationResponse)
def cancel_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    request: Optional[BookingCancellationRequest] = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Cancel a pending or confirmed booking; paid bookings get a refund quote"""
    service = BookingService(db)
    booking, refund = service.cancel(booking_id, actor, reason=request.reason if request else None)
    _publish_after_response(background_tasks, service)
    return BookingCancellationResponse(
        message="Booking cancelled successfully",
        booking=booking,
        refund=refund
    )
