from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from src.auth.dependencies import get_optional_user
from src.database import get_db
from src.seats.lock_service import SeatLockService
from src.seats.schemas import (
    SeatAvailability, SeatExtendRequest, SeatExtendResponse, SeatLockInfo,
    SeatLockRequest, SeatLockResponse, SeatReleaseRequest, SeatReleaseResponse
)

router = APIRouter()

@router.post("/lock", response_model=SeatLockResponse)
def lock_seats(
    request: SeatLockRequest,
    current_user = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    """Hold seats for this session; all requested seats are locked or none are"""
    locks = SeatLockService(db).lock(
        request.schedule_id,
        request.seat_numbers,
        request.session_id,
        ttl_minutes=request.ttl_minutes,
        customer_id=current_user.id if current_user else None
    )
    return SeatLockResponse(
        message=f"Locked {len(locks)} seat(s)",
        locks=locks,
        expires_at=max(lock.expires_at for lock in locks)
    )

@router.post("/release", response_model=SeatReleaseResponse)
def release_seats(request: SeatReleaseRequest, db: Session = Depends(get_db)):
    released = SeatLockService(db).release(request.schedule_id, request.session_id, request.seat_numbers)
    return SeatReleaseResponse(message=f"Released {released} seat(s)", released_count=released)

@router.post("/extend", response_model=SeatExtendResponse)
def extend_locks(request: SeatExtendRequest, db: Session = Depends(get_db)):
    """Give the customer more time before their locks lapse"""
    expires_at = SeatLockService(db).extend(request.schedule_id, request.session_id, request.additional_minutes)
    return SeatExtendResponse(
        message="Seat locks extended",
        expires_at=expires_at,
        additional_minutes=request.additional_minutes
    )

@router.get("/availability/{schedule_id}", response_model=SeatAvailability)
def get_seat_availability(
    schedule_id: int,
    session_id: Optional[str] = Query(None, description="Report this session's locks as held"),
    db: Session = Depends(get_db)
):
    return SeatLockService(db).query_availability(schedule_id, session_id=session_id)

@router.get("/my-locks", response_model=List[SeatLockInfo])
def get_my_locks(
    session_id: str = Query(..., min_length=8, max_length=128),
    db: Session = Depends(get_db)
):
    return SeatLockService(db).session_locks(session_id)
