from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from src.auth.dependencies import require_admin
from src.buses.schemas import BusCreate, BusListResponse, BusResponse, BusUpdate
from src.buses.service import BusService
from src.database import get_db

router = APIRouter()

@router.get("/", response_model=BusListResponse)
def get_buses(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    is_active: Optional[bool] = Query(None, description="Filter by service state"),
    db: Session = Depends(get_db)
):
    buses, total = BusService.get_buses(db, skip=skip, limit=limit, is_active=is_active)
    return BusListResponse(buses=buses, total=total)

@router.get("/{bus_id}", response_model=BusResponse)
def get_bus(bus_id: int, db: Session = Depends(get_db)):
    return BusService.get_bus(db, bus_id)

@router.post("/", response_model=BusResponse, status_code=status.HTTP_201_CREATED)
def create_bus(bus: BusCreate, db: Session = Depends(get_db), admin_user = Depends(require_admin)):
    return BusService.create_bus(db, bus)

@router.put("/{bus_id}", response_model=BusResponse)
def update_bus(bus_id: int, bus: BusUpdate, db: Session = Depends(get_db), admin_user = Depends(require_admin)):
    return BusService.update_bus(db, bus_id, bus)

@router.delete("/{bus_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_bus(bus_id: int, db: Session = Depends(get_db), admin_user = Depends(require_admin)):
    BusService.delete_bus(db, bus_id)
