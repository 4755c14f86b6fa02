from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import List, Optional, Tuple

from src.buses.schemas import BusCreate, BusUpdate
from src.database import atomic
from src.exceptions import InvalidStateTransition, NotFound, ValidationError
from src.models import Bus, Schedule

class BusService:
    @staticmethod
    def get_bus(db: Session, bus_id: int) -> Bus:
        bus = db.query(Bus).filter(Bus.id == bus_id).first()
        if bus is None:
            raise NotFound(f"Bus with ID {bus_id} not found")
        return bus

    @staticmethod
    def get_buses(
        db: Session, skip: int = 0, limit: int = 50, is_active: Optional[bool] = None
    ) -> Tuple[List[Bus], int]:
        query = db.query(Bus)
        if is_active is not None:
            query = query.filter(Bus.is_active == is_active)
        total = query.count()
        return query.order_by(Bus.plate_number).offset(skip).limit(limit).all(), total

    @staticmethod
    def create_bus(db: Session, data: BusCreate) -> Bus:
        bus = Bus(**data.model_dump())
        try:
            with atomic(db):
                db.add(bus)
        except IntegrityError:
            raise ValidationError(f"Bus {data.plate_number} already exists")
        db.refresh(bus)
        return bus

    @staticmethod
    def update_bus(db: Session, bus_id: int, data: BusUpdate) -> Bus:
        """Seat count changes only apply to schedules created afterwards"""
        bus = BusService.get_bus(db, bus_id)
        with atomic(db):
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(bus, field, value)
        db.refresh(bus)
        return bus

    @staticmethod
    def delete_bus(db: Session, bus_id: int) -> None:
        bus = BusService.get_bus(db, bus_id)
        if db.query(Schedule).filter(Schedule.bus_id == bus_id).count():
            raise InvalidStateTransition("Bus still has schedules; deactivate it instead")
        with atomic(db):
            db.delete(bus)
