import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from src.database import atomic
from src.events import BookingEvent
from src.exceptions import InvalidStateTransition, NotFound, ScheduleUnavailable, ValidationError
from src.models import Bus, Route, Schedule
from src.schedules.schemas import ScheduleCreate, ScheduleStatus, ScheduleUpdate
from src.utils import Clock, utcnow

logger = logging.getLogger(__name__)

CLOSED_STATUSES = (ScheduleStatus.CANCELLED.value, ScheduleStatus.COMPLETED.value)

def get_schedule_or_404(db: Session, schedule_id: int) -> Schedule:
    schedule = db.query(Schedule).filter(Schedule.id == schedule_id).first()
    if schedule is None:
        raise NotFound(f"Schedule with ID {schedule_id} not found")
    return schedule

def ensure_bookable(schedule: Schedule, now: datetime) -> None:
    """Seats can only be locked or booked on a Scheduled trip before booking closes"""
    if schedule.status != ScheduleStatus.SCHEDULED.value:
        raise ScheduleUnavailable(f"Schedule {schedule.id} is {schedule.status}")
    if now >= schedule.booking_closes_at:
        raise ScheduleUnavailable(f"Booking for schedule {schedule.id} has closed")

class ScheduleService:
    """Trip catalogue and the schedule lifecycle (Scheduled -> In Progress -> Completed)"""

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.events: List[BookingEvent] = []

    def drain_events(self) -> List[BookingEvent]:
        events, self.events = self.events, []
        return events

    def create(self, data: ScheduleCreate) -> Schedule:
        route = self.db.query(Route).filter(Route.id == data.route_id).first()
        if route is None:
            raise NotFound(f"Route with ID {data.route_id} not found")
        bus = self.db.query(Bus).filter(Bus.id == data.bus_id).first()
        if bus is None:
            raise NotFound(f"Bus with ID {data.bus_id} not found")
        if not bus.is_active:
            raise ValidationError(f"Bus {bus.plate_number} is not in service")

        schedule = Schedule(
            route_id=route.id,
            bus_id=bus.id,
            departure_city=data.departure_city or route.origin,
            arrival_city=data.arrival_city or route.destination,
            departure_at=data.departure_at,
            arrival_at=data.arrival_at,
            booking_closes_at=data.booking_closes_at or data.departure_at,
            total_seats=bus.total_seats,
            available_seats=bus.total_seats,
            price_per_seat=data.price_per_seat,
            status=ScheduleStatus.SCHEDULED.value
        )
        with atomic(self.db):
            self.db.add(schedule)
        self.db.refresh(schedule)

        logger.info(
            "Created schedule %s: %s -> %s at %s (%d seats)",
            schedule.id, schedule.departure_city, schedule.arrival_city,
            schedule.departure_at, schedule.total_seats
        )
        return schedule

    def update(self, schedule_id: int, data: ScheduleUpdate) -> Schedule:
        schedule = get_schedule_or_404(self.db, schedule_id)
        if schedule.status != ScheduleStatus.SCHEDULED.value:
            raise InvalidStateTransition(f"Cannot edit a schedule that is {schedule.status}")

        changes = data.model_dump(exclude_unset=True)
        departure_at = changes.get("departure_at", schedule.departure_at)
        arrival_at = changes.get("arrival_at", schedule.arrival_at)
        closes_at = changes.get("booking_closes_at", schedule.booking_closes_at)
        if arrival_at <= departure_at:
            raise ValidationError("arrival_at must be after departure_at")
        if closes_at > departure_at:
            raise ValidationError("booking_closes_at cannot be after departure_at")

        with atomic(self.db):
            for field, value in changes.items():
                if value is not None:
                    setattr(schedule, field, value)
        self.db.refresh(schedule)
        return schedule

    def get(self, schedule_id: int) -> Schedule:
        return get_schedule_or_404(self.db, schedule_id)

    def list_schedules(
        self,
        skip: int = 0,
        limit: int = 50,
        departure_city: Optional[str] = None,
        arrival_city: Optional[str] = None,
        travel_date: Optional[date] = None,
        status: Optional[ScheduleStatus] = None
    ) -> Tuple[List[Schedule], int]:
        """Search trips by cities, departure date and status"""
        query = self.db.query(Schedule)

        if departure_city:
            query = query.filter(Schedule.departure_city.ilike(f"%{departure_city}%"))
        if arrival_city:
            query = query.filter(Schedule.arrival_city.ilike(f"%{arrival_city}%"))
        if travel_date:
            start = datetime.combine(travel_date, datetime.min.time())
            query = query.filter(
                Schedule.departure_at >= start,
                Schedule.departure_at < start + timedelta(days=1)
            )
        if status:
            query = query.filter(Schedule.status == status.value)

        total = query.count()
        schedules = query.order_by(Schedule.departure_at).offset(skip).limit(limit).all()
        return schedules, total

    def cancel(self, schedule_id: int, reason: Optional[str] = None, cancelled_by: Optional[int] = None) -> Tuple[Schedule, int]:
        """Cancel a trip and every active booking on it"""
        from src.bookings.booking_service import BookingService

        now = self.clock()
        schedule = get_schedule_or_404(self.db, schedule_id)
        if schedule.status == ScheduleStatus.CANCELLED.value:
            raise InvalidStateTransition(f"Schedule {schedule_id} is already cancelled")
        if schedule.status == ScheduleStatus.COMPLETED.value:
            raise InvalidStateTransition(f"Schedule {schedule_id} is already completed")

        booking_reason = reason or "Trip cancelled by operator"
        booking_service = BookingService(self.db, clock=self.clock)
        # The trip and its bookings change together or not at all
        with atomic(self.db):
            updated = (
                self.db.query(Schedule)
                .filter(Schedule.id == schedule_id, Schedule.status == schedule.status)
                .update({
                    Schedule.status: ScheduleStatus.CANCELLED.value,
                    Schedule.cancelled_at: now,
                    Schedule.cancelled_by: cancelled_by,
                    Schedule.cancellation_reason: reason
                }, synchronize_session=False)
            )
            if not updated:
                raise InvalidStateTransition(f"Schedule {schedule_id} changed state concurrently")
            staged = booking_service.stage_schedule_cancellation(schedule_id, booking_reason)

        booking_service.announce_schedule_cancellation(staged, booking_reason)
        self.events.extend(booking_service.drain_events())

        logger.info("Cancelled schedule %s; %d booking(s) cancelled", schedule_id, len(staged))
        self.db.refresh(schedule)
        return schedule, len(staged)

    def complete(self, schedule_id: int) -> Tuple[Schedule, int]:
        """Mark a trip completed and complete its confirmed bookings"""
        schedule = get_schedule_or_404(self.db, schedule_id)
        if schedule.status in CLOSED_STATUSES:
            raise InvalidStateTransition(f"Schedule {schedule_id} is already {schedule.status}")
        return self._complete(schedule, self.clock())

    def update_statuses(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Advance schedules whose departure or arrival time has passed"""
        now = now or self.clock()
        counts = {"departed": 0, "completed": 0, "bookings_completed": 0}

        with atomic(self.db):
            counts["departed"] = (
                self.db.query(Schedule)
                .filter(
                    Schedule.status == ScheduleStatus.SCHEDULED.value,
                    Schedule.departure_at <= now,
                    Schedule.arrival_at > now
                )
                .update({
                    Schedule.status: ScheduleStatus.IN_PROGRESS.value,
                    Schedule.departed_at: now
                }, synchronize_session=False)
            )

        arrived = (
            self.db.query(Schedule)
            .filter(
                Schedule.status.in_([ScheduleStatus.SCHEDULED.value, ScheduleStatus.IN_PROGRESS.value]),
                Schedule.arrival_at <= now
            )
            .all()
        )
        for schedule in arrived:
            _, completed = self._complete(schedule, now)
            counts["completed"] += 1
            counts["bookings_completed"] += completed

        if counts["departed"] or counts["completed"]:
            logger.info(
                "Schedule statuses updated: %d departed, %d completed",
                counts["departed"], counts["completed"]
            )
        return counts

    def _complete(self, schedule: Schedule, now: datetime) -> Tuple[Schedule, int]:
        from src.bookings.booking_service import BookingService

        booking_service = BookingService(self.db, clock=lambda: now)
        completed = 0
        with atomic(self.db):
            updated = (
                self.db.query(Schedule)
                .filter(Schedule.id == schedule.id, Schedule.status.notin_(CLOSED_STATUSES))
                .update({
                    Schedule.status: ScheduleStatus.COMPLETED.value,
                    Schedule.departed_at: schedule.departed_at or now,
                    Schedule.completed_at: now
                }, synchronize_session=False)
            )
            if updated:
                completed = booking_service.stage_schedule_completion(schedule.id)

        self.db.refresh(schedule)
        return schedule, completed
