import logging
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.config import settings
from src.database import atomic
from src.exceptions import NotFound, SeatConflict, ValidationError
from src.models import BookingSeat, Schedule, SeatLock
from src.schedules.service import ensure_bookable, get_schedule_or_404
from src.seats.schemas import SeatAvailability, SeatState, SeatStatus
from src.utils import Clock, utcnow

logger = logging.getLogger(__name__)

class SeatLockService:
    """Short-lived exclusive seat holds backed by the ``seat_locks`` table.

    Exclusivity comes from the unique (schedule_id, seat_number) constraint,
    not from anything held in process memory: several API workers may race on
    the same seat and the store decides. Expired rows are treated as absent
    everywhere and deleted lazily (on the next lock of that seat) or by
    ``purge_expired``.
    """

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    def lock(
        self,
        schedule_id: int,
        seat_numbers: Iterable[int],
        session_id: str,
        ttl_minutes: Optional[int] = None,
        customer_id: Optional[int] = None
    ) -> List[SeatLock]:
        """Lock every requested seat for ``session_id`` or none of them"""
        now = self.clock()
        schedule = get_schedule_or_404(self.db, schedule_id)
        ensure_bookable(schedule, now)
        seats = self._validate_seats(schedule, seat_numbers)
        expires_at = now + timedelta(minutes=ttl_minutes or settings.SEAT_LOCK_TTL_MINUTES)

        try:
            with atomic(self.db):
                booked = self.booked_seats(schedule_id, seats)
                if booked:
                    raise SeatConflict(booked, "Some seats are already booked")

                self._delete_dead_locks(schedule_id, seats, now)

                held = {lock.seat_number: lock for lock in self.live_locks(schedule_id, seats)}
                taken = [n for n, lock in held.items() if lock.session_id != session_id]
                if taken:
                    raise SeatConflict(taken, "Some seats are locked by another customer")

                locks = []
                for seat_number in seats:
                    lock = held.get(seat_number)
                    if lock is None:
                        lock = SeatLock(
                            schedule_id=schedule_id,
                            seat_number=seat_number,
                            session_id=session_id,
                            customer_id=customer_id,
                            locked_at=now,
                            expires_at=expires_at
                        )
                        self.db.add(lock)
                    else:
                        lock.expires_at = expires_at
                    locks.append(lock)

                self.db.flush()
        except IntegrityError:
            # Another request inserted a lock between our check and our insert
            logger.info("Lock race lost on schedule %s seats %s", schedule_id, seats)
            raise SeatConflict(seats, "Seats were just locked by another customer")

        logger.info(
            "Session %s locked seats %s on schedule %s until %s",
            session_id, seats, schedule_id, expires_at
        )
        return locks

    def release(
        self,
        schedule_id: int,
        session_id: str,
        seat_numbers: Optional[Iterable[int]] = None
    ) -> int:
        """Drop the session's locks on a schedule; releasing nothing is not an error"""
        with atomic(self.db):
            query = self.db.query(SeatLock).filter(
                SeatLock.schedule_id == schedule_id,
                SeatLock.session_id == session_id
            )
            if seat_numbers is not None:
                query = query.filter(SeatLock.seat_number.in_(list(seat_numbers)))
            released = query.delete(synchronize_session=False)

        if released:
            logger.info("Session %s released %d seat(s) on schedule %s", session_id, released, schedule_id)
        return released

    def extend(self, schedule_id: int, session_id: str, additional_minutes: int):
        """Push the expiry of the session's live locks forward; returns the new expiry"""
        if additional_minutes < 1 or additional_minutes > settings.SEAT_LOCK_MAX_EXTENSION_MINUTES:
            raise ValidationError(
                f"additional_minutes must be between 1 and {settings.SEAT_LOCK_MAX_EXTENSION_MINUTES}"
            )

        with atomic(self.db):
            locks = self.live_locks(schedule_id, session_id=session_id)
            if not locks:
                raise NotFound("No active locks found for this session")
            delta = timedelta(minutes=additional_minutes)
            for lock in locks:
                lock.expires_at = lock.expires_at + delta
            new_expiry = max(lock.expires_at for lock in locks)

        return new_expiry

    def query_availability(self, schedule_id: int, session_id: Optional[str] = None) -> SeatAvailability:
        """Booked, locked and available seats of a schedule as of now"""
        now = self.clock()
        schedule = get_schedule_or_404(self.db, schedule_id)
        booked = self.booked_seats(schedule_id)
        live: Dict[int, SeatLock] = {lock.seat_number: lock for lock in self.live_locks(schedule_id, now=now)}

        seats = []
        for seat_number in range(1, schedule.total_seats + 1):
            lock = live.get(seat_number)
            if seat_number in booked:
                state = SeatState.BOOKED
            elif lock is not None and session_id and lock.session_id == session_id:
                state = SeatState.HELD
            elif lock is not None:
                state = SeatState.LOCKED
            else:
                state = SeatState.AVAILABLE
            seats.append(SeatStatus(
                seat_number=seat_number,
                status=state,
                lock_expires_at=lock.expires_at if lock is not None and state != SeatState.BOOKED else None
            ))

        return SeatAvailability(
            schedule_id=schedule_id,
            total_seats=schedule.total_seats,
            seats=seats,
            booked_seats=[s.seat_number for s in seats if s.status == SeatState.BOOKED],
            locked_seats=[s.seat_number for s in seats if s.status == SeatState.LOCKED],
            held_seats=[s.seat_number for s in seats if s.status == SeatState.HELD],
            available_count=sum(1 for s in seats if s.status == SeatState.AVAILABLE),
            evaluated_at=now
        )

    def session_locks(self, session_id: str) -> List[SeatLock]:
        """All live locks held by a session across schedules"""
        return (
            self.db.query(SeatLock)
            .filter(SeatLock.session_id == session_id, SeatLock.expires_at > self.clock())
            .order_by(SeatLock.schedule_id, SeatLock.seat_number)
            .all()
        )

    def purge_expired(self) -> int:
        """Delete dead lock rows; correctness never depends on this running"""
        with atomic(self.db):
            purged = (
                self.db.query(SeatLock)
                .filter(SeatLock.expires_at <= self.clock())
                .delete(synchronize_session=False)
            )
        if purged:
            logger.info("Purged %d expired seat lock(s)", purged)
        return purged

    def live_locks(
        self,
        schedule_id: int,
        seat_numbers: Optional[Iterable[int]] = None,
        session_id: Optional[str] = None,
        now=None
    ) -> List[SeatLock]:
        query = self.db.query(SeatLock).filter(
            SeatLock.schedule_id == schedule_id,
            SeatLock.expires_at > (now or self.clock())
        )
        if seat_numbers is not None:
            query = query.filter(SeatLock.seat_number.in_(list(seat_numbers)))
        if session_id is not None:
            query = query.filter(SeatLock.session_id == session_id)
        return query.all()

    def booked_seats(self, schedule_id: int, seat_numbers: Optional[Iterable[int]] = None) -> Set[int]:
        query = self.db.query(BookingSeat.seat_number).filter(BookingSeat.schedule_id == schedule_id)
        if seat_numbers is not None:
            query = query.filter(BookingSeat.seat_number.in_(list(seat_numbers)))
        return {seat_number for (seat_number,) in query.all()}

    def _delete_dead_locks(self, schedule_id: int, seat_numbers: List[int], now) -> None:
        (
            self.db.query(SeatLock)
            .filter(
                SeatLock.schedule_id == schedule_id,
                SeatLock.seat_number.in_(seat_numbers),
                SeatLock.expires_at <= now
            )
            .delete(synchronize_session=False)
        )

    @staticmethod
    def _validate_seats(schedule: Schedule, seat_numbers: Iterable[int]) -> List[int]:
        seats = sorted(set(seat_numbers))
        if not seats:
            raise ValidationError("At least one seat number is required")
        out_of_range = [n for n in seats if n < 1 or n > schedule.total_seats]
        if out_of_range:
            raise ValidationError(
                f"Seat numbers out of range 1-{schedule.total_seats}: {', '.join(map(str, out_of_range))}"
            )
        return seats
