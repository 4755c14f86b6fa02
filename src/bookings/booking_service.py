import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.auth.schemas import Actor
from src.bookings.pricing import RefundQuote, calculate_price, calculate_refund
from src.bookings.schemas import ACTIVE_STATUSES, BookingCreateRequest, BookingStatus
from src.config import settings
from src.database import atomic
from src.events import (
    BookingCancelled, BookingConfirmed, BookingCreated, BookingEvent, BookingSnapshot
)
from src.exceptions import (
    AlreadyCancelled, AlreadyConfirmed, BookingExpired, DomainError, Forbidden,
    InvalidStateTransition, NotFound, ScheduleUnavailable, SeatConflict, Unauthorized,
    ValidationError
)
from src.models import Booking, BookingSeat, Schedule, SeatLock, User
from src.schedules.schemas import ScheduleStatus
from src.schedules.service import ensure_bookable, get_schedule_or_404
from src.seats.lock_service import SeatLockService
from src.utils import Clock, generate_booking_reference, utcnow

logger = logging.getLogger(__name__)

REFERENCE_ATTEMPTS = 3

class BookingService:
    """Booking lifecycle: pending -> confirmed -> completed, or cancelled / expired.

    Every transition is a conditional update guarded by the expected current
    status, so a repeated or concurrent call finds nothing to update instead
    of applying twice. Each public method commits its own transaction.
    Events describing what happened are queued on ``self.events`` and must be
    published by the caller after the method returns.
    """

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.seat_locks = SeatLockService(db, clock=clock)
        self.events: List[BookingEvent] = []

    def drain_events(self) -> List[BookingEvent]:
        events, self.events = self.events, []
        return events

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def create(self, request: BookingCreateRequest, actor: Actor) -> Booking:
        """Turn locked (or free) seats into a pending booking awaiting payment"""
        now = self.clock()
        schedule = get_schedule_or_404(self.db, request.schedule_id)
        ensure_bookable(schedule, now)
        seats = self.seat_locks._validate_seats(schedule, request.seat_numbers)
        contact = self._resolve_contact(request, actor)
        price = calculate_price(schedule.price_per_seat, len(seats))

        fields = dict(
            schedule_id=schedule.id,
            session_id=request.session_id,
            seat_numbers=seats,
            passengers=[p.model_dump(mode="json") for p in request.passengers],
            fare=price.fare,
            convenience_fee=price.convenience_fee,
            bank_charge=price.bank_charge,
            total_amount=price.total,
            currency=price.currency,
            pickup_point=request.pickup_point,
            dropoff_point=request.dropoff_point,
            status=BookingStatus.PENDING.value,
            expires_at=now + timedelta(minutes=settings.BOOKING_PAYMENT_WINDOW_MINUTES),
            created_at=now,
            **contact
        )

        for _ in range(REFERENCE_ATTEMPTS):
            booking = Booking(booking_reference=generate_booking_reference(), **fields)
            try:
                self._insert(booking, seats, request.session_id, now)
                break
            except IntegrityError:
                if not self._reference_taken(booking.booking_reference):
                    logger.info("Booking race lost on schedule %s seats %s", schedule.id, seats)
                    raise SeatConflict(seats, "Seats were just booked by another customer")
                logger.warning("Booking reference %s already taken, generating another", booking.booking_reference)
        else:
            raise InvalidStateTransition("Could not allocate a unique booking reference")

        self.db.refresh(booking)
        logger.info(
            "Created booking %s for seats %s on schedule %s, total %s %s",
            booking.booking_reference, seats, schedule.id, booking.total_amount, booking.currency
        )
        self.events.append(BookingCreated(booking=self.snapshot(booking), expires_at=booking.expires_at))
        return booking

    def confirm(self, booking_id: int, actor: Optional[Actor] = None) -> Booking:
        """Mark a pending booking paid.

        HTTP callers pass the requesting ``actor``, which must own the booking
        or be an admin; in-process callers such as the payment webhook pass
        ``Actor.system()`` or nothing.
        """
        now = self.clock()
        booking = self.get(booking_id)
        if actor is not None:
            self.authorize(booking, actor)

        if booking.status == BookingStatus.CONFIRMED.value:
            raise AlreadyConfirmed(f"Booking {booking.booking_reference} is already confirmed")
        if booking.status != BookingStatus.PENDING.value:
            raise InvalidStateTransition(f"Cannot confirm a booking that is {booking.status}")
        if booking.schedule.status in (ScheduleStatus.CANCELLED.value, ScheduleStatus.COMPLETED.value):
            raise ScheduleUnavailable(f"Schedule {booking.schedule_id} is {booking.schedule.status}")
        if booking.expires_at is not None and booking.expires_at <= now:
            self._expire(booking.id, now)
            raise BookingExpired(f"Payment window for booking {booking.booking_reference} has elapsed")

        with atomic(self.db):
            updated = (
                self.db.query(Booking)
                .filter(Booking.id == booking.id, Booking.status == BookingStatus.PENDING.value)
                .update({
                    Booking.status: BookingStatus.CONFIRMED.value,
                    Booking.confirmed_at: now,
                    Booking.expires_at: None
                }, synchronize_session=False)
            )
            if not updated:
                raise InvalidStateTransition(f"Booking {booking.booking_reference} changed state concurrently")
            if booking.session_id:
                self._delete_session_locks(booking.schedule_id, booking.session_id, booking.seat_numbers)

        self.db.refresh(booking)
        logger.info("Confirmed booking %s", booking.booking_reference)
        self.events.append(BookingConfirmed(booking=self.snapshot(booking)))
        return booking

    def cancel(self, booking_id: int, actor: Actor, reason: Optional[str] = None) -> Tuple[Booking, Optional[RefundQuote]]:
        """Cancel a pending or confirmed booking and give its seats back"""
        now = self.clock()
        booking = self.get(booking_id)
        self.authorize(booking, actor)

        if booking.status == BookingStatus.CANCELLED.value:
            raise AlreadyCancelled(f"Booking {booking.booking_reference} is already cancelled")
        if booking.status not in ACTIVE_STATUSES:
            raise InvalidStateTransition(f"Cannot cancel a booking that is {booking.status}")

        was_paid = booking.status == BookingStatus.CONFIRMED.value
        with atomic(self.db):
            updated = (
                self.db.query(Booking)
                .filter(Booking.id == booking.id, Booking.status == booking.status)
                .update({
                    Booking.status: BookingStatus.CANCELLED.value,
                    Booking.cancelled_at: now,
                    Booking.cancellation_reason: reason,
                    Booking.expires_at: None
                }, synchronize_session=False)
            )
            if not updated:
                raise InvalidStateTransition(f"Booking {booking.booking_reference} changed state concurrently")
            self._release_seats(booking)

        refund = self._announce_cancellation(booking, reason, was_paid, now)
        return booking, refund

    def expire_pending(self) -> int:
        """Expire every pending booking whose payment window has elapsed"""
        now = self.clock()
        due = [
            booking_id for (booking_id,) in (
                self.db.query(Booking.id)
                .filter(Booking.status == BookingStatus.PENDING.value, Booking.expires_at <= now)
                .order_by(Booking.expires_at)
                .all()
            )
        ]

        expired = 0
        for booking_id in due:
            try:
                if self._expire(booking_id, now):
                    expired += 1
            except (DomainError, SQLAlchemyError):
                logger.exception("Failed to expire booking %s", booking_id)

        if expired:
            logger.info("Expired %d pending booking(s)", expired)
        return expired

    def complete_schedule(self, schedule_id: int) -> int:
        """Complete the confirmed bookings of a finished trip; pending ones are left to expire"""
        with atomic(self.db):
            return self.stage_schedule_completion(schedule_id)

    def stage_schedule_completion(self, schedule_id: int) -> int:
        """Complete the trip's confirmed bookings inside the caller's transaction"""
        completed = (
            self.db.query(Booking)
            .filter(Booking.schedule_id == schedule_id, Booking.status == BookingStatus.CONFIRMED.value)
            .update({
                Booking.status: BookingStatus.COMPLETED.value,
                Booking.completed_at: self.clock()
            }, synchronize_session=False)
        )
        if completed:
            logger.info("Completing %d booking(s) on schedule %s", completed, schedule_id)
        return completed

    def stage_schedule_cancellation(self, schedule_id: int, reason: str) -> List[Tuple[Booking, bool]]:
        """Cancel the trip's active bookings inside the caller's transaction.

        Nothing is committed here. Returns ``(booking, was_paid)`` pairs to hand
        to ``announce_schedule_cancellation`` once the caller has committed.
        """
        now = self.clock()
        bookings = (
            self.db.query(Booking)
            .filter(Booking.schedule_id == schedule_id, Booking.status.in_(ACTIVE_STATUSES))
            .all()
        )

        staged = []
        for booking in bookings:
            was_paid = booking.status == BookingStatus.CONFIRMED.value
            updated = (
                self.db.query(Booking)
                .filter(Booking.id == booking.id, Booking.status == booking.status)
                .update({
                    Booking.status: BookingStatus.CANCELLED.value,
                    Booking.cancelled_at: now,
                    Booking.cancellation_reason: reason,
                    Booking.expires_at: None
                }, synchronize_session=False)
            )
            if updated:
                self._release_seats(booking)
                staged.append((booking, was_paid))
        return staged

    def announce_schedule_cancellation(self, staged: List[Tuple[Booking, bool]], reason: str) -> None:
        now = self.clock()
        for booking, was_paid in staged:
            self._announce_cancellation(booking, reason, was_paid, now)

    def hard_delete(self, booking_id: int) -> None:
        """Physically remove a booking, giving back its seats if it was still active"""
        booking = self.get(booking_id)
        reference = booking.booking_reference
        with atomic(self.db):
            if booking.status in ACTIVE_STATUSES:
                self._release_seats(booking)
            self.db.delete(booking)
        logger.warning("Hard-deleted booking %s", reference)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, booking_id: int) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if booking is None:
            raise NotFound(f"Booking with ID {booking_id} not found")
        return booking

    def get_by_reference(self, booking_reference: str) -> Booking:
        booking = self.db.query(Booking).filter(Booking.booking_reference == booking_reference).first()
        if booking is None:
            raise NotFound(f"Booking {booking_reference} not found")
        return booking

    def list_for_customer(self, customer_id: int, status: Optional[BookingStatus] = None) -> List[Booking]:
        query = self.db.query(Booking).filter(Booking.customer_id == customer_id)
        if status:
            query = query.filter(Booking.status == status.value)
        return query.order_by(Booking.created_at.desc()).all()

    def search(
        self,
        status: Optional[BookingStatus] = None,
        schedule_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Tuple[List[Booking], int]:
        query = self.db.query(Booking)
        if status:
            query = query.filter(Booking.status == status.value)
        if schedule_id:
            query = query.filter(Booking.schedule_id == schedule_id)
        total = query.count()
        return query.order_by(Booking.created_at.desc()).offset(skip).limit(limit).all(), total

    def authorize(self, booking: Booking, actor: Actor) -> None:
        """Owner, matching guest, admin or system may act on a booking"""
        if actor.is_system or actor.is_admin:
            return
        if actor.is_anonymous:
            raise Unauthorized("Authentication required")
        if booking.customer_id is not None:
            if actor.user_id != booking.customer_id:
                raise Forbidden("This booking belongs to another customer")
            return
        if not actor.guest_email or not booking.guest_email or \
                actor.guest_email.strip().lower() != booking.guest_email.strip().lower():
            raise Forbidden("Guest email does not match this booking")

    def snapshot(self, booking: Booking) -> BookingSnapshot:
        customer = booking.customer
        schedule = booking.schedule
        return BookingSnapshot(
            booking_id=booking.id,
            booking_reference=booking.booking_reference,
            customer_id=booking.customer_id,
            recipient_email=customer.email if customer else booking.guest_email,
            recipient_name=customer.name if customer else (booking.guest_name or "Customer"),
            departure_city=schedule.departure_city,
            arrival_city=schedule.arrival_city,
            departure_at=schedule.departure_at,
            seat_numbers=tuple(booking.seat_numbers),
            total_amount=Decimal(str(booking.total_amount)),
            currency=booking.currency
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _insert(self, booking: Booking, seats: List[int], session_id: Optional[str], now: datetime) -> None:
        """Insert the booking and its seats and take them off the trip, all or nothing"""
        schedule_id = booking.schedule_id
        with atomic(self.db):
            booked = self.seat_locks.booked_seats(schedule_id, seats)
            if booked:
                raise SeatConflict(booked, "Some seats are already booked")

            live = self.seat_locks.live_locks(schedule_id, seats, now=now)
            if session_id:
                held = {lock.seat_number for lock in live if lock.session_id == session_id}
                missing = [n for n in seats if n not in held]
                if missing:
                    raise SeatConflict(missing, "Seats must be locked by this session before booking")
            elif live:
                raise SeatConflict([lock.seat_number for lock in live], "Some seats are locked by another customer")

            self.db.add(booking)
            self.db.flush()
            for seat_number in seats:
                self.db.add(BookingSeat(booking_id=booking.id, schedule_id=schedule_id, seat_number=seat_number))

            if session_id:
                self._delete_session_locks(schedule_id, session_id, seats)

            reserved = (
                self.db.query(Schedule)
                .filter(Schedule.id == schedule_id, Schedule.available_seats >= len(seats))
                .update(
                    {Schedule.available_seats: Schedule.available_seats - len(seats)},
                    synchronize_session=False
                )
            )
            if not reserved:
                raise SeatConflict(seats, "Not enough seats left on this trip")
            self.db.flush()

    def _announce_cancellation(
        self, booking: Booking, reason: Optional[str], was_paid: bool, now: datetime
    ) -> Optional[RefundQuote]:
        """Quote the refund of a committed cancellation and queue its event"""
        self.db.refresh(booking)
        refund = None
        if was_paid:
            hours_left = (booking.schedule.departure_at - now).total_seconds() / 3600
            refund = calculate_refund(booking.total_amount, max(hours_left, 0.0))

        logger.info(
            "Cancelled booking %s (%s)%s",
            booking.booking_reference, reason or "no reason given",
            f", refund {refund.refund_amount}" if refund else ""
        )
        self.events.append(BookingCancelled(
            booking=self.snapshot(booking),
            reason=reason,
            refund_amount=refund.refund_amount if refund else None
        ))
        return refund

    def _reference_taken(self, booking_reference: str) -> bool:
        return self.db.query(Booking.id).filter(Booking.booking_reference == booking_reference).first() is not None

    def _resolve_contact(self, request: BookingCreateRequest, actor: Actor) -> dict:
        if actor.user_id is not None:
            user = self.db.query(User).filter(User.id == actor.user_id).first()
            if user is None:
                raise Unauthorized("Unknown customer")
            return {
                "customer_id": user.id,
                "guest_name": request.guest_name,
                "guest_email": request.guest_email,
                "guest_phone": request.guest_phone
            }

        missing = [
            field for field in ("guest_name", "guest_email", "guest_phone", "session_id")
            if not getattr(request, field)
        ]
        if missing:
            raise ValidationError(f"Guest bookings require: {', '.join(missing)}")
        return {
            "customer_id": None,
            "guest_name": request.guest_name,
            "guest_email": request.guest_email,
            "guest_phone": request.guest_phone
        }

    def _expire(self, booking_id: int, now: datetime) -> bool:
        """Expire one pending booking in its own transaction; False if it already moved on"""
        booking = self.get(booking_id)
        with atomic(self.db):
            updated = (
                self.db.query(Booking)
                .filter(
                    Booking.id == booking_id,
                    Booking.status == BookingStatus.PENDING.value,
                    Booking.expires_at <= now
                )
                .update({Booking.status: BookingStatus.EXPIRED.value}, synchronize_session=False)
            )
            if updated:
                self._release_seats(booking)

        if updated:
            logger.info("Expired booking %s", booking.booking_reference)
        return bool(updated)

    def _release_seats(self, booking: Booking) -> None:
        released = (
            self.db.query(BookingSeat)
            .filter(BookingSeat.booking_id == booking.id)
            .delete(synchronize_session=False)
        )
        if released:
            (
                self.db.query(Schedule)
                .filter(Schedule.id == booking.schedule_id)
                .update(
                    {Schedule.available_seats: Schedule.available_seats + released},
                    synchronize_session=False
                )
            )
        if booking.session_id:
            self._delete_session_locks(booking.schedule_id, booking.session_id, booking.seat_numbers)

    def _delete_session_locks(self, schedule_id: int, session_id: str, seat_numbers) -> None:
        (
            self.db.query(SeatLock)
            .filter(
                SeatLock.schedule_id == schedule_id,
                SeatLock.session_id == session_id,
                SeatLock.seat_number.in_(list(seat_numbers))
            )
            .delete(synchronize_session=False)
        )
