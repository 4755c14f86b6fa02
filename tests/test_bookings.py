"""Booking state machine."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from src.auth.schemas import Actor
from src.bookings.booking_service import BookingService
from src.bookings.schemas import BookingCreateRequest
from src.events import BookingCancelled, BookingConfirmed, BookingCreated
from src.exceptions import (
    AlreadyCancelled, AlreadyConfirmed, BookingExpired, Forbidden, InvalidStateTransition,
    ScheduleUnavailable, SeatConflict, Unauthorized, ValidationError
)
from src.models import BookingSeat, SeatLock
from src.schedules.service import ScheduleService
from src.seats.lock_service import SeatLockService
from src.utils import is_valid_booking_reference

SESSION = "session-cust-0001"
OTHER_SESSION = "session-other-0002"


@pytest.fixture
def schedule(make_schedule, clock):
    return make_schedule(now=clock.now, seats=10, price=150000)


@pytest.fixture
def service(db, clock):
    return BookingService(db, clock=clock)


@pytest.fixture
def locks(db, clock):
    return SeatLockService(db, clock=clock)


@pytest.fixture
def book(service, locks, schedule, customer_actor, passengers):
    """Lock and book seats for the default customer"""

    def _book(seats, session_id=SESSION, actor=None, **extra):
        locks.lock(schedule.id, seats, session_id)
        request = BookingCreateRequest(
            schedule_id=schedule.id,
            seat_numbers=seats,
            passengers=passengers(len(seats)),
            session_id=session_id,
            **extra
        )
        return service.create(request, actor or customer_actor)

    return _book


class TestCreate:
    def test_creates_pending_booking(self, db, book, service, schedule, clock, customer):
        booking = book([1, 2])

        assert booking.status == "pending"
        assert booking.customer_id == customer.id
        assert booking.seat_numbers == [1, 2]
        assert booking.expires_at == clock.now + timedelta(minutes=15)
        assert booking.total_amount == Decimal("321000")
        assert is_valid_booking_reference(booking.booking_reference)

        db.refresh(schedule)
        assert schedule.available_seats == 8
        assert db.query(BookingSeat).filter(BookingSeat.booking_id == booking.id).count() == 2
        assert db.query(SeatLock).count() == 0
        assert [type(e) for e in service.drain_events()] == [BookingCreated]

    def test_seats_must_be_locked_by_the_session(self, service, locks, schedule, customer_actor, passengers):
        locks.lock(schedule.id, [1], SESSION)
        request = BookingCreateRequest(
            schedule_id=schedule.id, seat_numbers=[1, 2], passengers=passengers(2), session_id=SESSION
        )

        with pytest.raises(SeatConflict) as exc_info:
            service.create(request, customer_actor)

        assert exc_info.value.seats == [2]

    def test_seat_locked_by_someone_else(self, service, locks, schedule, customer_actor, passengers):
        locks.lock(schedule.id, [3], OTHER_SESSION)
        request = BookingCreateRequest(schedule_id=schedule.id, seat_numbers=[3], passengers=passengers(1))

        with pytest.raises(SeatConflict):
            service.create(request, customer_actor)

    def test_no_double_booking(self, db, service, schedule, customer_actor, passengers):
        request = BookingCreateRequest(schedule_id=schedule.id, seat_numbers=[4], passengers=passengers(1))
        service.create(request, customer_actor)

        with pytest.raises(SeatConflict):
            service.create(request, customer_actor)

        db.refresh(schedule)
        assert schedule.available_seats == 9
        assert db.query(BookingSeat).filter(BookingSeat.seat_number == 4).count() == 1

    def test_reference_collision_gets_a_new_reference(self, db, book, schedule, monkeypatch):
        first = book([1])
        references = iter([first.booking_reference, "BKG-RETRY-0001"])
        monkeypatch.setattr(
            "src.bookings.booking_service.generate_booking_reference", lambda: next(references)
        )

        second = book([2])

        assert second.booking_reference == "BKG-RETRY-0001"
        assert second.status == "pending"
        db.refresh(schedule)
        assert schedule.available_seats == 8

    def test_guest_booking(self, book):
        booking = book(
            [5], actor=Actor(),
            guest_name="Lan Tran", guest_email="lan@example.com", guest_phone="0912345678"
        )

        assert booking.customer_id is None
        assert booking.guest_email == "lan@example.com"

    def test_guest_booking_requires_contact_details(self, book):
        with pytest.raises(ValidationError, match="guest_phone"):
            book([5], actor=Actor(), guest_name="Lan Tran", guest_email="lan@example.com")

    def test_closed_schedule(self, db, service, schedule, customer_actor, passengers):
        schedule.status = "In Progress"
        db.commit()
        request = BookingCreateRequest(schedule_id=schedule.id, seat_numbers=[1], passengers=passengers(1))

        with pytest.raises(ScheduleUnavailable):
            service.create(request, customer_actor)

    def test_passengers_must_match_seats(self, passengers):
        with pytest.raises(ValueError):
            BookingCreateRequest(schedule_id=1, seat_numbers=[1, 2], passengers=passengers(1))


class TestConfirm:
    def test_confirm_pending(self, book, service):
        booking = book([1])
        service.drain_events()

        confirmed = service.confirm(booking.id)

        assert confirmed.status == "confirmed"
        assert confirmed.confirmed_at is not None
        assert confirmed.expires_at is None
        assert [type(e) for e in service.drain_events()] == [BookingConfirmed]

    def test_confirm_checks_who_is_asking(self, book, service, make_user, customer_actor):
        booking = book([1])
        stranger = make_user(email="stranger@example.com")

        with pytest.raises(Unauthorized):
            service.confirm(booking.id, Actor())
        with pytest.raises(Forbidden):
            service.confirm(booking.id, Actor(user_id=stranger.id))

        assert service.confirm(booking.id, customer_actor).status == "confirmed"

    def test_confirm_twice(self, book, service):
        booking = book([1])
        service.confirm(booking.id)

        with pytest.raises(AlreadyConfirmed):
            service.confirm(booking.id)

    def test_confirm_after_payment_window(self, db, book, service, schedule, clock):
        booking = book([1, 2])
        clock.advance(minutes=16)

        with pytest.raises(BookingExpired):
            service.confirm(booking.id)

        db.refresh(booking)
        db.refresh(schedule)
        assert booking.status == "expired"
        assert schedule.available_seats == 10
        assert db.query(BookingSeat).count() == 0

    def test_confirm_on_cancelled_schedule(self, db, book, service, schedule):
        booking = book([1])
        schedule.status = "Cancelled"
        db.commit()

        with pytest.raises(ScheduleUnavailable):
            service.confirm(booking.id)

    def test_cannot_confirm_cancelled_booking(self, book, service, customer_actor):
        booking = book([1])
        service.cancel(booking.id, customer_actor)

        with pytest.raises(InvalidStateTransition):
            service.confirm(booking.id)


class TestCancel:
    def test_cancel_confirmed_booking_refunds(self, db, book, service, schedule, customer_actor):
        booking = book([1, 2])
        service.confirm(booking.id)
        service.drain_events()

        cancelled, refund = service.cancel(booking.id, customer_actor, reason="Change of plans")

        assert cancelled.status == "cancelled"
        assert cancelled.cancellation_reason == "Change of plans"
        assert refund.refund_amount == Decimal("321000")
        db.refresh(schedule)
        assert schedule.available_seats == 10

        events = service.drain_events()
        assert isinstance(events[0], BookingCancelled)
        assert events[0].refund_amount == Decimal("321000")

    def test_cancel_pending_has_no_refund(self, book, service, customer_actor):
        booking = book([1])

        _, refund = service.cancel(booking.id, customer_actor)

        assert refund is None

    def test_half_refund_close_to_departure(self, book, service, clock, customer_actor):
        booking = book([1])
        service.confirm(booking.id)
        clock.advance(hours=30)

        _, refund = service.cancel(booking.id, customer_actor)

        assert refund.refund_rate == Decimal("0.5")

    def test_cancel_twice(self, book, service, customer_actor):
        booking = book([1])
        service.cancel(booking.id, customer_actor)

        with pytest.raises(AlreadyCancelled):
            service.cancel(booking.id, customer_actor)

    def test_cannot_cancel_expired_booking(self, book, service, clock, customer_actor):
        booking = book([1])
        clock.advance(minutes=20)
        service.expire_pending()

        with pytest.raises(InvalidStateTransition):
            service.cancel(booking.id, customer_actor)

    def test_freed_seat_can_be_booked_again(self, book, service, customer_actor):
        booking = book([1])
        service.cancel(booking.id, customer_actor)

        again = book([1], session_id=OTHER_SESSION)

        assert again.status == "pending"

    def test_other_customer_is_forbidden(self, book, service, make_user):
        booking = book([1])
        stranger = make_user(email="stranger@example.com")

        with pytest.raises(Forbidden):
            service.cancel(booking.id, Actor(user_id=stranger.id))

    def test_anonymous_is_unauthorized(self, book, service):
        booking = book([1])

        with pytest.raises(Unauthorized):
            service.cancel(booking.id, Actor())

    def test_admin_and_system_may_cancel(self, book, service, admin):
        first = book([1])
        second = book([2])

        service.cancel(first.id, Actor(user_id=admin.id, is_admin=True))
        service.cancel(second.id, Actor.system(), reason="Payment failed")

        assert first.status == "cancelled"
        assert second.status == "cancelled"

    def test_guest_cancels_with_matching_email(self, book, service):
        booking = book(
            [1], actor=Actor(),
            guest_name="Lan Tran", guest_email="lan@example.com", guest_phone="0912345678"
        )

        with pytest.raises(Forbidden):
            service.cancel(booking.id, Actor(guest_email="someone@example.com"))

        cancelled, _ = service.cancel(booking.id, Actor(guest_email="LAN@example.com"))
        assert cancelled.status == "cancelled"


class TestExpiryAndCompletion:
    def test_expire_pending_is_idempotent(self, db, book, service, schedule, clock):
        book([1])
        book([2])
        paid = book([3])
        service.confirm(paid.id)
        clock.advance(minutes=15)

        assert service.expire_pending() == 2
        assert service.expire_pending() == 0

        db.refresh(schedule)
        assert schedule.available_seats == 9

    def test_booking_deleted_mid_batch_is_skipped(self, db, book, service, schedule, clock, monkeypatch):
        first = book([1])
        second = book([2])
        clock.advance(minutes=15)
        original = service._expire

        def delete_then_expire(booking_id, now):
            if booking_id == first.id:
                BookingService(db, clock=clock).hard_delete(first.id)
            return original(booking_id, now)

        monkeypatch.setattr(service, "_expire", delete_then_expire)

        assert service.expire_pending() == 1
        db.refresh(second)
        db.refresh(schedule)
        assert second.status == "expired"
        assert schedule.available_seats == 10

    def test_not_expired_before_window(self, book, service, clock):
        book([1])
        clock.advance(minutes=14)

        assert service.expire_pending() == 0

    def test_complete_schedule_leaves_pending_alone(self, db, book, service, schedule):
        pending = book([1])
        paid = book([2])
        service.confirm(paid.id)

        assert service.complete_schedule(schedule.id) == 1

        db.refresh(pending)
        db.refresh(paid)
        assert paid.status == "completed"
        assert paid.completed_at is not None
        assert pending.status == "pending"

    def test_hard_delete_returns_seats(self, db, book, service, schedule):
        booking = book([1, 2])

        service.hard_delete(booking.id)

        db.refresh(schedule)
        assert schedule.available_seats == 10
        assert db.query(BookingSeat).count() == 0


class TestScheduleCascade:
    def test_cancelling_schedule_cancels_bookings(self, db, book, service, schedule, clock, admin):
        pending = book([1])
        paid = book([2])
        service.confirm(paid.id)

        schedules = ScheduleService(db, clock=clock)
        cancelled_schedule, count = schedules.cancel(schedule.id, reason="Road closed", cancelled_by=admin.id)

        assert count == 2
        assert cancelled_schedule.status == "Cancelled"
        db.refresh(pending)
        db.refresh(paid)
        assert pending.status == "cancelled"
        assert paid.status == "cancelled"
        assert paid.cancellation_reason == "Road closed"
        assert len([e for e in schedules.drain_events() if isinstance(e, BookingCancelled)]) == 2

    def test_schedule_statuses_follow_the_clock(self, db, book, service, schedule, clock):
        paid = book([1])
        service.confirm(paid.id)
        schedules = ScheduleService(db, clock=clock)

        clock.advance(hours=49)
        assert schedules.update_statuses()["departed"] == 1
        db.refresh(schedule)
        assert schedule.status == "In Progress"

        clock.advance(hours=6)
        counts = schedules.update_statuses()
        assert counts["completed"] == 1
        assert counts["bookings_completed"] == 1
        db.refresh(paid)
        assert paid.status == "completed"

    def test_failed_completion_leaves_trip_and_bookings_untouched(self, db, book, service, schedule, clock, monkeypatch):
        paid = book([1])
        service.confirm(paid.id)
        schedules = ScheduleService(db, clock=clock)

        def broken(self, schedule_id):
            raise OperationalError("UPDATE bookings", {}, Exception("disk I/O error"))

        monkeypatch.setattr(BookingService, "stage_schedule_completion", broken)
        with pytest.raises(OperationalError):
            schedules.complete(schedule.id)

        db.refresh(schedule)
        db.refresh(paid)
        assert schedule.status == "Scheduled"
        assert paid.status == "confirmed"

        monkeypatch.undo()
        _, completed = schedules.complete(schedule.id)
        assert completed == 1
        db.refresh(paid)
        assert paid.status == "completed"

    def test_failed_cancellation_leaves_trip_and_bookings_untouched(self, db, book, service, schedule, clock, monkeypatch):
        paid = book([1, 2])
        service.confirm(paid.id)
        schedules = ScheduleService(db, clock=clock)

        def broken(self, schedule_id, reason):
            raise OperationalError("UPDATE bookings", {}, Exception("disk I/O error"))

        monkeypatch.setattr(BookingService, "stage_schedule_cancellation", broken)
        with pytest.raises(OperationalError):
            schedules.cancel(schedule.id, reason="Road closed")

        db.refresh(schedule)
        db.refresh(paid)
        assert schedule.status == "Scheduled"
        assert schedule.available_seats == 8
        assert paid.status == "confirmed"
        assert schedules.drain_events() == []

        monkeypatch.undo()
        _, cancelled = schedules.cancel(schedule.id, reason="Road closed")
        assert cancelled == 1
        db.refresh(schedule)
        assert schedule.available_seats == 10
