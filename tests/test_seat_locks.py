"""Seat lock manager: exclusivity, expiry and all-or-nothing locking."""

from datetime import timedelta

import pytest

from src.bookings.booking_service import BookingService
from src.bookings.schemas import BookingCreateRequest
from src.exceptions import NotFound, ScheduleUnavailable, SeatConflict, ValidationError
from src.models import SeatLock
from src.seats.lock_service import SeatLockService
from src.seats.schemas import SeatState

SESSION_A = "session-aaaa-1111"
SESSION_B = "session-bbbb-2222"


@pytest.fixture
def schedule(make_schedule, clock):
    return make_schedule(now=clock.now, seats=10)


@pytest.fixture
def locks(db, clock):
    return SeatLockService(db, clock=clock)


class TestLock:
    def test_lock_free_seats(self, locks, schedule, clock):
        held = locks.lock(schedule.id, [3, 1, 2], SESSION_A)

        assert sorted(lock.seat_number for lock in held) == [1, 2, 3]
        assert all(lock.expires_at == clock.now + timedelta(minutes=15) for lock in held)

    def test_custom_ttl(self, locks, schedule, clock):
        held = locks.lock(schedule.id, [1], SESSION_A, ttl_minutes=5)

        assert held[0].expires_at == clock.now + timedelta(minutes=5)

    def test_conflict_reports_taken_seats(self, locks, schedule):
        locks.lock(schedule.id, [2], SESSION_A)

        with pytest.raises(SeatConflict) as exc_info:
            locks.lock(schedule.id, [2, 3], SESSION_B)

        assert exc_info.value.seats == [2]
        assert exc_info.value.status_code == 409

    def test_conflict_locks_nothing(self, db, locks, schedule):
        locks.lock(schedule.id, [2], SESSION_A)

        with pytest.raises(SeatConflict):
            locks.lock(schedule.id, [2, 3], SESSION_B)

        assert db.query(SeatLock).filter(SeatLock.session_id == SESSION_B).count() == 0

    def test_expired_lock_counts_as_free(self, locks, schedule, clock):
        locks.lock(schedule.id, [4], SESSION_A)
        clock.advance(minutes=16)

        held = locks.lock(schedule.id, [4], SESSION_B)

        assert held[0].session_id == SESSION_B

    def test_relock_by_same_session_refreshes_expiry(self, locks, schedule, clock):
        locks.lock(schedule.id, [5], SESSION_A)
        clock.advance(minutes=10)

        held = locks.lock(schedule.id, [5], SESSION_A)

        assert held[0].expires_at == clock.now + timedelta(minutes=15)

    def test_locking_adds_to_existing_selection(self, locks, schedule):
        locks.lock(schedule.id, [1], SESSION_A)
        locks.lock(schedule.id, [2], SESSION_A)

        assert [lock.seat_number for lock in locks.session_locks(SESSION_A)] == [1, 2]

    def test_unique_constraint_race_maps_to_conflict(self, db, locks, schedule, monkeypatch):
        locks.lock(schedule.id, [6], SESSION_A)
        # Simulate a concurrent insert that the live-lock check did not see
        monkeypatch.setattr(locks, "live_locks", lambda *args, **kwargs: [])

        with pytest.raises(SeatConflict) as exc_info:
            locks.lock(schedule.id, [6, 7], SESSION_B)

        assert exc_info.value.seats == [6, 7]
        assert db.query(SeatLock).filter(SeatLock.session_id == SESSION_B).count() == 0

    def test_booked_seat_cannot_be_locked(self, db, locks, schedule, clock, customer_actor, passengers):
        locks.lock(schedule.id, [8], SESSION_A)
        BookingService(db, clock=clock).create(
            BookingCreateRequest(
                schedule_id=schedule.id, seat_numbers=[8], passengers=passengers(1), session_id=SESSION_A
            ),
            customer_actor
        )

        with pytest.raises(SeatConflict, match="already booked"):
            locks.lock(schedule.id, [8], SESSION_B)

    @pytest.mark.parametrize("seats", [[0], [11], [1, 99]])
    def test_out_of_range_seats(self, locks, schedule, seats):
        with pytest.raises(ValidationError):
            locks.lock(schedule.id, seats, SESSION_A)

    def test_unknown_schedule(self, locks):
        with pytest.raises(NotFound):
            locks.lock(9999, [1], SESSION_A)

    def test_cancelled_schedule(self, db, locks, schedule):
        schedule.status = "Cancelled"
        db.commit()

        with pytest.raises(ScheduleUnavailable):
            locks.lock(schedule.id, [1], SESSION_A)

    def test_booking_closed(self, make_schedule, locks, clock):
        schedule = make_schedule(now=clock.now, departure_in_hours=1, close_minutes_before=90)

        with pytest.raises(ScheduleUnavailable):
            locks.lock(schedule.id, [1], SESSION_A)


class TestReleaseAndExtend:
    def test_release_is_idempotent(self, locks, schedule):
        locks.lock(schedule.id, [1, 2], SESSION_A)

        assert locks.release(schedule.id, SESSION_A) == 2
        assert locks.release(schedule.id, SESSION_A) == 0

    def test_release_only_named_seats(self, locks, schedule):
        locks.lock(schedule.id, [1, 2, 3], SESSION_A)

        assert locks.release(schedule.id, SESSION_A, [2]) == 1
        assert [lock.seat_number for lock in locks.session_locks(SESSION_A)] == [1, 3]

    def test_release_ignores_other_sessions(self, locks, schedule):
        locks.lock(schedule.id, [1], SESSION_A)

        assert locks.release(schedule.id, SESSION_B) == 0
        assert len(locks.session_locks(SESSION_A)) == 1

    def test_extend_pushes_expiry(self, locks, schedule, clock):
        locks.lock(schedule.id, [1], SESSION_A)

        expires_at = locks.extend(schedule.id, SESSION_A, 5)

        assert expires_at == clock.now + timedelta(minutes=20)

    def test_extend_without_locks(self, locks, schedule):
        with pytest.raises(NotFound):
            locks.extend(schedule.id, SESSION_A, 5)

    def test_extend_after_expiry(self, locks, schedule, clock):
        locks.lock(schedule.id, [1], SESSION_A)
        clock.advance(minutes=15)

        with pytest.raises(NotFound):
            locks.extend(schedule.id, SESSION_A, 5)

    @pytest.mark.parametrize("minutes", [0, 16])
    def test_extend_bounds(self, locks, schedule, minutes):
        locks.lock(schedule.id, [1], SESSION_A)

        with pytest.raises(ValidationError):
            locks.extend(schedule.id, SESSION_A, minutes)


class TestAvailability:
    def test_reports_booked_locked_and_held(self, db, locks, schedule, clock, customer_actor, passengers):
        locks.lock(schedule.id, [1], SESSION_A)
        locks.lock(schedule.id, [2], SESSION_B)
        BookingService(db, clock=clock).create(
            BookingCreateRequest(schedule_id=schedule.id, seat_numbers=[3], passengers=passengers(1)),
            customer_actor
        )

        availability = locks.query_availability(schedule.id, session_id=SESSION_A)

        assert availability.booked_seats == [3]
        assert availability.locked_seats == [2]
        assert availability.held_seats == [1]
        assert availability.available_count == 7
        assert availability.seats[0].status == SeatState.HELD

    def test_expired_locks_are_available(self, locks, schedule, clock):
        locks.lock(schedule.id, [1, 2], SESSION_A)
        clock.advance(minutes=15)

        availability = locks.query_availability(schedule.id)

        assert availability.locked_seats == []
        assert availability.available_count == 10

    def test_purge_removes_only_dead_rows(self, db, locks, schedule, clock):
        locks.lock(schedule.id, [1], SESSION_A, ttl_minutes=5)
        locks.lock(schedule.id, [2], SESSION_B, ttl_minutes=15)
        clock.advance(minutes=6)

        assert locks.purge_expired() == 1
        assert [lock.seat_number for lock in db.query(SeatLock).all()] == [2]
