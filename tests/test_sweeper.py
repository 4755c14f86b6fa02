"""Sweeper duties: expiry, reminders, schedule statuses and lock purging."""

import pytest

from src.auth.schemas import NotificationPreferencesUpdate
from src.auth.service import UserService
from src.bookings.booking_service import BookingService
from src.bookings.schemas import BookingCreateRequest
from src.database import SessionLocal
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.service import NotificationService
from src.seats.lock_service import SeatLockService
from src.sweeper.service import Sweeper

from fakes import FailingEmailProvider


@pytest.fixture
def sweeper(notifier, clock):
    return Sweeper(notifier, session_factory=SessionLocal, clock=clock)


@pytest.fixture
def confirmed_booking(db, clock, customer_actor, passengers):
    """Confirmed booking on a trip departing ``departure_in_hours`` from now"""

    def _make(schedule, seats=(1,)):
        service = BookingService(db, clock=clock)
        booking = service.create(
            BookingCreateRequest(schedule_id=schedule.id, seat_numbers=list(seats), passengers=passengers(len(seats))),
            customer_actor
        )
        return service.confirm(booking.id)

    return _make


class TestExpiry:
    def test_expires_unpaid_bookings(self, db, sweeper, make_schedule, clock, customer_actor, passengers):
        schedule = make_schedule(now=clock.now)
        BookingService(db, clock=clock).create(
            BookingCreateRequest(schedule_id=schedule.id, seat_numbers=[1], passengers=passengers(1)),
            customer_actor
        )
        clock.advance(minutes=16)

        report = sweeper.run_once()

        assert report.expired_bookings == 1
        assert report.errors == []
        db.refresh(schedule)
        assert schedule.available_seats == schedule.total_seats


class TestReminders:
    def test_sends_reminder_inside_lead_time(self, db, sweeper, make_schedule, clock, confirmed_booking, console_provider, customer):
        booking = confirmed_booking(make_schedule(now=clock.now, departure_in_hours=20))

        report = sweeper.run_once()

        assert report.reminders_sent == 1
        db.refresh(booking)
        assert booking.reminder_sent_at == clock.now
        reminder = console_provider.sent_emails[-1]
        assert reminder["to"] == customer.email
        assert reminder["subject"].startswith("Trip Reminder")

    def test_no_double_reminder(self, sweeper, make_schedule, clock, confirmed_booking):
        confirmed_booking(make_schedule(now=clock.now, departure_in_hours=20))

        assert sweeper.run_once().reminders_sent == 1
        clock.advance(hours=1)
        assert sweeper.run_once().reminders_sent == 0

    def test_outside_lead_time(self, sweeper, make_schedule, clock, confirmed_booking):
        confirmed_booking(make_schedule(now=clock.now, departure_in_hours=30))

        assert sweeper.run_once().reminders_sent == 0

    def test_customer_lead_time(self, db, sweeper, make_schedule, clock, confirmed_booking, customer):
        UserService.update_notification_preferences(
            db, customer.id, NotificationPreferencesUpdate(reminder_lead_hours=36)
        )
        confirmed_booking(make_schedule(now=clock.now, departure_in_hours=30))

        assert sweeper.run_once().reminders_sent == 1

    def test_reminders_disabled(self, db, sweeper, make_schedule, clock, confirmed_booking, customer, console_provider):
        UserService.update_notification_preferences(
            db, customer.id, NotificationPreferencesUpdate(email_trip_reminders=False)
        )
        confirmed_booking(make_schedule(now=clock.now, departure_in_hours=20))
        sent_before = len(console_provider.sent_emails)

        assert sweeper.run_once().reminders_sent == 0
        assert len(console_provider.sent_emails) == sent_before

    def test_failed_send_is_retried_next_sweep(self, db, make_schedule, clock, confirmed_booking, sweeper):
        booking = confirmed_booking(make_schedule(now=clock.now, departure_in_hours=20))
        failing = NotificationDispatcher(provider=FailingEmailProvider(), timeout=2)
        broken_sweeper = Sweeper(NotificationService(failing), session_factory=SessionLocal, clock=clock)

        report = broken_sweeper.run_once()
        failing.shutdown()

        assert report.reminders_failed == 1
        db.refresh(booking)
        assert booking.reminder_sent_at is None

        assert sweeper.run_once().reminders_sent == 1

    def test_booking_without_recipient_is_not_retried(
        self, db, sweeper, make_schedule, clock, confirmed_booking, console_provider
    ):
        booking = confirmed_booking(make_schedule(now=clock.now, departure_in_hours=20))
        booking.customer = None
        booking.guest_email = None
        db.commit()

        report = sweeper.run_once()

        assert report.reminders_skipped == 1
        assert report.reminders_failed == 0
        db.refresh(booking)
        assert booking.reminder_sent_at is not None
        assert sweeper.run_once().reminders_skipped == 0
        assert console_provider.sent_emails == []

    def test_one_failing_reminder_does_not_stop_the_scan(
        self, make_schedule, clock, confirmed_booking, sweeper, notifier, monkeypatch
    ):
        confirmed_booking(make_schedule(now=clock.now, departure_in_hours=10))
        confirmed_booking(make_schedule(now=clock.now, departure_in_hours=20))
        original = notifier.handle
        calls = []

        def flaky(event):
            calls.append(event)
            if len(calls) == 1:
                raise RuntimeError("renderer crashed")
            return original(event)

        monkeypatch.setattr(notifier, "handle", flaky)

        report = sweeper.run_once()

        assert report.reminders_failed == 1
        assert report.reminders_sent == 1


class TestScheduleStatuses:
    def test_departed_and_completed(self, db, sweeper, make_schedule, clock, confirmed_booking):
        schedule = make_schedule(now=clock.now, departure_in_hours=2, duration_hours=4)
        booking = confirmed_booking(schedule)

        clock.advance(hours=3)
        assert sweeper.run_once().schedules_departed == 1

        clock.advance(hours=4)
        report = sweeper.run_once()
        assert report.schedules_completed == 1
        db.refresh(booking)
        assert booking.status == "completed"


class TestIsolation:
    def test_failing_duty_does_not_stop_the_others(self, db, sweeper, make_schedule, clock, monkeypatch):
        schedule = make_schedule(now=clock.now)
        SeatLockService(db, clock=clock).lock(schedule.id, [1], "session-purge-001", ttl_minutes=1)
        clock.advance(minutes=5)

        def broken(db, report):
            raise RuntimeError("database hiccup")

        monkeypatch.setattr(sweeper, "_expire_pending", broken)

        report = sweeper.run_once()

        assert report.errors == ["expire_pending: database hiccup"]
        assert report.locks_purged == 1

    def test_overlapping_run_is_skipped(self, sweeper):
        sweeper._running.acquire()
        try:
            assert sweeper.run_once().skipped is True
        finally:
            sweeper._running.release()
