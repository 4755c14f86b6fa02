import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from src.bookings.booking_service import BookingService
from src.bookings.schemas import BookingStatus
from src.config import settings
from src.database import SessionLocal, atomic
from src.events import TripReminderDue
from src.models import Booking, NotificationPreferences, Schedule
from src.notifications.service import NotificationService
from src.schedules.service import ScheduleService
from src.seats.lock_service import SeatLockService
from src.utils import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """What one sweep did; each duty reports independently."""

    expired_bookings: int = 0
    reminders_sent: int = 0
    reminders_failed: int = 0
    reminders_skipped: int = 0
    schedules_departed: int = 0
    schedules_completed: int = 0
    locks_purged: int = 0
    errors: List[str] = field(default_factory=list)
    skipped: bool = False


class Sweeper:
    """Periodic housekeeping: expiry, trip reminders, schedule statuses and lock purging.

    Every duty runs in its own session and its own try block, so one failing
    duty never stops the others. ``run_once`` refuses to start while a
    previous run is still going.
    """

    def __init__(
        self,
        notifier: NotificationService,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Clock = utcnow
    ):
        self.notifier = notifier
        self.session_factory = session_factory
        self.clock = clock
        self._running = threading.Lock()

    def run_once(self) -> SweepReport:
        report = SweepReport()
        if not self._running.acquire(blocking=False):
            logger.info("Previous sweep still running; skipping")
            report.skipped = True
            return report

        try:
            duties = [
                ("expire_pending", self._expire_pending),
                ("send_reminders", self._send_reminders),
                ("update_schedule_statuses", self._update_schedule_statuses),
                ("purge_expired_locks", self._purge_expired_locks),
            ]
            for name, duty in duties:
                db = self.session_factory()
                try:
                    duty(db, report)
                except Exception as exc:
                    logger.exception("Sweeper duty %s failed", name)
                    report.errors.append(f"{name}: {exc}")
                finally:
                    db.close()
        finally:
            self._running.release()

        logger.info(
            "Sweep done: %d expired, %d reminder(s) sent, %d failed, %d departed, %d completed, %d lock(s) purged",
            report.expired_bookings, report.reminders_sent, report.reminders_failed,
            report.schedules_departed, report.schedules_completed, report.locks_purged
        )
        return report

    def _expire_pending(self, db: Session, report: SweepReport) -> None:
        report.expired_bookings = BookingService(db, clock=self.clock).expire_pending()

    def _send_reminders(self, db: Session, report: SweepReport) -> None:
        now = self.clock()
        horizon = now + timedelta(hours=settings.REMINDER_SCAN_WINDOW_HOURS)
        candidates = (
            db.query(Booking)
            .join(Schedule, Booking.schedule_id == Schedule.id)
            .filter(
                Booking.status == BookingStatus.CONFIRMED.value,
                Booking.reminder_sent_at.is_(None),
                Schedule.departure_at > now,
                Schedule.departure_at <= horizon
            )
            .order_by(Schedule.departure_at)
            .all()
        )

        booking_service = BookingService(db, clock=self.clock)
        for booking in candidates:
            reference = booking.booking_reference
            claimed = False
            try:
                hours_left = (booking.schedule.departure_at - now).total_seconds() / 3600
                lead_hours, enabled = self._reminder_preferences(db, booking.customer_id)
                if not enabled or hours_left > lead_hours:
                    continue
                claimed = self._claim_reminder(db, booking.id, now)
                if not claimed:
                    continue

                event = TripReminderDue(booking=booking_service.snapshot(booking), hours_until_departure=hours_left)
                if not event.booking.recipient_email:
                    # Stays claimed: retrying cannot help without an address
                    logger.warning("Booking %s has no recipient email; reminder skipped", reference)
                    report.reminders_skipped += 1
                    continue
                if self.notifier.handle(event):
                    report.reminders_sent += 1
                else:
                    self._unclaim_reminder(db, booking.id, now)
                    report.reminders_failed += 1
            except Exception:
                db.rollback()
                logger.exception("Reminder for booking %s failed", reference)
                report.reminders_failed += 1
                if claimed:
                    self._unclaim_reminder(db, booking.id, now)

    def _update_schedule_statuses(self, db: Session, report: SweepReport) -> None:
        counts = ScheduleService(db, clock=self.clock).update_statuses()
        report.schedules_departed = counts["departed"]
        report.schedules_completed = counts["completed"]

    def _purge_expired_locks(self, db: Session, report: SweepReport) -> None:
        report.locks_purged = SeatLockService(db, clock=self.clock).purge_expired()

    @staticmethod
    def _reminder_preferences(db: Session, customer_id: Optional[int]):
        if customer_id is None:
            return settings.REMINDER_LEAD_HOURS, True
        preferences = (
            db.query(NotificationPreferences)
            .filter(NotificationPreferences.user_id == customer_id)
            .first()
        )
        if preferences is None:
            return settings.REMINDER_LEAD_HOURS, True
        return preferences.reminder_lead_hours, preferences.email_trip_reminders

    @staticmethod
    def _claim_reminder(db: Session, booking_id: int, now) -> bool:
        with atomic(db):
            claimed = (
                db.query(Booking)
                .filter(
                    Booking.id == booking_id,
                    Booking.status == BookingStatus.CONFIRMED.value,
                    Booking.reminder_sent_at.is_(None)
                )
                .update({Booking.reminder_sent_at: now}, synchronize_session=False)
            )
        return bool(claimed)

    @staticmethod
    def _unclaim_reminder(db: Session, booking_id: int, now) -> None:
        with atomic(db):
            (
                db.query(Booking)
                .filter(Booking.id == booking_id, Booking.reminder_sent_at == now)
                .update({Booking.reminder_sent_at: None}, synchronize_session=False)
            )


class SweeperThread:
    """Runs ``Sweeper.run_once`` every ``interval`` seconds in a daemon thread"""

    def __init__(self, sweeper: Sweeper, interval: Optional[float] = None):
        self.sweeper = sweeper
        self.interval = interval if interval is not None else settings.SWEEPER_INTERVAL_MINUTES * 60
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="sweeper", daemon=True)
        self._thread.start()
        logger.info("Sweeper started, every %.0f seconds", self.interval)

    def stop(self, timeout: float = 5) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Sweeper stopped")

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.sweeper.run_once()
            except Exception:
                logger.exception("Sweep failed")
            self._stop_event.wait(self.interval)
