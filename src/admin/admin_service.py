from datetime import timedelta
from decimal import Decimal
from typing import List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from src.admin.schemas import DashboardData, DashboardMetrics, RecentActivity
from src.bookings.schemas import BookingStatus
from src.config import settings
from src.models import Booking, BookingSeat, Schedule, SeatLock, User
from src.schedules.schemas import ScheduleStatus
from src.utils import Clock, utcnow

REVENUE_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value)

class AdminDashboardService:
    """Read-only aggregates for the admin dashboard; nothing here writes"""

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    def get_dashboard(self) -> DashboardData:
        now = self.clock()

        status_counts = dict(
            self.db.query(Booking.status, func.count(Booking.id))
            .group_by(Booking.status)
            .all()
        )
        bookings_by_status = {s.value: status_counts.get(s.value, 0) for s in BookingStatus}

        revenue = (
            self.db.query(func.coalesce(func.sum(Booking.total_amount), 0))
            .filter(Booking.status.in_(REVENUE_STATUSES))
            .scalar()
        )

        upcoming = select(Schedule.id).where(
            Schedule.status == ScheduleStatus.SCHEDULED.value,
            Schedule.departure_at > now
        )
        upcoming_count = self.db.query(Schedule).filter(Schedule.id.in_(upcoming)).count()
        seats_booked = (
            self.db.query(func.count(BookingSeat.id))
            .filter(BookingSeat.schedule_id.in_(upcoming))
            .scalar()
        )
        seats_locked = self.db.query(SeatLock).filter(SeatLock.expires_at > now).count()

        metrics = DashboardMetrics(
            total_users=self.db.query(User).count(),
            total_bookings=sum(bookings_by_status.values()),
            bookings_by_status=bookings_by_status,
            revenue=Decimal(str(revenue or 0)),
            currency=settings.CURRENCY,
            upcoming_schedules=upcoming_count,
            seats_booked_upcoming=seats_booked or 0,
            seats_locked_now=seats_locked,
            pending_payment=bookings_by_status[BookingStatus.PENDING.value]
        )

        return DashboardData(
            metrics=metrics,
            recent_activity=self._recent_activity(now),
            generated_at=now
        )

    def _recent_activity(self, now) -> List[RecentActivity]:
        """Last 24 hours"""
        since = now - timedelta(days=1)
        return [
            RecentActivity(
                type="bookings",
                count=self.db.query(Booking).filter(Booking.created_at >= since).count()
            ),
            RecentActivity(
                type="cancellations",
                count=self.db.query(Booking).filter(Booking.cancelled_at >= since).count()
            ),
            RecentActivity(
                type="users",
                count=self.db.query(User).filter(User.created_at >= since).count()
            ),
        ]
