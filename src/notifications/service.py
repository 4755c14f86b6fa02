import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from src.database import SessionLocal
from src.events import (
    BookingCancelled, BookingConfirmed, BookingCreated, BookingEvent, EventBus, TripReminderDue
)
from src.models import NotificationPreferences
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.templates import RENDERERS

logger = logging.getLogger(__name__)

# Preference column that gates each kind of email
PREFERENCE_FIELDS = {
    BookingCreated: "email_booking_confirmation",
    BookingConfirmed: "email_booking_confirmation",
    BookingCancelled: "email_cancellations",
    TripReminderDue: "email_trip_reminders",
}

class NotificationService:
    """Turns booking events into emails, honouring each customer's preferences.

    Guests have no preferences and always receive their booking emails.
    """

    def __init__(self, dispatcher: NotificationDispatcher, session_factory: Callable[[], Session] = SessionLocal):
        self.dispatcher = dispatcher
        self.session_factory = session_factory

    def subscribe(self, bus: EventBus) -> None:
        for event_type in (BookingCreated, BookingConfirmed, BookingCancelled):
            bus.subscribe(event_type, self.handle)

    def unsubscribe(self, bus: EventBus) -> None:
        for event_type in (BookingCreated, BookingConfirmed, BookingCancelled):
            bus.unsubscribe(event_type, self.handle)

    def handle(self, event: BookingEvent) -> bool:
        """Send the email for ``event``; True only when one was delivered"""
        renderer = RENDERERS.get(type(event))
        if renderer is None:
            logger.debug("No email for %s", type(event).__name__)
            return False

        booking = event.booking
        if not self.is_enabled(booking.customer_id, PREFERENCE_FIELDS[type(event)]):
            logger.info(
                "%s email for booking %s suppressed by customer preferences",
                type(event).__name__, booking.booking_reference
            )
            return False

        subject, body = renderer(event)
        return self.dispatcher.send(booking.recipient_email, subject, body, reference=booking.booking_reference)

    def is_enabled(self, customer_id: Optional[int], field: str) -> bool:
        if customer_id is None:
            return True
        db = self.session_factory()
        try:
            preferences = (
                db.query(NotificationPreferences)
                .filter(NotificationPreferences.user_id == customer_id)
                .first()
            )
            return True if preferences is None else bool(getattr(preferences, field))
        finally:
            db.close()
