"""
Booking domain events and the in-process event bus.

The booking state machine records what happened as typed events; it never
formats or sends anything itself. Subscribers (the notification service) react
to events after the transition has been committed, so a failing subscriber can
never undo a booking state change.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingSnapshot:
    """Plain copy of the booking fields a notification needs."""

    booking_id: int
    booking_reference: str
    customer_id: Optional[int]
    recipient_email: Optional[str]
    recipient_name: str
    departure_city: str
    arrival_city: str
    departure_at: datetime
    seat_numbers: Tuple[int, ...]
    total_amount: Decimal
    currency: str


@dataclass(frozen=True)
class BookingEvent:
    booking: BookingSnapshot


@dataclass(frozen=True)
class BookingCreated(BookingEvent):
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class BookingConfirmed(BookingEvent):
    pass


@dataclass(frozen=True)
class BookingCancelled(BookingEvent):
    reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class TripReminderDue(BookingEvent):
    hours_until_departure: float = 0.0


Handler = Callable[[BookingEvent], None]


class EventBus:
    """Synchronous publish/subscribe keyed by event class."""

    def __init__(self):
        self._handlers: Dict[Type[BookingEvent], List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[BookingEvent], handler: Handler) -> None:
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: Type[BookingEvent], handler: Handler) -> None:
        if handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)

    def clear(self) -> None:
        self._handlers.clear()

    def publish(self, event: BookingEvent) -> int:
        """Deliver ``event`` to its subscribers; returns how many handled it."""
        delivered = 0
        for handler in list(self._handlers.get(type(event), [])):
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Handler %r failed for %s of booking %s",
                    handler, type(event).__name__, event.booking.booking_reference
                )
        return delivered

    def publish_all(self, events: List[BookingEvent]) -> None:
        for event in events:
            self.publish(event)


event_bus = EventBus()
