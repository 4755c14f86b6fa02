import logging

from sqlalchemy.orm import Session

from src.auth.schemas import Actor
from src.bookings.booking_service import BookingService
from src.exceptions import AlreadyConfirmed
from src.payments.schemas import PaymentEvent, PaymentEventResponse
from src.utils import Clock, utcnow

logger = logging.getLogger(__name__)

class PaymentEventService:
    """Maps payment outcomes onto booking transitions"""

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.bookings = BookingService(db, clock=clock)

    def handle(self, event: PaymentEvent) -> PaymentEventResponse:
        logger.info("Payment event %s for booking %s", event.type, event.booking_id)

        if event.type == "payment_success":
            try:
                booking = self.bookings.confirm(event.booking_id, Actor.system())
            except AlreadyConfirmed:
                # Providers retry webhooks; a repeated success is not an error
                return PaymentEventResponse(booking=self.bookings.get(event.booking_id), already_confirmed=True)
            return PaymentEventResponse(booking=booking)

        booking, refund = self.bookings.cancel(
            event.booking_id, Actor.system(), reason=event.reason or "Payment failed"
        )
        return PaymentEventResponse(booking=booking, refund=refund)

    def drain_events(self):
        return self.bookings.drain_events()
