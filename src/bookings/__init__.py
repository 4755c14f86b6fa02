"""
Bookings Module

Seat bookings on bus trips and their lifecycle:

- pending: seats claimed, waiting for payment within the payment window
- confirmed: paid
- cancelled / expired: seats given back to the trip
- completed: the trip has arrived

Key Components:
- booking_service.py: the booking state machine with conditional transitions
- pricing.py: fare, fee and refund calculation with currency rounding
- router.py: FastAPI endpoints for customers, guests and schedulers
- schemas.py: Pydantic models for booking requests and responses

State changes are recorded as events (see src.events) and published after the
transaction commits, so notifications never block or undo a booking.
"""

from .router import router
from .booking_service import BookingService
from .pricing import PriceBreakdown, RefundQuote, calculate_price, calculate_refund
from .schemas import (
    BookingStatus, PassengerInfo, BookingCreateRequest, BookingCancellationRequest,
    BookingResponse, BookingCancellationResponse
)

__all__ = [
    "router",
    "BookingService",
    "PriceBreakdown",
    "RefundQuote",
    "calculate_price",
    "calculate_refund",
    "BookingStatus",
    "PassengerInfo",
    "BookingCreateRequest",
    "BookingCancellationRequest",
    "BookingResponse",
    "BookingCancellationResponse"
]
