"""
Payments Module

Receives payment outcomes for pending bookings. Card processing itself happens
at the payment provider; this service only reacts to success or failure.
"""

from .router import router
from .service import PaymentEventService

__all__ = ["router", "PaymentEventService"]
