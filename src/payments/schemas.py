from pydantic import BaseModel, Field
from typing import Literal, Optional

from src.bookings.pricing import RefundQuote
from src.bookings.schemas import BookingResponse

class PaymentEvent(BaseModel):
    """Outcome reported by the payment provider for one booking"""
    type: Literal["payment_success", "payment_failed"]
    booking_id: int
    reason: Optional[str] = Field(None, max_length=500)

class PaymentEventResponse(BaseModel):
    booking: BookingResponse
    already_confirmed: bool = False
    refund: Optional[RefundQuote] = None
