from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from pydantic import BaseModel

from src.config import settings
from src.exceptions import ValidationError

Number = Union[int, float, str, Decimal]

class PriceBreakdown(BaseModel):
    """Fare breakdown for one booking"""
    price_per_seat: Decimal
    seat_count: int
    fare: Decimal
    convenience_fee: Decimal
    bank_charge: Decimal
    total: Decimal
    currency: str

class RefundQuote(BaseModel):
    """Refund owed when a booking is cancelled"""
    total_paid: Decimal
    refund_rate: Decimal
    refund_amount: Decimal
    cancellation_fee: Decimal
    hours_before_departure: float

# (hours before departure, share of the total refunded), checked top to bottom
REFUND_POLICY = [
    (24, Decimal("1.0")),
    (12, Decimal("0.5")),
]

def round_price(value: Number, unit: Optional[int] = None) -> Decimal:
    """Round to the nearest currency unit (1000 VND by default), halves go up"""
    unit = Decimal(unit or settings.PRICE_ROUNDING_UNIT)
    return (Decimal(str(value)) / unit).quantize(Decimal("1"), rounding=ROUND_HALF_UP) * unit

def calculate_price(price_per_seat: Number, seat_count: int) -> PriceBreakdown:
    """Compute fare, fees and total for ``seat_count`` seats.

    Fees and the total are computed from the unrounded fare; each figure is
    then rounded independently to the nearest unit, and the total is clamped
    up to the configured minimum. For example 149,999 x 1 gives a fare of
    150,000, fees of 7,000 and 3,000 and a total of 160,000.
    """
    price = Decimal(str(price_per_seat))
    if price <= 0:
        raise ValidationError("Price per seat must be positive")
    if seat_count < 1:
        raise ValidationError("At least one seat is required")

    fare = price * seat_count
    convenience_fee = fare * Decimal(str(settings.CONVENIENCE_FEE_RATE))
    bank_charge = fare * Decimal(str(settings.BANK_CHARGE_RATE))
    total = fare + convenience_fee + bank_charge

    rounded_total = round_price(total)
    minimum = Decimal(settings.MIN_BOOKING_TOTAL)
    if rounded_total < minimum:
        rounded_total = minimum

    return PriceBreakdown(
        price_per_seat=price,
        seat_count=seat_count,
        fare=round_price(fare),
        convenience_fee=round_price(convenience_fee),
        bank_charge=round_price(bank_charge),
        total=rounded_total,
        currency=settings.CURRENCY
    )

def calculate_refund(total_paid: Number, hours_before_departure: float) -> RefundQuote:
    """Refund owed for a cancellation ``hours_before_departure`` ahead of the trip"""
    total = Decimal(str(total_paid))
    rate = Decimal("0")
    for threshold_hours, policy_rate in REFUND_POLICY:
        if hours_before_departure >= threshold_hours:
            rate = policy_rate
            break

    refund_amount = round_price(total * rate)
    return RefundQuote(
        total_paid=round_price(total),
        refund_rate=rate,
        refund_amount=refund_amount,
        cancellation_fee=round_price(total - refund_amount),
        hours_before_departure=hours_before_departure
    )
