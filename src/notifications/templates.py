"""Subject lines and inline HTML bodies for booking emails."""

from decimal import Decimal
from typing import Tuple

from src.events import (
    BookingCancelled, BookingConfirmed, BookingCreated, BookingSnapshot, TripReminderDue
)

Rendered = Tuple[str, str]


def format_amount(amount: Decimal, currency: str) -> str:
    return f"{amount:,.0f} {currency}"


def _trip_lines(booking: BookingSnapshot) -> str:
    seats = ", ".join(str(n) for n in booking.seat_numbers)
    return (
        f"<p>Booking reference: <strong>{booking.booking_reference}</strong></p>"
        f"<p>Trip: {booking.departure_city} &rarr; {booking.arrival_city}<br>"
        f"Departure: {booking.departure_at:%Y-%m-%d %H:%M}<br>"
        f"Seats: {seats}<br>"
        f"Total: {format_amount(booking.total_amount, booking.currency)}</p>"
    )


def render_booking_created(event: BookingCreated) -> Rendered:
    booking = event.booking
    deadline = f" before {event.expires_at:%H:%M} UTC" if event.expires_at else ""
    body = (
        f"<p>Dear {booking.recipient_name},</p>"
        f"<p>Your seats are reserved. Please complete payment{deadline} to keep them.</p>"
        f"{_trip_lines(booking)}"
    )
    return "Booking Created - Pending Payment", body


def render_booking_confirmed(event: BookingConfirmed) -> Rendered:
    booking = event.booking
    body = (
        f"<p>Dear {booking.recipient_name},</p>"
        "<p>Your payment was received and your booking is confirmed. "
        "Show the booking reference when boarding.</p>"
        f"{_trip_lines(booking)}"
    )
    return "Booking Confirmed - E-Ticket Ready", body


def render_booking_cancelled(event: BookingCancelled) -> Rendered:
    booking = event.booking
    reason = f"<p>Reason: {event.reason}</p>" if event.reason else ""
    refund = ""
    if event.refund_amount is not None:
        refund = f"<p>Refund: {format_amount(event.refund_amount, booking.currency)}</p>"
    body = (
        f"<p>Dear {booking.recipient_name},</p>"
        "<p>Your booking has been cancelled.</p>"
        f"{_trip_lines(booking)}{reason}{refund}"
    )
    return "Booking Cancelled", body


def render_trip_reminder(event: TripReminderDue) -> Rendered:
    booking = event.booking
    hours = max(int(round(event.hours_until_departure)), 1)
    body = (
        f"<p>Dear {booking.recipient_name},</p>"
        f"<p>Your trip departs in about {hours} hour(s). Please arrive at the "
        "pickup point 15 minutes early.</p>"
        f"{_trip_lines(booking)}"
    )
    return f"Trip Reminder - {booking.departure_city} to {booking.arrival_city}", body


RENDERERS = {
    BookingCreated: render_booking_created,
    BookingConfirmed: render_booking_confirmed,
    BookingCancelled: render_booking_cancelled,
    TripReminderDue: render_trip_reminder,
}
