"""Small helpers shared across feature packages."""

import secrets
import string
import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]

_BASE36 = string.digits + string.ascii_uppercase


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the store keeps naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_booking_reference() -> str:
    """Human-shareable booking reference, e.g. ``BKG-M2X8Q1ZK-4F7A``."""
    timestamp = to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"BKG-{timestamp}-{suffix}"


def is_valid_booking_reference(reference: str) -> bool:
    if not reference or not isinstance(reference, str):
        return False
    parts = reference.split("-")
    return (
        len(parts) == 3
        and parts[0] == "BKG"
        and all(p and all(c in _BASE36 for c in p) for p in parts[1:])
    )
