"""Request-id aware logging setup.

Every record carries a ``request_id`` attribute so a single HTTP request can be
followed through the booking services, the event bus and the notification
dispatcher. Background work (the sweeper) logs with the id ``-``.

Usage:
    from src.logging_config import configure_logging, set_request_id

    configure_logging("INFO")
    set_request_id("5f0c...")
    logging.getLogger(__name__).info("Locked seats")
"""

import logging
from contextvars import ContextVar

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s [%(request_id)s]: %(message)s"


def set_request_id(request_id: str) -> None:
    """Set the correlation id for the current context."""
    _request_id.set(request_id)


class RequestIdFilter(logging.Filter):
    """Injects request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()  # type: ignore[attr-defined]
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler once; later calls only adjust the level."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if any(getattr(h, "_bus_booking", False) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.addFilter(RequestIdFilter())
    handler._bus_booking = True  # type: ignore[attr-defined]
    root.addHandler(handler)
