"""
Notifications Module

Email notifications for booking events. The dispatcher bounds every send with
a timeout and never lets a delivery failure reach the booking flow.
"""

from .dispatcher import NotificationDispatcher
from .providers import ConsoleEmailProvider, EmailProvider, build_provider
from .service import NotificationService

__all__ = [
    "NotificationDispatcher",
    "ConsoleEmailProvider",
    "EmailProvider",
    "build_provider",
    "NotificationService"
]
