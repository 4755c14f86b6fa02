"""
Buses Module

Fleet management: each bus has a plate number, a type and a seat count that
new schedules copy as their seat map size.
"""

from .router import router
from .service import BusService

__all__ = ["router", "BusService"]
