"""
Routes Module

Intercity routes (origin, destination, distance, duration) that schedules run on.
Listing is public; creating, editing and deleting routes is admin only.
"""

from .router import router
from .service import RouteService
from .schemas import RouteCreate, RouteUpdate, RouteResponse, RouteListResponse

__all__ = [
    "router",
    "RouteService",
    "RouteCreate",
    "RouteUpdate",
    "RouteResponse",
    "RouteListResponse"
]
