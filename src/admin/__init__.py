"""
Admin Module

Operator endpoints: a dashboard of live aggregates, booking search and hard
deletion, and manual triggers for the sweeper and seat lock purging.
Every endpoint requires the admin role; the maintenance triggers also accept
the scheduler's cron token.
"""

from .router import router
from .admin_service import AdminDashboardService

__all__ = ["router", "AdminDashboardService"]
