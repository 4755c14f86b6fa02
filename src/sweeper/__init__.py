"""
Sweeper Module

Background housekeeping that runs on a fixed interval (and on demand from the
admin API): expires unpaid bookings, sends trip reminders, advances schedule
statuses and purges dead seat locks.
"""

from .service import Sweeper, SweeperThread, SweepReport

__all__ = ["Sweeper", "SweeperThread", "SweepReport"]
