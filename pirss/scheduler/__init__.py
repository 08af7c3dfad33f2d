"""
PiRSS Scheduler
===============
"""

from .refresh_scheduler import RefreshScheduler, SchedulerState

__all__ = ['RefreshScheduler', 'SchedulerState']
