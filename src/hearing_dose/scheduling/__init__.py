"""
Scheduling Module
=================

Injectable clocks and timers.

Components:
    - Clock, SystemClock, ManualClock: time sources
    - Scheduler, AsyncioScheduler, ManualScheduler: one-shot timers
    - PeriodicTask: repeating timer for the background dose refresh
"""

from hearing_dose.scheduling.clock import Clock, ManualClock, SystemClock
from hearing_dose.scheduling.scheduler import (
    AsyncioScheduler,
    ManualScheduler,
    PeriodicTask,
    ScheduledTask,
    Scheduler,
)


__all__ = [
    "Clock",
    "SystemClock",
    "ManualClock",
    "Scheduler",
    "ScheduledTask",
    "AsyncioScheduler",
    "ManualScheduler",
    "PeriodicTask",
]
