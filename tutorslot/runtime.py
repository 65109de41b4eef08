from __future__ import annotations
from typing import Optional
from apscheduler.schedulers.base import BaseScheduler

from tutorslot.services.scheduling import SchedulingService

_scheduling: Optional[SchedulingService] = None
_scheduler: Optional[BaseScheduler] = None

def set_scheduling(s: Optional[SchedulingService]) -> None:
    global _scheduling
    _scheduling = s

def get_scheduling() -> SchedulingService:
    if _scheduling is None:
        raise RuntimeError("Scheduling core is not initialized yet")
    return _scheduling

def set_scheduler(s: Optional[BaseScheduler]) -> None:
    global _scheduler
    _scheduler = s

def get_scheduler() -> BaseScheduler:
    if _scheduler is None:
        raise RuntimeError("Scheduler is not initialized yet")
    return _scheduler
