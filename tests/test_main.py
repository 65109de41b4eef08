from __future__ import annotations

import asyncio

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from tests.helpers import RecordingNotifier, next_weekday
from tutorslot import runtime
from tutorslot.config import DEFAULT_NOTIFY_EVENTS, settings
from tutorslot.main import serve
from tutorslot.services.identity import DatabaseIdentityLookup
from tutorslot.services.notifications import DispatchingNotifier
from tutorslot.services.scheduling import SchedulingService
from tutorslot.utils.dates import Weekday


async def test_serve_delivers_queued_notifications_until_stopped(sessions, clock, users) -> None:
    scheduler = AsyncIOScheduler(timezone=settings.tz)
    delivery = RecordingNotifier()
    service = SchedulingService(
        sessions,
        identity=DatabaseIdentityLookup(sessions),
        notifier=DispatchingNotifier(delivery, scheduler=scheduler, enabled=True, events=DEFAULT_NOTIFY_EVENTS),
        clock=clock,
    )
    stop = asyncio.Event()
    task = asyncio.create_task(serve(service, scheduler, stop))
    await asyncio.sleep(0)

    assert runtime.get_scheduling() is service
    assert scheduler.running

    rule = await service.add_rule(users.tutor, Weekday.MONDAY, "09:00", "10:00")
    booking = await service.book(users.tutor, users.student, rule.id, next_weekday(Weekday.MONDAY))

    for _ in range(200):
        if delivery.events:
            break
        await asyncio.sleep(0.01)
    assert delivery.names() == ["booking.confirmed"]
    assert delivery.events[0][1]["booking_id"] == booking.id

    stop.set()
    await asyncio.wait_for(task, timeout=5)

    assert not scheduler.running
    with pytest.raises(RuntimeError):
        runtime.get_scheduling()
