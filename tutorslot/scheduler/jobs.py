from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict
from zoneinfo import ZoneInfo

from apscheduler.schedulers.base import BaseScheduler

from tutorslot.config import settings

log = logging.getLogger("notifications.dispatch")


def deliver_notification(notifier, event: str, payload: Dict[str, Any]) -> None:
    try:
        notifier.notify(event, payload)
    except Exception:
        # доставка не влияет на результат операции ядра
        log.exception("notifications.deliver failed event=%s", event)


def schedule_notification(
    scheduler: BaseScheduler, notifier, event: str, payload: Dict[str, Any]
) -> str:
    """Queue one delivery as a one-shot ``date`` job and return its id."""
    run_at = datetime.now(ZoneInfo(settings.tz))
    job = scheduler.add_job(
        deliver_notification,
        trigger="date",
        run_date=run_at,
        args=[notifier, event, payload],
        misfire_grace_time=60,
        coalesce=True,
    )
    log.info("notifications.schedule event=%s job=%s run_at=%s", event, job.id, run_at)
    return job.id
