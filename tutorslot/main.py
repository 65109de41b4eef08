# tutorslot/main.py
from __future__ import annotations

import asyncio, logging, signal, sys
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutorslot.config import settings
from tutorslot.runtime import set_scheduler, set_scheduling
from tutorslot.services.identity import DatabaseIdentityLookup
from tutorslot.services.notifications import default_notifier
from tutorslot.services.scheduling import SchedulingService
from tutorslot.storage.db import SessionLocal, engine, init_db

log = logging.getLogger(__name__)

def build_scheduling(
    sessions: async_sessionmaker[AsyncSession] = SessionLocal,
    scheduler: Optional[BaseScheduler] = None,
) -> SchedulingService:
    return SchedulingService(
        sessions,
        identity=DatabaseIdentityLookup(sessions),
        notifier=default_notifier(scheduler),
    )

async def check_db() -> None:
    async with engine.begin() as conn:
        await conn.execute(text("select 1"))

async def serve(service: SchedulingService, scheduler: BaseScheduler, stop: asyncio.Event) -> None:
    """Publish the core and run the notification scheduler until ``stop`` is set."""
    set_scheduling(service)
    set_scheduler(scheduler)
    scheduler.start()
    try:
        await stop.wait()
    finally:
        scheduler.shutdown(wait=True)
        set_scheduler(None)
        set_scheduling(None)

async def main() -> None:
    logging.basicConfig(level=logging.INFO, stream=sys.stdout)
    await init_db()
    await check_db()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # windows: остаётся KeyboardInterrupt
            pass

    scheduler = AsyncIOScheduler(timezone=settings.tz)
    service = build_scheduling(SessionLocal, scheduler)
    log.info("scheduling core ready: db=%s tz=%s", settings.db_url, settings.tz)
    try:
        await serve(service, scheduler, stop)
    finally:
        await engine.dispose()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        print("Stopped")
