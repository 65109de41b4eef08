from __future__ import annotations

from datetime import datetime
from types import SimpleNamespace

import pytest

from tutorslot.services.identity import DatabaseIdentityLookup, ensure_user
from tutorslot.services.scheduling import SchedulingService
from tutorslot.storage.db import init_db, make_engine, make_sessionmaker
from tests.helpers import TODAY, FixedClock, RecordingNotifier


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime.combine(TODAY, datetime.min.time()).replace(hour=8))


@pytest.fixture
async def engine(tmp_path):
    eng = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'tutorslot-test.sqlite3'}", echo=False)
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def sessions(engine):
    return make_sessionmaker(engine)


@pytest.fixture
async def users(sessions):
    async with sessions() as session:
        tutor = await ensure_user(session, "Anna Tutor", role="tutor", contact="anna@example.com")
        other_tutor = await ensure_user(session, "Boris Tutor", role="tutor")
        student = await ensure_user(session, "Sam Student", contact="sam@example.com")
        other_student = await ensure_user(session, "Kim Student", contact="@kim")
        await session.commit()
    return SimpleNamespace(
        tutor=tutor.id,
        other_tutor=other_tutor.id,
        student=student.id,
        other_student=other_student.id,
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(sessions, clock, notifier) -> SchedulingService:
    return SchedulingService(
        sessions,
        identity=DatabaseIdentityLookup(sessions),
        notifier=notifier,
        clock=clock,
    )
