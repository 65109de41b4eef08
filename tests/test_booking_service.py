from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from tests.helpers import TODAY, next_weekday
from tutorslot.errors import ConflictError, InvalidStateError, NotFoundError
from tutorslot.storage.models import Booking, BookingStatus
from tutorslot.utils.dates import Weekday

MONDAY = next_weekday(Weekday.MONDAY)


@pytest.fixture
async def monday_rule(service, users):
    return await service.add_rule(users.tutor, Weekday.MONDAY, "09:00", "10:00")


async def test_book_confirms_and_snapshots_window(service, users, monday_rule, clock) -> None:
    booking = await service.book(users.tutor, users.student, monday_rule.id, MONDAY)

    assert booking.status == BookingStatus.CONFIRMED.value
    assert booking.key == (users.tutor, monday_rule.id, MONDAY)
    assert (booking.start_minute, booking.end_minute) == (540, 600)
    assert booking.created_at == clock.now
    assert booking.cancelled_at is None


async def test_second_booking_on_same_instance_conflicts(service, users, monday_rule) -> None:
    first = await service.book(users.tutor, users.student, monday_rule.id, MONDAY)
    with pytest.raises(ConflictError) as exc:
        await service.book(users.tutor, users.other_student, monday_rule.id, MONDAY)
    assert exc.value.details["booking_id"] == first.id

    # другая дата того же правила свободна
    await service.book(users.tutor, users.other_student, monday_rule.id, MONDAY + timedelta(days=7))


@pytest.mark.parametrize(
    "offset,label",
    [(1, "wrong weekday"), (-7, "in the past")],
)
async def test_book_rejects_dates_that_are_not_instances(service, users, monday_rule, offset, label) -> None:
    with pytest.raises(NotFoundError):
        await service.book(users.tutor, users.student, monday_rule.id, MONDAY + timedelta(days=offset))


async def test_book_rejects_disabled_rule_and_past_recurrence_end(service, users) -> None:
    capped = await service.add_rule(users.tutor, Weekday.THURSDAY, "09:00", "10:00", recurrence_end=TODAY + timedelta(days=3))
    thursday = next_weekday(Weekday.THURSDAY)
    with pytest.raises(NotFoundError):
        await service.book(users.tutor, users.student, capped.id, thursday + timedelta(days=7))

    disabled = await service.add_rule(users.tutor, Weekday.FRIDAY, "09:00", "10:00")
    await service.toggle_rule(disabled.id, False)
    with pytest.raises(NotFoundError):
        await service.book(users.tutor, users.student, disabled.id, next_weekday(Weekday.FRIDAY))


async def test_book_rejects_unknown_rule_and_foreign_tutor(service, users, monday_rule) -> None:
    with pytest.raises(NotFoundError):
        await service.book(users.tutor, users.student, monday_rule.id + 100, MONDAY)
    with pytest.raises(NotFoundError):
        await service.book(users.other_tutor, users.student, monday_rule.id, MONDAY)


async def test_book_rejects_unknown_accounts(service, users, monday_rule) -> None:
    with pytest.raises(NotFoundError) as exc:
        await service.book(users.tutor, 4242, monday_rule.id, MONDAY)
    assert exc.value.details == {"field": "student_id", "user_id": 4242}

    with pytest.raises(NotFoundError) as exc:
        await service.book(4343, users.student, monday_rule.id, MONDAY)
    assert exc.value.details["field"] == "tutor_id"


async def test_concurrent_bookings_have_a_single_winner(service, users, monday_rule, sessions) -> None:
    attempts = 8
    results = await asyncio.gather(
        *(service.book(users.tutor, users.student, monday_rule.id, MONDAY) for _ in range(attempts)),
        return_exceptions=True,
    )

    winners = [r for r in results if isinstance(r, Booking)]
    losers = [r for r in results if isinstance(r, ConflictError)]
    assert len(winners) == 1
    assert len(losers) == attempts - 1

    stored = await service.list_bookings_for_tutor(users.tutor, TODAY, MONDAY, include_cancelled=True)
    assert [b.id for b in stored] == [winners[0].id]


async def test_concurrent_bookings_on_different_keys_all_succeed(service, users) -> None:
    rules = [
        await service.add_rule(users.tutor, Weekday.MONDAY, "09:00", "10:00"),
        await service.add_rule(users.tutor, Weekday.TUESDAY, "09:00", "10:00"),
        await service.add_rule(users.tutor, Weekday.WEDNESDAY, "09:00", "10:00"),
    ]
    results = await asyncio.gather(
        *(service.book(users.tutor, users.student, r.id, next_weekday(r.day_of_week)) for r in rules)
    )
    assert all(b.status == BookingStatus.CONFIRMED.value for b in results)


async def test_cancel_frees_the_slot_for_rebooking(service, users, monday_rule, clock) -> None:
    booking = await service.book(users.tutor, users.student, monday_rule.id, MONDAY)
    clock.advance(hours=1)

    cancelled = await service.cancel(booking.id, cancelled_by=users.student)
    assert cancelled.status == BookingStatus.CANCELLED.value
    assert cancelled.cancelled_at == clock.now
    assert cancelled.cancelled_by == users.student
    assert await service.is_open(users.tutor, monday_rule.id, MONDAY)

    again = await service.book(users.tutor, users.other_student, monday_rule.id, MONDAY)
    assert again.id != booking.id
    assert again.status == BookingStatus.CONFIRMED.value


async def test_cancelling_twice_is_an_invalid_state(service, users, monday_rule) -> None:
    booking = await service.book(users.tutor, users.student, monday_rule.id, MONDAY)
    await service.cancel(booking.id)
    with pytest.raises(InvalidStateError) as exc:
        await service.cancel(booking.id)
    assert exc.value.details == {"booking_id": booking.id, "status": "CANCELLED"}


async def test_cancel_unknown_booking(service) -> None:
    with pytest.raises(NotFoundError):
        await service.cancel(123456)


async def test_disabling_rule_keeps_confirmed_bookings(service, users, monday_rule) -> None:
    booking = await service.book(users.tutor, users.student, monday_rule.id, MONDAY)
    await service.toggle_rule(monday_rule.id, False)

    assert await service.expand(users.tutor, TODAY, TODAY + timedelta(days=30)) == []
    kept = await service.list_bookings_for_tutor(users.tutor, TODAY, TODAY + timedelta(days=30))
    assert [(b.id, b.status) for b in kept] == [(booking.id, BookingStatus.CONFIRMED.value)]


async def test_listings_hide_cancelled_unless_requested(service, users, monday_rule) -> None:
    kept = await service.book(users.tutor, users.student, monday_rule.id, MONDAY)
    dropped = await service.book(users.tutor, users.student, monday_rule.id, MONDAY + timedelta(days=7))
    await service.book(users.tutor, users.other_student, monday_rule.id, MONDAY + timedelta(days=14))
    await service.cancel(dropped.id)
    window = (TODAY, TODAY + timedelta(days=30))

    assert [b.id for b in await service.list_bookings_for_student(users.student, *window)] == [kept.id]
    everything = await service.list_bookings_for_student(users.student, *window, include_cancelled=True)
    assert [b.id for b in everything] == [kept.id, dropped.id]
    assert len(await service.list_bookings_for_tutor(users.tutor, *window)) == 2

    # диапазон дат фильтрует по дате занятия
    assert await service.list_bookings_for_student(users.student, MONDAY + timedelta(days=1), MONDAY + timedelta(days=6)) == []
