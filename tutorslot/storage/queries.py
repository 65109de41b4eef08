from __future__ import annotations

from datetime import date
from typing import Collection

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorslot.storage.models import AvailabilityRule, Booking, BookingStatus


async def get_rule(session: AsyncSession, rule_id: int, *, for_update: bool = False) -> AvailabilityRule | None:
    stmt = select(AvailabilityRule).where(AvailabilityRule.id == rule_id)
    if for_update:
        stmt = stmt.with_for_update()
    return await session.scalar(stmt)


async def rules_for_tutor(
    session: AsyncSession,
    tutor_id: int,
    *,
    day_of_week: int | None = None,
    enabled_only: bool = False,
) -> list[AvailabilityRule]:
    stmt = select(AvailabilityRule).where(AvailabilityRule.tutor_id == tutor_id)
    if day_of_week is not None:
        stmt = stmt.where(AvailabilityRule.day_of_week == day_of_week)
    if enabled_only:
        stmt = stmt.where(AvailabilityRule.enabled.is_(True))
    stmt = stmt.order_by(
        AvailabilityRule.day_of_week, AvailabilityRule.start_minute, AvailabilityRule.id
    )
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def confirmed_booking_for(
    session: AsyncSession, tutor_id: int, rule_id: int, slot_date: date
) -> Booking | None:
    return await session.scalar(
        select(Booking)
        .where(
            Booking.tutor_id == tutor_id,
            Booking.rule_id == rule_id,
            Booking.slot_date == slot_date,
            Booking.status == BookingStatus.CONFIRMED.value,
        )
        .limit(1)
    )


async def confirmed_keys(
    session: AsyncSession, tutor_id: int, rule_ids: Collection[int], start: date, end: date
) -> set[tuple[int, date]]:
    if not rule_ids:
        return set()
    res = await session.execute(
        select(Booking.rule_id, Booking.slot_date).where(
            Booking.tutor_id == tutor_id,
            Booking.rule_id.in_(list(rule_ids)),
            Booking.slot_date >= start,
            Booking.slot_date <= end,
            Booking.status == BookingStatus.CONFIRMED.value,
        )
    )
    return {(rule_id, slot_date) for rule_id, slot_date in res.all()}


async def future_confirmed_for_rule(
    session: AsyncSession, rule_id: int, today: date
) -> list[Booking]:
    res = await session.execute(
        select(Booking)
        .where(
            Booking.rule_id == rule_id,
            Booking.slot_date >= today,
            Booking.status == BookingStatus.CONFIRMED.value,
        )
        .order_by(Booking.slot_date, Booking.id)
    )
    return list(res.scalars().all())
