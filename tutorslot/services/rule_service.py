from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Callable, List

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tutorslot.config import settings
from tutorslot.errors import CascadeFailedError, ConflictError, NotFoundError, SchedulingError, ValidationError
from tutorslot.services.booking_service import BookingService
from tutorslot.services.locks import KeyedLocks
from tutorslot.storage.models import AvailabilityRule, Booking
from tutorslot.storage.queries import future_confirmed_for_rule, get_rule, rules_for_tutor
from tutorslot.utils.dates import MINUTES_PER_DAY, Weekday, local_now, to_minutes

log = logging.getLogger(__name__)


class DaySummary(BaseModel):
    weekday: Weekday
    day_name: str
    total_rules: int = 0
    enabled_rules: int = 0
    disabled_rules: int = 0
    total_hours: float = 0.0
    enabled_hours: float = 0.0


class AvailabilitySummary(BaseModel):
    tutor_id: int
    total_rules: int
    enabled_rules: int
    disabled_rules: int
    expired_rules: int
    total_weekly_hours: float
    enabled_weekly_hours: float
    average_duration_minutes: float
    days: List[DaySummary]


def _minutes(value: str | time | int, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a time of day", field=field)
    if isinstance(value, int):
        if not 0 <= value < MINUTES_PER_DAY:
            raise ValidationError(f"{field} out of range: {value}", field=field)
        return value
    try:
        return to_minutes(value)
    except ValidationError as e:
        raise ValidationError(e.message, field=field, value=str(value)) from e


class AvailabilityRuleService:
    """Recurring weekly availability windows of tutors."""

    def __init__(
        self,
        bookings: BookingService,
        *,
        clock: Callable[[], datetime] | None = None,
        locks: KeyedLocks | None = None,
        min_minutes: int | None = None,
        max_minutes: int | None = None,
    ) -> None:
        self._bookings = bookings
        self._clock = clock or local_now
        self._locks = locks or KeyedLocks()
        self.min_minutes = settings.rule_min_minutes if min_minutes is None else min_minutes
        self.max_minutes = settings.rule_max_minutes if max_minutes is None else max_minutes

    def validate(
        self,
        day_of_week: int,
        start: str | time | int,
        end: str | time | int,
        recurrence_end: date | None,
    ) -> tuple[int, int]:
        if isinstance(day_of_week, bool) or not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
            raise ValidationError(
                "Day of week must be between 0 (Sunday) and 6 (Saturday)",
                field="day_of_week",
                value=day_of_week,
            )
        start_minute = _minutes(start, "start")
        end_minute = _minutes(end, "end")
        if start_minute >= end_minute:
            raise ValidationError("Start time must be before end time", field="end")
        duration = end_minute - start_minute
        if duration < self.min_minutes:
            raise ValidationError(
                f"Availability window must be at least {self.min_minutes} minutes long",
                field="end",
                duration_minutes=duration,
            )
        if duration > self.max_minutes:
            raise ValidationError(
                f"Availability window cannot exceed {self.max_minutes} minutes",
                field="end",
                duration_minutes=duration,
            )
        if recurrence_end is not None and recurrence_end < self._clock().date():
            raise ValidationError(
                "Recurrence end date cannot be in the past",
                field="recurrence_end",
                value=recurrence_end.isoformat(),
            )
        return start_minute, end_minute

    async def _check_overlap(
        self, session: AsyncSession, tutor_id: int, day_of_week: int,
        start_minute: int, end_minute: int, exclude_id: int | None = None,
    ) -> None:
        for other in await rules_for_tutor(session, tutor_id, day_of_week=day_of_week, enabled_only=True):
            if other.id == exclude_id:
                continue
            if other.overlaps(day_of_week, start_minute, end_minute):
                raise ConflictError(
                    f"Availability overlaps with existing rule {other.id}: {other}",
                    details={"conflicting_rule_id": other.id, "window": str(other)},
                )

    async def add_rule(
        self,
        session: AsyncSession,
        tutor_id: int,
        day_of_week: int,
        start: str | time | int,
        end: str | time | int,
        recurrence_end: date | None = None,
    ) -> AvailabilityRule:
        start_minute, end_minute = self.validate(day_of_week, start, end, recurrence_end)

        async with self._locks.hold(("rules", tutor_id, day_of_week)):
            try:
                await self._check_overlap(session, tutor_id, day_of_week, start_minute, end_minute)
            except ConflictError as e:
                log.info(f"rule.add conflict: tutor={tutor_id} day={day_of_week} with rule={e.details['conflicting_rule_id']}")
                raise
            rule = AvailabilityRule(
                tutor_id=tutor_id,
                day_of_week=day_of_week,
                start_minute=start_minute,
                end_minute=end_minute,
                recurrence_end=recurrence_end,
                enabled=True,
                created_at=self._clock(),
            )
            session.add(rule)
            await session.flush()
            await session.commit()

        log.info(f"rule.add ok: rule={rule.id} tutor={tutor_id} {rule}")
        return rule

    async def get_rule(self, session: AsyncSession, rule_id: int) -> AvailabilityRule:
        rule = await get_rule(session, rule_id)
        if rule is None:
            raise NotFoundError(f"Rule {rule_id} not found", details={"rule_id": rule_id})
        return rule

    async def toggle_rule(self, session: AsyncSession, rule_id: int, enabled: bool) -> AvailabilityRule:
        rule = await self.get_rule(session, rule_id)
        if rule.enabled == enabled:
            return rule

        async with self._locks.hold(("rules", rule.tutor_id, rule.day_of_week)):
            if enabled:
                # включение не должно давать пересечение с активными правилами
                await self._check_overlap(
                    session, rule.tutor_id, rule.day_of_week,
                    rule.start_minute, rule.end_minute, exclude_id=rule.id,
                )
            rule.enabled = enabled
            await session.flush()
            await session.commit()

        log.info(f"rule.toggle ok: rule={rule_id} enabled={enabled}")
        return rule

    async def delete_rule(
        self, session: AsyncSession, rule_id: int, deleted_by: int | None = None
    ) -> List[Booking]:
        """Delete a rule and cancel its future confirmed bookings in one transaction.

        Returns the bookings cancelled by the cascade. If any of them cannot be
        cancelled the whole delete is rolled back and ``CascadeFailedError`` raised.
        """
        rule = await self.get_rule(session, rule_id)
        cancelled_by = rule.tutor_id if deleted_by is None else deleted_by

        async with self._locks.hold(("rules", rule.tutor_id, rule.day_of_week)):
            rule = await get_rule(session, rule_id, for_update=True)
            if rule is None:
                raise NotFoundError(f"Rule {rule_id} not found", details={"rule_id": rule_id})

            # сначала удаление: транзакция берёт блокировку записи до чтения броней
            await session.delete(rule)
            await session.flush()

            cancelled: List[Booking] = []
            for booking in await future_confirmed_for_rule(session, rule_id, self._clock().date()):
                # после rollback объекты сессии просрочены, id берём заранее
                booking_id = booking.id
                try:
                    await self._bookings.mark_cancelled(session, booking, cancelled_by)
                except (SchedulingError, SQLAlchemyError) as e:
                    await session.rollback()
                    log.warning(f"rule.delete aborted: rule={rule_id} booking={booking_id} error={e}")
                    raise CascadeFailedError(rule_id, booking_id, e) from e
                cancelled.append(booking)
            await session.commit()

        log.info(f"rule.delete ok: rule={rule_id} cancelled_bookings={[b.id for b in cancelled]}")
        return cancelled

    async def list_rules(self, session: AsyncSession, tutor_id: int) -> List[AvailabilityRule]:
        return await rules_for_tutor(session, tutor_id)

    async def summary(self, session: AsyncSession, tutor_id: int) -> AvailabilitySummary:
        rules = await rules_for_tutor(session, tutor_id)
        today = self._clock().date()
        days = {d: DaySummary(weekday=d, day_name=d.label) for d in Weekday}
        for rule in rules:
            day = days[rule.weekday]
            day.total_rules += 1
            day.total_hours += rule.duration_hours
            if rule.enabled:
                day.enabled_rules += 1
                day.enabled_hours += rule.duration_hours
            else:
                day.disabled_rules += 1

        total_minutes = sum(r.duration_minutes for r in rules)
        return AvailabilitySummary(
            tutor_id=tutor_id,
            total_rules=len(rules),
            enabled_rules=sum(1 for r in rules if r.enabled),
            disabled_rules=sum(1 for r in rules if not r.enabled),
            expired_rules=sum(1 for r in rules if r.is_expired(today)),
            total_weekly_hours=total_minutes / 60,
            enabled_weekly_hours=sum(r.duration_minutes for r in rules if r.enabled) / 60,
            average_duration_minutes=(total_minutes / len(rules)) if rules else 0.0,
            days=list(days.values()),
        )
