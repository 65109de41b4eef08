from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Callable, List

from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from tutorslot.config import settings
from tutorslot.errors import ValidationError
from tutorslot.storage.models import AvailabilityRule
from tutorslot.storage.queries import confirmed_booking_for, confirmed_keys, get_rule, rules_for_tutor
from tutorslot.utils.dates import Weekday, combine, first_on_or_after, format_instance, local_now


class SlotInstance(BaseModel):
    """One dated occurrence of an availability rule. Never persisted."""

    model_config = ConfigDict(frozen=True)

    tutor_id: int
    rule_id: int
    slot_date: date
    weekday: Weekday
    start_minute: int
    end_minute: int
    starts_at: datetime
    ends_at: datetime

    @property
    def duration_minutes(self) -> int:
        return self.end_minute - self.start_minute

    @property
    def key(self) -> tuple[int, int, date]:
        return (self.tutor_id, self.rule_id, self.slot_date)

    def __str__(self) -> str:
        return format_instance(self.slot_date, self.start_minute, self.end_minute)


def instances_for_rule(rule: AvailabilityRule, start: date, end: date, today: date) -> List[SlotInstance]:
    if not rule.enabled:
        return []
    start = max(start, today)
    if rule.recurrence_end is not None:
        end = min(end, rule.recurrence_end)
    out: List[SlotInstance] = []
    day = first_on_or_after(start, rule.day_of_week)
    while day <= end:
        out.append(
            SlotInstance(
                tutor_id=rule.tutor_id,
                rule_id=rule.id,
                slot_date=day,
                weekday=Weekday(rule.day_of_week),
                start_minute=rule.start_minute,
                end_minute=rule.end_minute,
                starts_at=combine(day, rule.start_minute),
                ends_at=combine(day, rule.end_minute),
            )
        )
        day += timedelta(days=7)
    return out


class SlotService:
    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        max_days: int | None = None,
    ) -> None:
        self._clock = clock or local_now
        self.max_days = settings.expand_max_days if max_days is None else max_days

    def today(self) -> date:
        return self._clock().date()

    def check_range(self, from_date: date, to_date: date) -> None:
        if from_date > to_date:
            raise ValidationError(
                "from_date must not be after to_date",
                field="to_date",
                from_date=from_date.isoformat(),
                to_date=to_date.isoformat(),
            )
        if (to_date - from_date).days > self.max_days:
            raise ValidationError(
                f"Date range cannot exceed {self.max_days} days",
                field="to_date",
                max_days=self.max_days,
            )

    async def expand(
        self, session: AsyncSession, tutor_id: int, from_date: date, to_date: date
    ) -> List[SlotInstance]:
        self.check_range(from_date, to_date)
        today = self.today()
        rules = await rules_for_tutor(session, tutor_id, enabled_only=True)
        out: List[SlotInstance] = []
        for rule in rules:
            out.extend(instances_for_rule(rule, from_date, to_date, today))
        out.sort(key=lambda i: (i.slot_date, i.start_minute, i.rule_id))
        return out

    async def open_instances(
        self, session: AsyncSession, tutor_id: int, from_date: date, to_date: date
    ) -> List[SlotInstance]:
        instances = await self.expand(session, tutor_id, from_date, to_date)
        busy = await confirmed_keys(
            session, tutor_id, {i.rule_id for i in instances}, from_date, to_date
        )
        return [i for i in instances if (i.rule_id, i.slot_date) not in busy]

    async def instance_for(
        self, session: AsyncSession, tutor_id: int, rule_id: int, slot_date: date
    ) -> SlotInstance | None:
        rule = await get_rule(session, rule_id)
        if rule is None or rule.tutor_id != tutor_id:
            return None
        found = instances_for_rule(rule, slot_date, slot_date, self.today())
        return found[0] if found else None

    async def is_open(
        self, session: AsyncSession, tutor_id: int, rule_id: int, slot_date: date
    ) -> bool:
        if await self.instance_for(session, tutor_id, rule_id, slot_date) is None:
            return False
        return await confirmed_booking_for(session, tutor_id, rule_id, slot_date) is None
