"""
Scheduling facade: the only surface other subsystems call.

Marshals plain values (ids, dates, "HH:MM" times) into the components, opens
one session per call, and emits notifications after successful writes. All
conflict and consistency logic lives in the rule, slot and booking services.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutorslot.errors import NotFoundError, ValidationError
from tutorslot.services.booking_service import BookingService
from tutorslot.services.identity import IdentityLookup
from tutorslot.services.locks import KeyedLocks
from tutorslot.services.notifications import (
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    RULE_DELETED,
    LogNotifier,
    Notifier,
)
from tutorslot.services.rule_service import AvailabilityRuleService, AvailabilitySummary
from tutorslot.services.slot_service import SlotInstance, SlotService
from tutorslot.storage.models import AvailabilityRule, Booking
from tutorslot.utils.dates import format_instance

log = logging.getLogger(__name__)

TimeOfDay = Union[time, str, int]


class AddRuleRequest(BaseModel):
    tutor_id: int
    day_of_week: int
    start: TimeOfDay
    end: TimeOfDay
    recurrence_end: Optional[date] = None


class ToggleRequest(BaseModel):
    rule_id: int
    enabled: bool


class DateRange(BaseModel):
    from_date: date
    to_date: date


class BookRequest(BaseModel):
    tutor_id: int
    student_id: int
    rule_id: int
    slot_date: date


def _marshal(model: type[BaseModel], **values: Any) -> Any:
    try:
        return model(**values)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or None
        raise ValidationError(first.get("msg", "Invalid input"), field=field) from e


def _booking_payload(booking: Booking, recipients: List[str]) -> Dict[str, Any]:
    return {
        "booking_id": booking.id,
        "tutor_id": booking.tutor_id,
        "student_id": booking.student_id,
        "rule_id": booking.rule_id,
        "slot_date": booking.slot_date.isoformat(),
        "slot": format_instance(booking.slot_date, booking.start_minute, booking.end_minute),
        "status": booking.status,
        "recipients": recipients,
    }


class SchedulingService:
    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        *,
        identity: Optional[IdentityLookup] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._sessions = sessions
        self._identity = identity
        self._notifier = notifier or LogNotifier()
        locks = KeyedLocks()
        self.slots = SlotService(clock=clock)
        self.bookings = BookingService(self.slots, clock=clock, locks=locks)
        self.rules = AvailabilityRuleService(self.bookings, clock=clock, locks=locks)

    # availability rules

    async def add_rule(
        self,
        tutor_id: int,
        day_of_week: int,
        start: TimeOfDay,
        end: TimeOfDay,
        recurrence_end: Optional[date] = None,
    ) -> AvailabilityRule:
        req = _marshal(
            AddRuleRequest,
            tutor_id=tutor_id,
            day_of_week=day_of_week,
            start=start,
            end=end,
            recurrence_end=recurrence_end,
        )
        async with self._sessions() as session:
            return await self.rules.add_rule(
                session, req.tutor_id, req.day_of_week, req.start, req.end, req.recurrence_end
            )

    async def toggle_rule(self, rule_id: int, enabled: bool) -> AvailabilityRule:
        req = _marshal(ToggleRequest, rule_id=rule_id, enabled=enabled)
        async with self._sessions() as session:
            return await self.rules.toggle_rule(session, req.rule_id, req.enabled)

    async def delete_rule(self, rule_id: int, deleted_by: Optional[int] = None) -> List[Booking]:
        async with self._sessions() as session:
            rule = await self.rules.get_rule(session, rule_id)
            window = str(rule)
            tutor_id = rule.tutor_id
            cancelled = await self.rules.delete_rule(session, rule_id, deleted_by)

        for booking in cancelled:
            self._emit(BOOKING_CANCELLED, _booking_payload(booking, await self._recipients(booking)))
        self._emit(
            RULE_DELETED,
            {
                "rule_id": rule_id,
                "tutor_id": tutor_id,
                "window": window,
                "cancelled_booking_ids": [b.id for b in cancelled],
                "recipients": await self._contacts(tutor_id),
            },
        )
        return cancelled

    async def list_rules(self, tutor_id: int) -> List[AvailabilityRule]:
        async with self._sessions() as session:
            return await self.rules.list_rules(session, tutor_id)

    async def availability_summary(self, tutor_id: int) -> AvailabilitySummary:
        async with self._sessions() as session:
            return await self.rules.summary(session, tutor_id)

    # slot instances

    async def expand(self, tutor_id: int, from_date: date, to_date: date) -> List[SlotInstance]:
        rng = _marshal(DateRange, from_date=from_date, to_date=to_date)
        async with self._sessions() as session:
            return await self.slots.expand(session, tutor_id, rng.from_date, rng.to_date)

    async def open_instances(self, tutor_id: int, from_date: date, to_date: date) -> List[SlotInstance]:
        rng = _marshal(DateRange, from_date=from_date, to_date=to_date)
        async with self._sessions() as session:
            return await self.slots.open_instances(session, tutor_id, rng.from_date, rng.to_date)

    async def is_open(self, tutor_id: int, rule_id: int, slot_date: date) -> bool:
        async with self._sessions() as session:
            return await self.slots.is_open(session, tutor_id, rule_id, slot_date)

    # bookings

    async def book(self, tutor_id: int, student_id: int, rule_id: int, slot_date: date) -> Booking:
        req = _marshal(
            BookRequest,
            tutor_id=tutor_id,
            student_id=student_id,
            rule_id=rule_id,
            slot_date=slot_date,
        )
        await self._require_user(req.tutor_id, "tutor_id")
        await self._require_user(req.student_id, "student_id")

        async with self._sessions() as session:
            booking = await self.bookings.book(
                session, req.tutor_id, req.student_id, req.rule_id, req.slot_date
            )
        self._emit(BOOKING_CONFIRMED, _booking_payload(booking, await self._recipients(booking)))
        return booking

    async def cancel(self, booking_id: int, cancelled_by: Optional[int] = None) -> Booking:
        async with self._sessions() as session:
            booking = await self.bookings.cancel(session, booking_id, cancelled_by)
        self._emit(BOOKING_CANCELLED, _booking_payload(booking, await self._recipients(booking)))
        return booking

    async def list_bookings_for_tutor(
        self, tutor_id: int, from_date: date, to_date: date, *, include_cancelled: bool = False
    ) -> List[Booking]:
        rng = _marshal(DateRange, from_date=from_date, to_date=to_date)
        async with self._sessions() as session:
            return await self.bookings.list_for_tutor(
                session, tutor_id, rng.from_date, rng.to_date, include_cancelled=include_cancelled
            )

    async def list_bookings_for_student(
        self, student_id: int, from_date: date, to_date: date, *, include_cancelled: bool = False
    ) -> List[Booking]:
        rng = _marshal(DateRange, from_date=from_date, to_date=to_date)
        async with self._sessions() as session:
            return await self.bookings.list_for_student(
                session, student_id, rng.from_date, rng.to_date, include_cancelled=include_cancelled
            )

    # collaborators

    async def _require_user(self, user_id: int, field: str) -> None:
        if self._identity is None:
            return
        if await self._identity.resolve_user(user_id) is None:
            raise NotFoundError(
                f"User {user_id} not found",
                details={"field": field, "user_id": user_id},
            )

    async def _contacts(self, *user_ids: int) -> List[str]:
        if self._identity is None:
            return []
        out: List[str] = []
        for user_id in user_ids:
            user = await self._identity.resolve_user(user_id)
            if user is not None and user.contact:
                out.append(user.contact)
        return out

    async def _recipients(self, booking: Booking) -> List[str]:
        return await self._contacts(booking.student_id, booking.tutor_id)

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        try:
            self._notifier.notify(event, payload)
        except Exception:
            log.exception("notify failed event=%s", event)

