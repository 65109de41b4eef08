from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, List

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tutorslot.errors import ConflictError, InvalidStateError, NotFoundError, SchedulingError, ValidationError
from tutorslot.services.locks import KeyedLocks
from tutorslot.services.slot_service import SlotService
from tutorslot.storage.models import Booking, BookingStatus
from tutorslot.storage.queries import confirmed_booking_for, get_rule
from tutorslot.utils.dates import local_now

log = logging.getLogger(__name__)


def _already_booked(tutor_id: int, rule_id: int, slot_date: date, booking_id: int | None = None) -> ConflictError:
    details = {"tutor_id": tutor_id, "rule_id": rule_id, "slot_date": slot_date.isoformat()}
    if booking_id is not None:
        details["booking_id"] = booking_id
    return ConflictError(
        f"Slot {slot_date.isoformat()} of rule {rule_id} is already booked",
        details=details,
    )


class BookingService:
    """Exclusive assignment of slot instances to students.

    At most one CONFIRMED booking exists per (tutor_id, rule_id, slot_date).
    Same-key ``book`` calls are serialized by a per-key lock, and the partial
    unique index on the bookings table rejects anything that slips past it.
    """

    def __init__(
        self,
        slots: SlotService,
        *,
        clock: Callable[[], datetime] | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._slots = slots
        self._clock = clock or local_now
        self._locks = locks or KeyedLocks()

    async def book(
        self,
        session: AsyncSession,
        tutor_id: int,
        student_id: int,
        rule_id: int,
        slot_date: date,
    ) -> Booking:
        async with self._locks.hold(("booking", tutor_id, rule_id, slot_date)):
            try:
                instance = await self._slots.instance_for(session, tutor_id, rule_id, slot_date)
                if instance is None:
                    raise NotFoundError(
                        f"No bookable instance of rule {rule_id} on {slot_date.isoformat()}",
                        details={"tutor_id": tutor_id, "rule_id": rule_id, "slot_date": slot_date.isoformat()},
                    )

                taken = await confirmed_booking_for(session, tutor_id, rule_id, slot_date)
                if taken is not None:
                    raise _already_booked(tutor_id, rule_id, slot_date, taken.id)

                booking = Booking(
                    tutor_id=tutor_id,
                    student_id=student_id,
                    rule_id=rule_id,
                    slot_date=slot_date,
                    start_minute=instance.start_minute,
                    end_minute=instance.end_minute,
                    status=BookingStatus.CONFIRMED.value,
                    created_at=self._clock(),
                )
                session.add(booking)
                await session.flush()

                # перечитываем правило уже под блокировкой записи: параллельное
                # удаление либо видит эту запись, либо завершилось раньше
                if await get_rule(session, rule_id, for_update=True) is None:
                    raise NotFoundError(
                        f"Rule {rule_id} was deleted",
                        details={"rule_id": rule_id},
                    )
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                log.info(f"booking.book conflict on unique index: tutor={tutor_id} rule={rule_id} date={slot_date}")
                raise _already_booked(tutor_id, rule_id, slot_date) from e
            except SchedulingError as e:
                await session.rollback()
                log.info(f"booking.book rejected ({e.code}): tutor={tutor_id} rule={rule_id} date={slot_date}")
                raise

        log.info(f"booking.book ok: booking={booking.id} tutor={tutor_id} student={student_id} rule={rule_id} date={slot_date}")
        return booking

    async def mark_cancelled(self, session: AsyncSession, booking: Booking, cancelled_by: int | None) -> Booking:
        """Flip a booking to CANCELLED inside the caller's transaction. Does not commit."""
        if not booking.is_confirmed:
            raise InvalidStateError(
                f"Booking {booking.id} is {booking.status}, only CONFIRMED bookings can be cancelled",
                details={"booking_id": booking.id, "status": booking.status},
            )
        now = self._clock()
        res = await session.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == BookingStatus.CONFIRMED.value)
            .values(
                status=BookingStatus.CANCELLED.value,
                cancelled_at=now,
                cancelled_by=cancelled_by,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise InvalidStateError(
                f"Booking {booking.id} was cancelled concurrently",
                details={"booking_id": booking.id, "status": BookingStatus.CANCELLED.value},
            )
        await session.refresh(booking)
        return booking

    async def cancel(self, session: AsyncSession, booking_id: int, cancelled_by: int | None) -> Booking:
        booking = await self.get(session, booking_id)
        try:
            await self.mark_cancelled(session, booking, cancelled_by)
            await session.commit()
        except SchedulingError as e:
            await session.rollback()
            log.info(f"booking.cancel rejected ({e.code}): booking={booking_id}")
            raise
        log.info(f"booking.cancel ok: booking={booking_id} by={cancelled_by}")
        return booking

    async def get(self, session: AsyncSession, booking_id: int) -> Booking:
        booking = await session.scalar(select(Booking).where(Booking.id == booking_id))
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found", details={"booking_id": booking_id})
        return booking

    async def list_for_tutor(
        self,
        session: AsyncSession,
        tutor_id: int,
        from_date: date,
        to_date: date,
        *,
        include_cancelled: bool = False,
    ) -> List[Booking]:
        return await self._list(session, Booking.tutor_id == tutor_id, from_date, to_date, include_cancelled)

    async def list_for_student(
        self,
        session: AsyncSession,
        student_id: int,
        from_date: date,
        to_date: date,
        *,
        include_cancelled: bool = False,
    ) -> List[Booking]:
        return await self._list(session, Booking.student_id == student_id, from_date, to_date, include_cancelled)

    async def _list(self, session, owner_clause, from_date: date, to_date: date, include_cancelled: bool) -> List[Booking]:
        if from_date > to_date:
            raise ValidationError("from_date must not be after to_date", field="to_date")
        stmt = select(Booking).where(
            owner_clause,
            Booking.slot_date >= from_date,
            Booking.slot_date <= to_date,
        )
        if not include_cancelled:
            stmt = stmt.where(Booking.status == BookingStatus.CONFIRMED.value)
        res = await session.execute(stmt.order_by(Booking.slot_date, Booking.start_minute, Booking.id))
        return list(res.scalars().all())
