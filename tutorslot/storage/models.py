from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Index, Integer, SmallInteger, String, text
from sqlalchemy.orm import Mapped, mapped_column

from tutorslot.storage.db import Base
from tutorslot.utils.dates import Weekday, format_window, intervals_overlap, to_minutes


class BookingStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    display_name: Mapped[str] = mapped_column(String(128))
    role: Mapped[str] = mapped_column(String(16), default="student")
    contact: Mapped[str | None] = mapped_column(String(128), nullable=True)


class AvailabilityRule(Base):
    __tablename__ = "availability_rules"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tutor_id: Mapped[int] = mapped_column(Integer, index=True)
    day_of_week: Mapped[int] = mapped_column(SmallInteger)
    # минуты от полуночи, 0..1439
    start_minute: Mapped[int] = mapped_column(SmallInteger)
    end_minute: Mapped[int] = mapped_column(SmallInteger)
    recurrence_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))

    __table_args__ = (
        Index("ix_rules_tutor_day", "tutor_id", "day_of_week"),
    )

    @property
    def weekday(self) -> Weekday:
        return Weekday(self.day_of_week)

    @property
    def duration_minutes(self) -> int:
        return self.end_minute - self.start_minute

    @property
    def duration_hours(self) -> float:
        return self.duration_minutes / 60

    def overlaps(self, day_of_week: int, start_minute: int, end_minute: int) -> bool:
        if self.day_of_week != day_of_week:
            return False
        return intervals_overlap(self.start_minute, self.end_minute, start_minute, end_minute)

    def contains_time(self, hhmm: str) -> bool:
        minute = to_minutes(hhmm)
        return self.start_minute <= minute < self.end_minute

    def is_expired(self, today: date) -> bool:
        return self.recurrence_end is not None and self.recurrence_end < today

    def is_currently_active(self, today: date) -> bool:
        return self.enabled and not self.is_expired(today)

    def __str__(self) -> str:
        return f"{self.weekday.label} {format_window(self.start_minute, self.end_minute)}"


class Booking(Base):
    __tablename__ = "bookings"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tutor_id: Mapped[int] = mapped_column(Integer, index=True)
    student_id: Mapped[int] = mapped_column(Integer, index=True)
    # правила удаляются физически, а записи хранятся для истории, поэтому без FK
    rule_id: Mapped[int] = mapped_column(Integer, index=True)
    slot_date: Mapped[date] = mapped_column(Date, index=True)
    start_minute: Mapped[int] = mapped_column(SmallInteger)
    end_minute: Mapped[int] = mapped_column(SmallInteger)

    status: Mapped[str] = mapped_column(String(16), default=BookingStatus.CONFIRMED.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    cancelled_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index(
            "uq_booking_confirmed_slot",
            "tutor_id",
            "rule_id",
            "slot_date",
            unique=True,
            sqlite_where=text("status = 'CONFIRMED'"),
            postgresql_where=text("status = 'CONFIRMED'"),
        ),
    )

    @property
    def is_confirmed(self) -> bool:
        return self.status == BookingStatus.CONFIRMED.value

    @property
    def key(self) -> tuple[int, int, date]:
        return (self.tutor_id, self.rule_id, self.slot_date)
