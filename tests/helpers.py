from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Tuple

from tutorslot.utils.dates import first_on_or_after

# вторник
TODAY = date(2030, 1, 1)


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, **kwargs: Any) -> None:
        self.now += timedelta(days=days, **kwargs)


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def notify(self, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((event, payload))

    def names(self) -> List[str]:
        return [event for event, _ in self.events]


def next_weekday(weekday: int, start: date = TODAY) -> date:
    return first_on_or_after(start, weekday)
