from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Protocol

from apscheduler.schedulers.base import BaseScheduler

from tutorslot.config import settings
from tutorslot.scheduler.jobs import deliver_notification, schedule_notification
from tutorslot.services.email_service import EmailService

log = logging.getLogger("notifications")

BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_CANCELLED = "booking.cancelled"
RULE_DELETED = "rule.deleted"


class Notifier(Protocol):
    def notify(self, event: str, payload: Dict[str, Any]) -> None: ...


class LogNotifier:
    def notify(self, event: str, payload: Dict[str, Any]) -> None:
        log.info("notify %s %s", event, payload)


_SUBJECTS = {
    BOOKING_CONFIRMED: "Booking confirmed",
    BOOKING_CANCELLED: "Booking cancelled",
    RULE_DELETED: "Availability removed",
}


class EmailNotifier:
    """Sends one message per address listed in ``payload["recipients"]``."""

    def notify(self, event: str, payload: Dict[str, Any]) -> None:
        subject = _SUBJECTS.get(event, event)
        body = self.render(event, payload)
        for address in payload.get("recipients") or []:
            if not EmailService.is_email(address):
                log.info("notify.email skip invalid address %r", address)
                continue
            if EmailService.send(to_email=address, subject=subject, body=body):
                log.info("notify.email sent event=%s to=%s", event, address)
            else:
                log.warning("notify.email failed event=%s to=%s", event, address)

    @staticmethod
    def render(event: str, payload: Dict[str, Any]) -> str:
        if event == RULE_DELETED:
            ids = ", ".join(f"#{i}" for i in payload.get("cancelled_booking_ids", [])) or "none"
            return (
                f"Availability rule #{payload.get('rule_id')} ({payload.get('window', '')}) was removed.\n"
                f"Cancelled bookings: {ids}\n"
            )
        lines = [f"Booking #{payload.get('booking_id')}"]
        if payload.get("slot"):
            lines.append(f"When: {payload['slot']}")
        lines.append(f"Status: {payload.get('status', '')}")
        return "\n".join(lines) + "\n"


class DispatchingNotifier:
    """Fire-and-forget front for a delivery notifier.

    With a scheduler attached every event becomes a one-shot job; without one
    the delivery runs inline. Either way failures are only logged.
    """

    def __init__(
        self,
        delivery: Notifier,
        *,
        scheduler: Optional[BaseScheduler] = None,
        enabled: Optional[bool] = None,
        events: Optional[Iterable[str]] = None,
    ) -> None:
        self.delivery = delivery
        self.scheduler = scheduler
        self.enabled = settings.notifications_enabled if enabled is None else enabled
        self.events = set(settings.notify_events if events is None else events)

    def notify(self, event: str, payload: Dict[str, Any]) -> None:
        if not self.enabled or event not in self.events:
            log.debug("notify skip event=%s", event)
            return
        if self.scheduler is not None:
            try:
                schedule_notification(self.scheduler, self.delivery, event, payload)
            except Exception:
                log.exception("notifications.schedule failed event=%s", event)
            return
        deliver_notification(self.delivery, event, payload)


def default_notifier(scheduler: Optional[BaseScheduler] = None) -> DispatchingNotifier:
    delivery: Notifier = EmailNotifier() if settings.smtp_enabled else LogNotifier()
    return DispatchingNotifier(delivery, scheduler=scheduler)
