"""
Error taxonomy of the scheduling core.

Every error carries a machine-readable ``code`` and a ``details`` dict
(offending field, conflicting id, ...) so callers can render a specific
message instead of a generic failure.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for all errors raised by the scheduling core."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(SchedulingError):
    """Malformed input. Raised before any state is touched."""

    def __init__(self, message: str, field: Optional[str] = None, **details: Any) -> None:
        if field is not None:
            details["field"] = field
        super().__init__(message, details=details)

    @property
    def field(self) -> Optional[str]:
        return self.details.get("field")


class ConflictError(SchedulingError):
    """Overlapping availability rule or a slot instance that is already booked."""


class NotFoundError(SchedulingError):
    """Unknown rule/booking, or an instance that does not qualify as bookable."""


class InvalidStateError(SchedulingError):
    """Transition not allowed from the current booking status."""


class CascadeFailedError(SchedulingError):
    """A rule delete was aborted because one of its bookings could not be cancelled."""

    def __init__(self, rule_id: int, booking_id: int, cause: Exception) -> None:
        super().__init__(
            f"Rule {rule_id} was not deleted: booking {booking_id} could not be cancelled",
            details={
                "rule_id": rule_id,
                "booking_id": booking_id,
                "cause": getattr(cause, "code", type(cause).__name__),
            },
        )
        self.__cause__ = cause
