"""
Error taxonomy for settlement operations.

Components raise these internally. The settlement façade catches them at
its boundary, rolls back the transaction, and hands them back to the
caller inside a SettlementResult, so callers branch on a value rather
than on an exception escaping the atomic write:

  - ValidationError      missing or invalid input; caller re-prompts
  - InvalidTransition    operation illegal from the current state; terminal
  - ConcurrencyConflict  lost a race; caller may re-read and retry
  - NotFound             unknown payout / account id; terminal
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class SettlementError(Exception):
    """Base exception for settlement failures."""

    code = "settlement_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(SettlementError):
    code = "validation_error"


class InvalidTransition(SettlementError):
    """The requested operation is not legal from the record's current state."""

    code = "invalid_transition"

    def __init__(self, current: str, requested: str, message: Optional[str] = None):
        super().__init__(
            message or f"Illegal transition: {current} -> {requested}",
            current=current,
            requested=requested,
        )
        self.current = current
        self.requested = requested


class ConcurrencyConflict(SettlementError):
    code = "concurrency_conflict"


class NotFound(SettlementError):
    code = "not_found"


@dataclass
class SettlementResult(Generic[T]):
    """Outcome of a settlement operation: either a value or a typed error."""

    value: Optional[T] = None
    error: Optional[SettlementError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, re-raising the error if the operation failed."""
        if self.error is not None:
            raise self.error
        return self.value
