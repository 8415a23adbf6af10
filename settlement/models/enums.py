"""Enumerations for the settlement domain model."""

from enum import Enum


class PayoutStatus(str, Enum):
    """Lifecycle states for a producer payout batch."""

    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PayoutTransition(str, Enum):
    """Administrative actions that move a payout between states."""

    SCHEDULE = "schedule"
    START_PROCESSING = "start_processing"
    COMPLETE = "complete"
    FAIL = "fail"


class VerificationStatus(str, Enum):
    """Derived verification state of a bank account."""

    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class AccountType(str, Enum):
    SAVINGS = "SAVINGS"
    CHECKING = "CHECKING"
    MOBILE_MONEY = "MOBILE_MONEY"


class PaymentMethod(str, Enum):
    """How a completed payout was disbursed."""

    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_MONEY = "MOBILE_MONEY"
    CASH = "CASH"
    CHECK = "CHECK"


class SkipReason(str, Enum):
    """Categorized reasons an order cannot join a payout batch."""

    INVALID_AMOUNT = "invalid_amount"
    PRODUCER_MISMATCH = "producer_mismatch"
    DUPLICATE_IN_BATCH = "duplicate_in_batch"
    ALREADY_SETTLED = "already_settled"
    MISSING_ORDER_ID = "missing_order_id"
