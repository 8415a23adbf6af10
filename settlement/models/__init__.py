from settlement.models.enums import (
    AccountType,
    PaymentMethod,
    PayoutStatus,
    PayoutTransition,
    SkipReason,
    VerificationStatus,
)
from settlement.models.payout import Base, Payout, PayoutOrder, AuditLog
from settlement.models.bank_account import BankAccount

__all__ = [
    "Base",
    "Payout",
    "PayoutOrder",
    "AuditLog",
    "BankAccount",
    "AccountType",
    "PaymentMethod",
    "PayoutStatus",
    "PayoutTransition",
    "SkipReason",
    "VerificationStatus",
]
