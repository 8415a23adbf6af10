"""
Commission arithmetic.

All money is handled in integer minor units (cents). Commission is rounded
half-up to the nearest cent and net is always derived by subtraction, so
commission + net == gross holds exactly for every batch.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from settlement.engine.errors import ValidationError


@dataclass(frozen=True)
class CommissionBreakdown:
    gross_cents: int
    rate: float
    commission_cents: int
    net_cents: int


# Largest amount a single order or payout may carry, in cents. Keeps every
# sum of figures well inside a signed 64-bit column.
MAX_AMOUNT_CENTS = 10**15


def to_cents(amount) -> int:
    """
    Convert a currency amount to cents, avoiding floating point issues.

    Raises:
        ValidationError: Not a finite number, or larger than MAX_AMOUNT_CENTS.
    """
    try:
        value = Decimal(str(amount))
        if not value.is_finite():
            raise ValidationError(f"Invalid amount: {amount}")
        cents = int(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) * 100)
    except InvalidOperation as e:
        raise ValidationError(f"Invalid amount: {amount}") from e
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"Amount exceeds the maximum of {MAX_AMOUNT_CENTS} cents: {amount}")
    return cents


def to_amount(cents: int) -> float:
    return cents / 100


def compute_commission(gross_cents: int, rate: float) -> CommissionBreakdown:
    """
    Split a gross amount into platform commission and producer net.

    Raises:
        ValidationError: On a negative or oversized gross, or a rate outside [0, 1].
    """
    if gross_cents < 0:
        raise ValidationError(f"Gross amount cannot be negative: {gross_cents}")
    if gross_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"Gross amount exceeds the maximum of {MAX_AMOUNT_CENTS} cents: {gross_cents}")
    if rate < 0 or rate > 1:
        raise ValidationError(f"Commission rate must be between 0 and 1: {rate}")

    commission = int(
        (Decimal(gross_cents) * Decimal(str(rate))).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    return CommissionBreakdown(
        gross_cents=gross_cents,
        rate=rate,
        commission_cents=commission,
        net_cents=gross_cents - commission,
    )
