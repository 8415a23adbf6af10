"""
Order eligibility checks with categorized skip reasons.

Before an order joins a payout batch, we verify:
  1. It carries an order id
  2. Its amount is at least one cent once rounded, and within bounds
  3. It belongs to the producer the batch is for
  4. It is not listed twice in the same batch
  5. It is not already held by another non-failed payout

Selecting which orders to settle is the order subsystem's job; these
checks only stop a bad feed from breaking the ledger's invariants.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Collection, Optional, Union

from settlement.engine.commission import to_cents
from settlement.engine.errors import ValidationError
from settlement.models.enums import SkipReason


@dataclass(frozen=True)
class OrderFeedItem:
    """A completed sale offered for settlement by the order subsystem."""

    order_id: str
    producer_id: str
    amount: Union[Decimal, float, int]
    order_date: Optional[date] = None


@dataclass
class EligibilityResult:
    """Result of an eligibility check."""

    eligible: bool
    skip_reason: Optional[SkipReason] = None
    message: str = ""


def check_order_eligibility(
    order: OrderFeedItem,
    producer_id: str,
    seen_in_batch: Collection[str] = (),
    held_order_ids: Collection[str] = (),
) -> EligibilityResult:
    """
    Check whether an order may be aggregated into a payout for producer_id.

    Args:
        order: The feed entry.
        producer_id: Owner of the batch being built.
        seen_in_batch: Order ids already accepted into this batch.
        held_order_ids: Order ids held by a non-failed payout.

    Returns:
        EligibilityResult indicating pass/fail with categorized reason.
    """
    if not order.order_id:
        return EligibilityResult(
            eligible=False,
            skip_reason=SkipReason.MISSING_ORDER_ID,
            message="Order has no id",
        )

    try:
        amount_cents = to_cents(order.amount) if order.amount is not None else 0
    except ValidationError:
        amount_cents = 0
    if amount_cents <= 0:
        return EligibilityResult(
            eligible=False,
            skip_reason=SkipReason.INVALID_AMOUNT,
            message=f"Invalid amount for order {order.order_id}: {order.amount}",
        )

    if order.producer_id != producer_id:
        return EligibilityResult(
            eligible=False,
            skip_reason=SkipReason.PRODUCER_MISMATCH,
            message=f"Order {order.order_id} belongs to producer {order.producer_id}, not {producer_id}",
        )

    if order.order_id in seen_in_batch:
        return EligibilityResult(
            eligible=False,
            skip_reason=SkipReason.DUPLICATE_IN_BATCH,
            message=f"Order {order.order_id} listed more than once",
        )

    if order.order_id in held_order_ids:
        return EligibilityResult(
            eligible=False,
            skip_reason=SkipReason.ALREADY_SETTLED,
            message=f"Order {order.order_id} is already held by another payout",
        )

    return EligibilityResult(eligible=True)
