"""
Payout ledger: the single source of truth for payout batches.

The ledger owns three guarantees:
  - Financial figures follow the commission formula and never drift
    (gross == sum of orders, commission + net == gross).
  - An order is held by at most one non-failed payout at a time.
  - Every status change goes through apply_transition, which writes the
    new status and its accompanying fields in a single version-guarded
    UPDATE. A concurrent writer that loaded an older version gets a
    ConcurrencyConflict instead of overwriting.

The ledger does not decide whether a transition is legal; the settlement
service consults the state machine first. It does refuse to touch a
payout that is already terminal.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from settlement.engine.commission import compute_commission, to_cents
from settlement.engine.eligibility import OrderFeedItem, check_order_eligibility
from settlement.engine.errors import ConcurrencyConflict, InvalidTransition, NotFound, ValidationError
from settlement.engine.state_machine import TERMINAL_STATUSES
from settlement.models.enums import PayoutStatus
from settlement.models.payout import Payout, PayoutOrder

logger = logging.getLogger("settlement.ledger")

IN_FLIGHT_STATUSES = (PayoutStatus.PENDING, PayoutStatus.SCHEDULED, PayoutStatus.PROCESSING)
MAX_PAGE_SIZE = 100

# Fields a transition may write. Financial figures and the order set are
# frozen at creation and deliberately absent.
TRANSITION_FIELDS = frozenset({
    "scheduled_for",
    "payment_reference",
    "payment_method",
    "bank_account_id",
    "bank_account_snapshot",
    "failure_reason",
    "processing_started_at",
    "completed_at",
    "failed_at",
})

StatusFilter = Union[None, str, PayoutStatus, Iterable[Union[str, PayoutStatus]]]


@dataclass
class EarningsSummary:
    """Per-producer settlement totals, in cents."""

    producer_id: str
    in_flight_net_cents: int = 0
    completed_net_cents: int = 0
    failed_net_cents: int = 0
    commission_paid_cents: int = 0
    payout_count: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _normalize_statuses(status: StatusFilter) -> list[str]:
    if status is None:
        return []
    if isinstance(status, (str, PayoutStatus)):
        status = [status]
    try:
        return [PayoutStatus(s).value for s in status]
    except ValueError as e:
        raise ValidationError(f"Unknown payout status filter: {status}") from e


def check_invariants(payout: Payout) -> None:
    """Raise ValueError if a payout's figures disagree with the commission formula."""
    if payout.commission_cents + payout.net_amount_cents != payout.gross_amount_cents:
        raise ValueError(f"Invariant violation: commission + net != gross for payout {payout.id}")

    expected = compute_commission(payout.gross_amount_cents, payout.commission_rate)
    if expected.commission_cents != payout.commission_cents:
        raise ValueError(f"Invariant violation: commission drifted from formula for payout {payout.id}")

    order_total = sum(item.amount_cents for item in payout.orders)
    if order_total != payout.gross_amount_cents:
        raise ValueError(f"Invariant violation: sum(orders) != gross for payout {payout.id}")


class PayoutLedger:
    """Persistence and invariants for payout batches, bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ─── Reads ────────────────────────────────────────────────────────

    async def get(self, payout_id: str) -> Payout:
        """Load a payout fresh from the database, discarding any cached copy."""
        result = await self.session.execute(
            select(Payout)
            .where(Payout.id == payout_id)
            .execution_options(populate_existing=True)
        )
        payout = result.scalar_one_or_none()
        if payout is None:
            raise NotFound(f"Payout not found: {payout_id}", payout_id=payout_id)
        return payout

    async def list_payouts(
        self,
        producer_id: Optional[str] = None,
        status: StatusFilter = None,
    ) -> list[Payout]:
        stmt = select(Payout)
        if producer_id:
            stmt = stmt.where(Payout.producer_id == producer_id)
        statuses = _normalize_statuses(status)
        if statuses:
            stmt = stmt.where(Payout.status.in_(statuses))

        stmt = stmt.order_by(Payout.created_at.desc()).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_due(self, as_of: Optional[datetime] = None) -> list[Payout]:
        """Scheduled payouts whose settlement date has arrived."""
        cutoff = as_utc(as_of) if as_of else _utcnow()
        result = await self.session.execute(
            select(Payout)
            .where(
                Payout.status == PayoutStatus.SCHEDULED.value,
                Payout.scheduled_for <= cutoff,
            )
            .order_by(Payout.scheduled_for.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def producer_history(
        self,
        producer_id: str,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Payout], int]:
        """One page of a producer's payouts, newest first, plus the total count."""
        if page < 1:
            raise ValidationError(f"Page must be >= 1: {page}")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}: {limit}")

        total = await self.session.scalar(
            select(func.count()).select_from(Payout).where(Payout.producer_id == producer_id)
        )
        result = await self.session.execute(
            select(Payout)
            .where(Payout.producer_id == producer_id)
            .order_by(Payout.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all()), total or 0

    async def earnings_summary(self, producer_id: str) -> EarningsSummary:
        result = await self.session.execute(
            select(
                Payout.status,
                func.coalesce(func.sum(Payout.net_amount_cents), 0),
                func.coalesce(func.sum(Payout.commission_cents), 0),
                func.count(),
            )
            .where(Payout.producer_id == producer_id)
            .group_by(Payout.status)
        )

        summary = EarningsSummary(producer_id=producer_id)
        in_flight = {s.value for s in IN_FLIGHT_STATUSES}
        for status, net, commission, count in result.all():
            summary.payout_count += count
            if status in in_flight:
                summary.in_flight_net_cents += net
            elif status == PayoutStatus.COMPLETED.value:
                summary.completed_net_cents += net
                summary.commission_paid_cents += commission
            elif status == PayoutStatus.FAILED.value:
                summary.failed_net_cents += net
        return summary

    async def held_order_ids(self, order_ids: Iterable[str]) -> set[str]:
        """Order ids currently held by a payout that has not failed."""
        ids = list(order_ids)
        if not ids:
            return set()
        result = await self.session.execute(
            select(PayoutOrder.order_id).where(
                PayoutOrder.order_id.in_(ids),
                PayoutOrder.released_at.is_(None),
            )
        )
        return set(result.scalars().all())

    async def available_orders(self, feed: Sequence[OrderFeedItem]) -> list[OrderFeedItem]:
        """Filter a feed down to orders in the unsettled pool."""
        held = await self.held_order_ids(o.order_id for o in feed)
        return [o for o in feed if o.order_id not in held]

    # ─── Writes ───────────────────────────────────────────────────────

    async def create_payout(
        self,
        producer_id: str,
        orders: Sequence[OrderFeedItem],
        commission_rate: float,
        currency: str = "ETB",
    ) -> Payout:
        """
        Aggregate orders into a new PENDING payout.

        Every order must pass the eligibility checks; a single bad entry
        rejects the whole batch rather than silently dropping it.

        Raises:
            ValidationError: Empty batch, bad rate, or an ineligible order.
        """
        if not producer_id:
            raise ValidationError("Producer id is required")
        orders = list(orders)
        if not orders:
            raise ValidationError("A payout needs at least one order")

        held = await self.held_order_ids(o.order_id for o in orders if o.order_id)
        seen: set[str] = set()
        items: list[PayoutOrder] = []

        for position, order in enumerate(orders):
            result = check_order_eligibility(order, producer_id, seen, held)
            if not result.eligible:
                raise ValidationError(
                    result.message,
                    order_id=order.order_id,
                    skip_reason=result.skip_reason.value if result.skip_reason else None,
                )
            seen.add(order.order_id)
            items.append(PayoutOrder(
                order_id=order.order_id,
                order_date=order.order_date,
                amount_cents=to_cents(order.amount),
                position=position,
            ))

        breakdown = compute_commission(sum(i.amount_cents for i in items), commission_rate)
        payout = Payout(
            producer_id=producer_id,
            gross_amount_cents=breakdown.gross_cents,
            commission_rate=breakdown.rate,
            commission_cents=breakdown.commission_cents,
            net_amount_cents=breakdown.net_cents,
            currency=currency,
            status=PayoutStatus.PENDING.value,
            orders=items,
        )
        self.session.add(payout)
        await self.session.flush()
        check_invariants(payout)

        logger.info(
            "Payout %s created for producer %s: %d orders, gross=%d commission=%d net=%d",
            payout.id,
            producer_id,
            len(items),
            payout.gross_amount_cents,
            payout.commission_cents,
            payout.net_amount_cents,
        )
        return payout

    def release_orders(self, payout: Payout) -> int:
        """
        Return a payout's orders to the unsettled pool.

        Only stages the change; it is written by the apply_transition flush
        that moves the payout to FAILED, so both land together.
        """
        now = _utcnow()
        released = 0
        for item in payout.orders:
            if item.released_at is None:
                item.released_at = now
                released += 1
        return released

    async def apply_transition(self, payout: Payout, new_status: PayoutStatus, **changes) -> Payout:
        """
        Write a status change and its accompanying fields atomically.

        Raises:
            InvalidTransition: The payout is already terminal.
            ConcurrencyConflict: Another writer updated the payout first.
        """
        unknown = set(changes) - TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be written by a transition: {sorted(unknown)}")

        current = PayoutStatus(payout.status)
        if current in TERMINAL_STATUSES:
            raise InvalidTransition(current.value, PayoutStatus(new_status).value)

        for field, value in changes.items():
            setattr(payout, field, value)
        payout.status = PayoutStatus(new_status).value

        # A failed flush expires the instance; keep the id readable for the error
        payout_id = payout.id
        try:
            await self.session.flush()
        except StaleDataError as e:
            raise ConcurrencyConflict(
                f"Payout {payout_id} was modified concurrently",
                payout_id=payout_id,
            ) from e

        check_invariants(payout)
        logger.info("Payout %s: %s -> %s", payout.id, current.value, payout.status)
        return payout
