"""
Settlement service: the façade administrative callers talk to.

Each mutating operation follows the same flow:

  1. Re-read the records involved from the database
  2. Ask the state machine whether the transition is legal, passing in
     the preconditions this service has evaluated
  3. Write the change (and its audit entry) in one transaction
  4. Return a SettlementResult holding the updated record or a typed error

Failures of any kind roll the transaction back, so readers only ever see
the record before or after an operation, never in between. Version
columns on payouts and bank accounts turn a lost race into a
ConcurrencyConflict instead of a double write: two concurrent completes
of the same payout can never both succeed.

There is no background scheduler here. scheduled_for is informational;
every transition is driven by an explicit call.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from settlement.audit.logger import log_event
from settlement.config import settings
from settlement.engine.bank_registry import BankAccountRegistry
from settlement.engine.eligibility import OrderFeedItem
from settlement.engine.errors import (
    ConcurrencyConflict,
    SettlementError,
    SettlementResult,
    ValidationError,
)
from settlement.engine.ledger import EarningsSummary, PayoutLedger, StatusFilter, as_utc
from settlement.engine.state_machine import Precondition, resolve_transition
from settlement.models.bank_account import BankAccount
from settlement.models.enums import PaymentMethod, PayoutTransition
from settlement.models.payout import AuditLog, Payout

logger = logging.getLogger("settlement.service")

T = TypeVar("T")

PAYMENT_METHODS = {m.value for m in PaymentMethod}


@dataclass
class PayoutPage:
    payouts: list[Payout]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class PayoutTrace:
    payout: Payout
    audit_trail: list[AuditLog] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_payout_date(
    now: Optional[datetime] = None,
    weekday: Optional[int] = None,
    hour: Optional[int] = None,
) -> datetime:
    """
    The next weekly payout slot strictly after today (default: Friday 12:00 UTC).

    On the payout weekday itself the following week's slot is returned.
    """
    now = as_utc(now) if now else _utcnow()
    weekday = settings.payout_weekday if weekday is None else weekday
    hour = settings.payout_hour if hour is None else hour

    days_ahead = (weekday - now.weekday()) % 7 or 7
    target = now + timedelta(days=days_ahead)
    return target.replace(hour=hour, minute=0, second=0, microsecond=0)


def _mask(account_number: Optional[str]) -> str:
    return f"***{(account_number or '')[-4:]}"


class SettlementService:
    """Atomic, state-machine-guarded operations on payouts and bank accounts."""

    def __init__(
        self,
        session: AsyncSession,
        commission_rate: Optional[float] = None,
        currency: Optional[str] = None,
        default_payment_method: Optional[str] = None,
    ):
        self.session = session
        self.ledger = PayoutLedger(session)
        self.registry = BankAccountRegistry(session)
        self.commission_rate = settings.commission_rate if commission_rate is None else commission_rate
        self.currency = currency or settings.currency
        self.default_payment_method = default_payment_method or settings.default_payment_method

    # ─── Transaction boundary ─────────────────────────────────────────

    async def _execute(self, action: str, operation: Callable[[], Awaitable[T]]) -> SettlementResult[T]:
        """Run a mutating operation in one transaction and fold failures into a result."""
        try:
            value = await operation()
            await self.session.commit()
        except SettlementError as e:
            await self.session.rollback()
            logger.warning("%s rejected: [%s] %s", action, e.code, e.message)
            return SettlementResult(error=e)
        except (IntegrityError, StaleDataError) as e:
            await self.session.rollback()
            logger.warning("%s lost a race: %s", action, e)
            return SettlementResult(error=ConcurrencyConflict(f"{action} conflicted with a concurrent write"))
        except OperationalError as e:
            await self.session.rollback()
            if "locked" not in str(e.orig).lower():
                raise
            logger.warning("%s hit a locked database: %s", action, e.orig)
            return SettlementResult(error=ConcurrencyConflict(f"{action} could not acquire the database lock"))
        except Exception:
            await self.session.rollback()
            raise
        return SettlementResult(value=value)

    async def _read(self, operation: Callable[[], Awaitable[T]]) -> SettlementResult[T]:
        try:
            return SettlementResult(value=await operation())
        except SettlementError as e:
            return SettlementResult(error=e)

    # ─── Payout lifecycle ─────────────────────────────────────────────

    async def create_payout(
        self,
        producer_id: str,
        orders: Sequence[OrderFeedItem],
        actor: Optional[str] = None,
    ) -> SettlementResult[Payout]:
        """Aggregate unsettled orders into a new PENDING payout."""

        async def op() -> Payout:
            payout = await self.ledger.create_payout(producer_id, orders, self.commission_rate, self.currency)
            await log_event(self.session, "payout_created", payout_id=payout.id, actor=actor, details={
                "producer_id": producer_id,
                "order_ids": [item.order_id for item in payout.orders],
                "gross_amount_cents": payout.gross_amount_cents,
                "commission_rate": payout.commission_rate,
                "commission_cents": payout.commission_cents,
                "net_amount_cents": payout.net_amount_cents,
            })
            return payout

        return await self._execute("create_payout", op)

    async def schedule(
        self,
        payout_id: str,
        scheduled_for: Optional[datetime | date] = None,
        actor: Optional[str] = None,
    ) -> SettlementResult[Payout]:
        """PENDING -> SCHEDULED. Defaults to the next weekly payout slot."""

        async def op() -> Payout:
            payout = await self.ledger.get(payout_id)
            target, in_past = self._schedule_target(scheduled_for)
            new_status = resolve_transition(payout.status, PayoutTransition.SCHEDULE, [
                Precondition(
                    "scheduled_for_not_in_past",
                    not in_past,
                    f"Scheduled date is in the past: {target.isoformat()}",
                ),
            ])
            await self.ledger.apply_transition(payout, new_status, scheduled_for=target)
            await log_event(self.session, "payout_scheduled", payout_id=payout.id, actor=actor, details={
                "scheduled_for": target.isoformat(),
            })
            return payout

        return await self._execute("schedule", op)

    async def mark_processing(self, payout_id: str, actor: Optional[str] = None) -> SettlementResult[Payout]:
        """SCHEDULED -> PROCESSING."""

        async def op() -> Payout:
            payout = await self.ledger.get(payout_id)
            new_status = resolve_transition(payout.status, PayoutTransition.START_PROCESSING)
            await self.ledger.apply_transition(payout, new_status, processing_started_at=_utcnow())
            await log_event(self.session, "payout_processing", payout_id=payout.id, actor=actor)
            return payout

        return await self._execute("mark_processing", op)

    async def complete(
        self,
        payout_id: str,
        bank_account_id: Optional[str],
        payment_reference: str,
        payment_method: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> SettlementResult[Payout]:
        """
        SCHEDULED/PROCESSING -> COMPLETED. The money-bearing transition.

        The payment reference, method, bank account id, account snapshot and
        completion time are written in the same version-guarded UPDATE as
        the status, and the account itself is version-stamped in the same
        transaction. When bank_account_id is None the registry's
        auto-selection policy picks the account.
        """

        async def op() -> Payout:
            payout = await self.ledger.get(payout_id)
            reference = (payment_reference or "").strip()
            method = (payment_method or self.default_payment_method).strip().upper()

            new_status = resolve_transition(payout.status, PayoutTransition.COMPLETE, [
                Precondition("payment_reference", bool(reference), "Payment reference is required"),
                Precondition("payment_method", method in PAYMENT_METHODS, f"Unknown payment method: {method}"),
            ])
            account = await self._disbursement_account(payout, bank_account_id)

            await self.registry.mark_disbursed(account)
            await self.ledger.apply_transition(
                payout,
                new_status,
                payment_reference=reference,
                payment_method=method,
                bank_account_id=account.id,
                bank_account_snapshot=json.dumps(account.snapshot()),
                completed_at=_utcnow(),
            )
            await log_event(
                self.session,
                "payout_completed",
                payout_id=payout.id,
                bank_account_id=account.id,
                actor=actor,
                details={
                    "payment_reference": reference,
                    "payment_method": method,
                    "net_amount_cents": payout.net_amount_cents,
                    "bank_name": account.bank_name,
                    "account_number": _mask(account.account_number),
                },
            )
            return payout

        return await self._execute("complete", op)

    async def fail(self, payout_id: str, reason: str, actor: Optional[str] = None) -> SettlementResult[Payout]:
        """SCHEDULED/PROCESSING -> FAILED, releasing the orders for a future batch."""

        async def op() -> Payout:
            payout = await self.ledger.get(payout_id)
            cleaned = (reason or "").strip()
            new_status = resolve_transition(payout.status, PayoutTransition.FAIL, [
                Precondition("failure_reason", bool(cleaned), "Failure reason is required"),
            ])
            released = self.ledger.release_orders(payout)
            await self.ledger.apply_transition(payout, new_status, failure_reason=cleaned, failed_at=_utcnow())
            await log_event(self.session, "payout_failed", payout_id=payout.id, actor=actor, details={
                "reason": cleaned,
                "released_orders": released,
            })
            return payout

        return await self._execute("fail", op)

    # ─── Bank accounts ────────────────────────────────────────────────

    async def register_bank_account(
        self,
        producer_id: str,
        bank_name: str,
        account_name: str,
        account_number: str,
        account_type: Optional[str] = None,
        branch_name: Optional[str] = None,
        swift_code: Optional[str] = None,
        is_primary: bool = False,
        actor: Optional[str] = None,
    ) -> SettlementResult[BankAccount]:

        async def op() -> BankAccount:
            account = await self.registry.register(
                producer_id,
                bank_name,
                account_name,
                account_number,
                account_type=account_type,
                branch_name=branch_name,
                swift_code=swift_code,
                is_primary=is_primary,
            )
            await log_event(self.session, "bank_account_registered", bank_account_id=account.id, actor=actor, details={
                "producer_id": producer_id,
                "bank_name": account.bank_name,
                "account_number": _mask(account.account_number),
                "is_primary": account.is_primary,
            })
            return account

        return await self._execute("register_bank_account", op)

    async def verify_bank_account(self, account_id: str, actor: Optional[str] = None) -> SettlementResult[BankAccount]:
        """Verify an account; verifying an already verified account is a no-op success."""

        async def op() -> BankAccount:
            already_verified = (await self.registry.get(account_id)).is_verified
            account = await self.registry.verify(account_id, verified_by=actor)
            if not already_verified:
                await log_event(self.session, "bank_account_verified", bank_account_id=account.id, actor=actor)
            return account

        return await self._execute("verify_bank_account", op)

    async def reject_bank_account(
        self,
        account_id: str,
        reason: str,
        actor: Optional[str] = None,
    ) -> SettlementResult[BankAccount]:

        async def op() -> BankAccount:
            account = await self.registry.reject(account_id, reason, rejected_by=actor)
            await log_event(self.session, "bank_account_rejected", bank_account_id=account.id, actor=actor, details={
                "reason": account.rejection_reason,
            })
            return account

        return await self._execute("reject_bank_account", op)

    async def resubmit_bank_account(
        self,
        account_id: str,
        actor: Optional[str] = None,
        **corrections,
    ) -> SettlementResult[BankAccount]:
        """Move a rejected account back to pending, applying any corrected details."""

        async def op() -> BankAccount:
            account = await self.registry.resubmit(account_id, **corrections)
            await log_event(self.session, "bank_account_resubmitted", bank_account_id=account.id, actor=actor, details={
                "corrected_fields": sorted(k for k, v in corrections.items() if v is not None),
            })
            return account

        return await self._execute("resubmit_bank_account", op)

    async def set_primary_bank_account(self, account_id: str, actor: Optional[str] = None) -> SettlementResult[BankAccount]:

        async def op() -> BankAccount:
            account = await self.registry.set_primary(account_id)
            await log_event(self.session, "bank_account_primary_set", bank_account_id=account.id, actor=actor)
            return account

        return await self._execute("set_primary_bank_account", op)

    # ─── Reads ────────────────────────────────────────────────────────

    async def get_payout(self, payout_id: str) -> SettlementResult[Payout]:
        return await self._read(lambda: self.ledger.get(payout_id))

    async def list_payouts(
        self,
        producer_id: Optional[str] = None,
        status: StatusFilter = None,
    ) -> SettlementResult[list[Payout]]:
        return await self._read(lambda: self.ledger.list_payouts(producer_id=producer_id, status=status))

    async def list_due_payouts(self, as_of: Optional[datetime] = None) -> SettlementResult[list[Payout]]:
        return await self._read(lambda: self.ledger.list_due(as_of))

    async def producer_payouts(
        self,
        producer_id: str,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> SettlementResult[PayoutPage]:
        limit = settings.default_page_size if limit is None else limit

        async def op() -> PayoutPage:
            payouts, total = await self.ledger.producer_history(producer_id, page=page, limit=limit)
            return PayoutPage(payouts=payouts, page=page, limit=limit, total=total)

        return await self._read(op)

    async def producer_earnings(self, producer_id: str) -> SettlementResult[EarningsSummary]:
        return await self._read(lambda: self.ledger.earnings_summary(producer_id))

    async def available_orders(self, feed: Sequence[OrderFeedItem]) -> SettlementResult[list[OrderFeedItem]]:
        return await self._read(lambda: self.ledger.available_orders(feed))

    async def get_bank_account(self, account_id: str) -> SettlementResult[BankAccount]:
        return await self._read(lambda: self.registry.get(account_id))

    async def list_bank_accounts(
        self,
        producer_id: str,
        include_unverified: bool = True,
    ) -> SettlementResult[list[BankAccount]]:
        return await self._read(lambda: self.registry.list_for_producer(producer_id, include_unverified))

    async def payout_trace(self, payout_id: str) -> SettlementResult[PayoutTrace]:
        """A payout with its audit trail, oldest entry first."""

        async def op() -> PayoutTrace:
            payout = await self.ledger.get(payout_id)
            result = await self.session.execute(
                select(AuditLog)
                .where(AuditLog.payout_id == payout_id)
                .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
            )
            return PayoutTrace(payout=payout, audit_trail=list(result.scalars().all()))

        return await self._read(op)

    # ─── Helpers ──────────────────────────────────────────────────────

    def _schedule_target(self, value: Optional[datetime | date]) -> tuple[datetime, bool]:
        """Resolve the requested settlement date and whether it lies in the past."""
        now = _utcnow()
        if value is None:
            return next_payout_date(now), False
        if isinstance(value, datetime):
            target = as_utc(value)
            return target, target < now
        if isinstance(value, date):
            target = datetime.combine(value, time(hour=settings.payout_hour), tzinfo=timezone.utc)
            return target, target < now
        raise ValidationError(f"Invalid scheduled date: {value!r}")

    async def _disbursement_account(self, payout: Payout, bank_account_id: Optional[str]) -> BankAccount:
        if bank_account_id:
            return await self.registry.require_disbursable(bank_account_id, payout.producer_id)

        account = await self.registry.select_disbursement_account(payout.producer_id)
        if account is None:
            raise ValidationError(
                f"Producer {payout.producer_id} has no verified bank account",
                producer_id=payout.producer_id,
            )
        return account
