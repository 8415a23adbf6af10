"""
Per-producer views.

GET /producers/{producer_id}/payouts        — Paginated payout history.
GET /producers/{producer_id}/earnings       — Settlement totals.
GET /producers/{producer_id}/bank-accounts  — Registered accounts.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from settlement.api.bank_accounts import BankAccountDetail, account_to_detail
from settlement.api.deps import get_service, unwrap
from settlement.api.payouts import PayoutDetail, payout_to_detail
from settlement.engine.commission import to_amount
from settlement.engine.settlement import SettlementService

router = APIRouter(prefix="/producers", tags=["producers"])


class PayoutHistory(BaseModel):
    payouts: list[PayoutDetail]
    page: int
    limit: int
    total_count: int
    total_pages: int


class Earnings(BaseModel):
    producer_id: str
    in_flight: float
    completed: float
    failed: float
    commission_paid: float
    payout_count: int


@router.get("/{producer_id}/payouts", response_model=PayoutHistory)
async def producer_payouts(
    producer_id: str,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: SettlementService = Depends(get_service),
):
    """A producer's payout history, newest first."""
    result = unwrap(await service.producer_payouts(producer_id, page=page, limit=limit))
    return PayoutHistory(
        payouts=[payout_to_detail(p) for p in result.payouts],
        page=result.page,
        limit=result.limit,
        total_count=result.total,
        total_pages=result.total_pages,
    )


@router.get("/{producer_id}/earnings", response_model=Earnings)
async def producer_earnings(producer_id: str, service: SettlementService = Depends(get_service)):
    """Net amounts in flight, completed and failed, plus commission taken on completed payouts."""
    summary = unwrap(await service.producer_earnings(producer_id))
    return Earnings(
        producer_id=summary.producer_id,
        in_flight=to_amount(summary.in_flight_net_cents),
        completed=to_amount(summary.completed_net_cents),
        failed=to_amount(summary.failed_net_cents),
        commission_paid=to_amount(summary.commission_paid_cents),
        payout_count=summary.payout_count,
    )


@router.get("/{producer_id}/bank-accounts", response_model=list[BankAccountDetail])
async def producer_bank_accounts(
    producer_id: str,
    include_unverified: bool = Query(True),
    service: SettlementService = Depends(get_service),
):
    """Primary account first, then newest first."""
    accounts = unwrap(await service.list_bank_accounts(producer_id, include_unverified=include_unverified))
    return [account_to_detail(a) for a in accounts]
