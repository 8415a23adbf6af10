"""
Payout query, trace and lifecycle endpoints.

GET  /payouts                 — List payouts (filter by producer, status).
GET  /payouts/due             — Scheduled payouts whose date has arrived.
GET  /payouts/{id}            — Get a single payout with its orders.
GET  /payouts/{id}/trace      — Full audit trail for a payout.
POST /payouts                 — Aggregate orders into a new PENDING payout.
POST /payouts/{id}/schedule   — PENDING -> SCHEDULED.
POST /payouts/{id}/process    — SCHEDULED -> PROCESSING.
POST /payouts/{id}/complete   — SCHEDULED/PROCESSING -> COMPLETED.
POST /payouts/{id}/fail       — SCHEDULED/PROCESSING -> FAILED.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from settlement.api.deps import get_service, unwrap
from settlement.engine.commission import to_amount
from settlement.engine.eligibility import OrderFeedItem
from settlement.engine.settlement import SettlementService
from settlement.models.enums import PayoutStatus
from settlement.models.payout import Payout

router = APIRouter(prefix="/payouts", tags=["payouts"])


class OrderLine(BaseModel):
    order_id: str
    order_date: Optional[str]
    amount: float
    released: bool


class PayoutDetail(BaseModel):
    id: str
    producer_id: str
    gross_amount: float
    commission_rate: float
    commission: float
    net_amount: float
    currency: str
    status: str
    scheduled_for: Optional[str]
    payment_reference: Optional[str]
    payment_method: Optional[str]
    bank_account_id: Optional[str]
    bank_account_snapshot: Optional[dict]
    failure_reason: Optional[str]
    orders: list[OrderLine]
    processing_started_at: Optional[str]
    completed_at: Optional[str]
    failed_at: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]
    version: int

    model_config = {"from_attributes": True}


class AuditEntry(BaseModel):
    id: int
    action: str
    actor: Optional[str] = None
    details: Optional[dict] = None
    timestamp: Optional[str]


class PayoutTraceResponse(BaseModel):
    payout: PayoutDetail
    audit_trail: list[AuditEntry]


class OrderIn(BaseModel):
    order_id: str
    amount: Decimal
    order_date: Optional[date] = None
    producer_id: Optional[str] = None  # Defaults to the batch's producer


class CreatePayoutRequest(BaseModel):
    producer_id: str
    orders: list[OrderIn]
    actor: Optional[str] = None


class ScheduleRequest(BaseModel):
    scheduled_for: Optional[datetime] = None
    actor: Optional[str] = None


class ActorRequest(BaseModel):
    actor: Optional[str] = None


class CompleteRequest(BaseModel):
    bank_account_id: Optional[str] = None
    payment_reference: str = ""
    payment_method: Optional[str] = None
    actor: Optional[str] = None


class FailRequest(BaseModel):
    reason: str = ""
    actor: Optional[str] = None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def payout_to_detail(p: Payout) -> PayoutDetail:
    return PayoutDetail(
        id=p.id,
        producer_id=p.producer_id,
        gross_amount=to_amount(p.gross_amount_cents),
        commission_rate=p.commission_rate,
        commission=to_amount(p.commission_cents),
        net_amount=to_amount(p.net_amount_cents),
        currency=p.currency,
        status=p.status,
        scheduled_for=_iso(p.scheduled_for),
        payment_reference=p.payment_reference,
        payment_method=p.payment_method,
        bank_account_id=p.bank_account_id,
        bank_account_snapshot=p.snapshot,
        failure_reason=p.failure_reason,
        orders=[
            OrderLine(
                order_id=item.order_id,
                order_date=_iso(item.order_date),
                amount=to_amount(item.amount_cents),
                released=item.released_at is not None,
            )
            for item in p.orders
        ],
        processing_started_at=_iso(p.processing_started_at),
        completed_at=_iso(p.completed_at),
        failed_at=_iso(p.failed_at),
        created_at=_iso(p.created_at),
        updated_at=_iso(p.updated_at),
        version=p.version,
    )


@router.get("", response_model=list[PayoutDetail])
async def list_payouts(
    producer_id: Optional[str] = Query(None, description="Filter by producer"),
    status: Optional[list[PayoutStatus]] = Query(None, description="Filter by status (repeatable)"),
    service: SettlementService = Depends(get_service),
):
    """List payouts with optional filters, newest first."""
    payouts = unwrap(await service.list_payouts(producer_id=producer_id, status=status))
    return [payout_to_detail(p) for p in payouts]


@router.get("/due", response_model=list[PayoutDetail])
async def list_due_payouts(
    as_of: Optional[datetime] = Query(None, description="Cutoff; defaults to now"),
    service: SettlementService = Depends(get_service),
):
    """Scheduled payouts whose settlement date is on or before the cutoff."""
    payouts = unwrap(await service.list_due_payouts(as_of))
    return [payout_to_detail(p) for p in payouts]


@router.post("", response_model=PayoutDetail, status_code=201)
async def create_payout(body: CreatePayoutRequest, service: SettlementService = Depends(get_service)):
    """
    Aggregate a feed of unsettled orders into a new PENDING payout.

    The whole batch is rejected if any order is ineligible (already held
    by another payout, wrong producer, non-positive amount, duplicated).
    """
    orders = [
        OrderFeedItem(
            order_id=o.order_id,
            producer_id=o.producer_id or body.producer_id,
            amount=o.amount,
            order_date=o.order_date,
        )
        for o in body.orders
    ]
    payout = unwrap(await service.create_payout(body.producer_id, orders, actor=body.actor))
    return payout_to_detail(payout)


@router.get("/{payout_id}", response_model=PayoutDetail)
async def get_payout(payout_id: str, service: SettlementService = Depends(get_service)):
    """Get a single payout with full details."""
    return payout_to_detail(unwrap(await service.get_payout(payout_id)))


@router.get("/{payout_id}/trace", response_model=PayoutTraceResponse)
async def get_payout_trace(payout_id: str, service: SettlementService = Depends(get_service)):
    """
    Full audit trail for a payout.

    Returns the payout details plus every audit log entry, ordered
    chronologically.
    """
    trace = unwrap(await service.payout_trace(payout_id))

    audit_trail = []
    for log in trace.audit_trail:
        details = None
        if log.details:
            try:
                details = json.loads(log.details)
            except (json.JSONDecodeError, TypeError):
                details = {"raw": log.details}

        audit_trail.append(AuditEntry(
            id=log.id,
            action=log.action,
            actor=log.actor,
            details=details,
            timestamp=_iso(log.timestamp),
        ))

    return PayoutTraceResponse(payout=payout_to_detail(trace.payout), audit_trail=audit_trail)


@router.post("/{payout_id}/schedule", response_model=PayoutDetail)
async def schedule_payout(
    payout_id: str,
    body: Optional[ScheduleRequest] = None,
    service: SettlementService = Depends(get_service),
):
    """Schedule a pending payout; defaults to the next weekly payout slot."""
    body = body or ScheduleRequest()
    payout = unwrap(await service.schedule(payout_id, body.scheduled_for, actor=body.actor))
    return payout_to_detail(payout)


@router.post("/{payout_id}/process", response_model=PayoutDetail)
async def process_payout(
    payout_id: str,
    body: Optional[ActorRequest] = None,
    service: SettlementService = Depends(get_service),
):
    """Mark a scheduled payout as processing."""
    body = body or ActorRequest()
    payout = unwrap(await service.mark_processing(payout_id, actor=body.actor))
    return payout_to_detail(payout)


@router.post("/{payout_id}/complete", response_model=PayoutDetail)
async def complete_payout(
    payout_id: str,
    body: CompleteRequest,
    service: SettlementService = Depends(get_service),
):
    """Record the disbursement of a payout into a verified bank account."""
    payout = unwrap(await service.complete(
        payout_id,
        body.bank_account_id,
        body.payment_reference,
        payment_method=body.payment_method,
        actor=body.actor,
    ))
    return payout_to_detail(payout)


@router.post("/{payout_id}/fail", response_model=PayoutDetail)
async def fail_payout(
    payout_id: str,
    body: FailRequest,
    service: SettlementService = Depends(get_service),
):
    """Mark a payout failed and release its orders for a future batch."""
    payout = unwrap(await service.fail(payout_id, body.reason, actor=body.actor))
    return payout_to_detail(payout)
