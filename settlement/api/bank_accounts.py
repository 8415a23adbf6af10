"""
Bank account registration and verification endpoints.

POST /bank-accounts                   — Register an account (pending verification).
GET  /bank-accounts/{id}              — Get a single account.
POST /bank-accounts/{id}/verify       — Verify (idempotent).
POST /bank-accounts/{id}/reject       — Reject with a reason.
POST /bank-accounts/{id}/resubmit     — Return a rejected account to pending.
POST /bank-accounts/{id}/set-primary  — Make the producer's primary account.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from settlement.api.deps import get_service, unwrap
from settlement.engine.settlement import SettlementService
from settlement.models.bank_account import BankAccount

router = APIRouter(prefix="/bank-accounts", tags=["bank-accounts"])


class BankAccountDetail(BaseModel):
    id: str
    producer_id: str
    bank_name: str
    account_name: str
    account_number: str
    account_type: str
    branch_name: Optional[str]
    swift_code: Optional[str]
    is_primary: bool
    is_verified: bool
    verification_status: str
    rejection_reason: Optional[str]
    verified_at: Optional[str]
    verified_by: Optional[str]
    rejected_at: Optional[str]
    rejected_by: Optional[str]
    last_disbursed_at: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]


class RegisterRequest(BaseModel):
    producer_id: str
    bank_name: str = ""
    account_name: str = ""
    account_number: str = ""
    account_type: Optional[str] = None
    branch_name: Optional[str] = None
    swift_code: Optional[str] = None
    is_primary: bool = False
    actor: Optional[str] = None


class VerifyRequest(BaseModel):
    actor: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str = ""
    actor: Optional[str] = None


class ResubmitRequest(BaseModel):
    bank_name: Optional[str] = None
    account_name: Optional[str] = None
    account_number: Optional[str] = None
    account_type: Optional[str] = None
    branch_name: Optional[str] = None
    swift_code: Optional[str] = None
    actor: Optional[str] = None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def account_to_detail(a: BankAccount) -> BankAccountDetail:
    return BankAccountDetail(
        id=a.id,
        producer_id=a.producer_id,
        bank_name=a.bank_name,
        account_name=a.account_name,
        account_number=a.account_number,
        account_type=a.account_type,
        branch_name=a.branch_name,
        swift_code=a.swift_code,
        is_primary=bool(a.is_primary),
        is_verified=bool(a.is_verified),
        verification_status=a.verification_status.value,
        rejection_reason=a.rejection_reason,
        verified_at=_iso(a.verified_at),
        verified_by=a.verified_by,
        rejected_at=_iso(a.rejected_at),
        rejected_by=a.rejected_by,
        last_disbursed_at=_iso(a.last_disbursed_at),
        created_at=_iso(a.created_at),
        updated_at=_iso(a.updated_at),
    )


@router.post("", response_model=BankAccountDetail, status_code=201)
async def register_bank_account(body: RegisterRequest, service: SettlementService = Depends(get_service)):
    """Record a producer-submitted account; it starts unverified."""
    account = unwrap(await service.register_bank_account(
        body.producer_id,
        body.bank_name,
        body.account_name,
        body.account_number,
        account_type=body.account_type,
        branch_name=body.branch_name,
        swift_code=body.swift_code,
        is_primary=body.is_primary,
        actor=body.actor,
    ))
    return account_to_detail(account)


@router.get("/{account_id}", response_model=BankAccountDetail)
async def get_bank_account(account_id: str, service: SettlementService = Depends(get_service)):
    return account_to_detail(unwrap(await service.get_bank_account(account_id)))


@router.post("/{account_id}/verify", response_model=BankAccountDetail)
async def verify_bank_account(
    account_id: str,
    body: Optional[VerifyRequest] = None,
    service: SettlementService = Depends(get_service),
):
    body = body or VerifyRequest()
    account = unwrap(await service.verify_bank_account(account_id, actor=body.actor))
    return account_to_detail(account)


@router.post("/{account_id}/reject", response_model=BankAccountDetail)
async def reject_bank_account(
    account_id: str,
    body: RejectRequest,
    service: SettlementService = Depends(get_service),
):
    account = unwrap(await service.reject_bank_account(account_id, body.reason, actor=body.actor))
    return account_to_detail(account)


@router.post("/{account_id}/resubmit", response_model=BankAccountDetail)
async def resubmit_bank_account(
    account_id: str,
    body: Optional[ResubmitRequest] = None,
    service: SettlementService = Depends(get_service),
):
    """Send a rejected account back for verification, optionally with corrected details."""
    body = body or ResubmitRequest()
    corrections = body.model_dump(exclude={"actor"}, exclude_none=True)
    account = unwrap(await service.resubmit_bank_account(account_id, actor=body.actor, **corrections))
    return account_to_detail(account)


@router.post("/{account_id}/set-primary", response_model=BankAccountDetail)
async def set_primary_bank_account(
    account_id: str,
    body: Optional[VerifyRequest] = None,
    service: SettlementService = Depends(get_service),
):
    body = body or VerifyRequest()
    account = unwrap(await service.set_primary_bank_account(account_id, actor=body.actor))
    return account_to_detail(account)
