"""
Bank account registry.

Owns producer disbursement accounts and their verification state:

    PENDING --verify--> VERIFIED
    PENDING --reject--> REJECTED
    VERIFIED --reject--> REJECTED      (revocation)
    REJECTED --resubmit--> PENDING

Re-verifying a verified account is a no-op. Only a verified account owned
by the payout's producer may receive money; require_disbursable is the
check the settlement service runs before completing a payout.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from settlement.engine.errors import ConcurrencyConflict, InvalidTransition, NotFound, ValidationError
from settlement.models.bank_account import BankAccount
from settlement.models.enums import AccountType, VerificationStatus

logger = logging.getLogger("settlement.bank_registry")

CORRECTABLE_FIELDS = frozenset({
    "bank_name",
    "account_name",
    "account_number",
    "account_type",
    "branch_name",
    "swift_code",
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _account_type(value) -> str:
    try:
        return AccountType(value or AccountType.SAVINGS).value
    except ValueError as e:
        raise ValidationError(f"Unknown account type: {value}") from e


class BankAccountRegistry:
    """Producer bank accounts and their verification lifecycle, bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, account_id: str) -> BankAccount:
        result = await self.session.execute(
            select(BankAccount)
            .where(BankAccount.id == account_id)
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise NotFound(f"Bank account not found: {account_id}", bank_account_id=account_id)
        return account

    async def list_for_producer(self, producer_id: str, include_unverified: bool = True) -> list[BankAccount]:
        """Primary account first, then newest first."""
        stmt = select(BankAccount).where(BankAccount.producer_id == producer_id)
        if not include_unverified:
            stmt = stmt.where(BankAccount.is_verified.is_(True))
        stmt = stmt.order_by(BankAccount.is_primary.desc(), BankAccount.created_at.desc())
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def register(
        self,
        producer_id: str,
        bank_name: str,
        account_name: str,
        account_number: str,
        account_type: Optional[str] = None,
        branch_name: Optional[str] = None,
        swift_code: Optional[str] = None,
        is_primary: bool = False,
    ) -> BankAccount:
        """Record a producer-submitted account as pending verification."""
        if not producer_id:
            raise ValidationError("Producer id is required")
        if not (bank_name or "").strip() or not (account_name or "").strip() or not (account_number or "").strip():
            raise ValidationError("Bank name, account number, and account name are required")

        if is_primary:
            await self._clear_primary(producer_id)

        account = BankAccount(
            producer_id=producer_id,
            bank_name=bank_name.strip(),
            account_name=account_name.strip(),
            account_number=account_number.strip(),
            account_type=_account_type(account_type),
            branch_name=branch_name or None,
            swift_code=swift_code or None,
            is_primary=bool(is_primary),
            is_verified=False,
        )
        self.session.add(account)
        await self._write(account)
        logger.info("Bank account %s registered for producer %s", account.id, producer_id)
        return account

    async def verify(self, account_id: str, verified_by: Optional[str] = None) -> BankAccount:
        """
        Mark an account verified.

        Raises:
            NotFound: Unknown account.
            InvalidTransition: The account was rejected and not resubmitted.
        """
        account = await self.get(account_id)
        status = account.verification_status

        if status == VerificationStatus.VERIFIED:
            return account
        if status == VerificationStatus.REJECTED:
            raise InvalidTransition(
                status.value,
                VerificationStatus.VERIFIED.value,
                message=f"Bank account {account_id} was rejected; it must be resubmitted before verification",
            )

        account.is_verified = True
        account.verified_at = _utcnow()
        account.verified_by = verified_by
        await self._write(account)
        logger.info("Bank account %s verified by %s", account_id, verified_by or "-")
        return account

    async def reject(self, account_id: str, reason: str, rejected_by: Optional[str] = None) -> BankAccount:
        """
        Mark an account rejected; a verified account loses its verification.

        Raises:
            ValidationError: Empty reason.
            NotFound: Unknown account.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Rejection reason is required")

        account = await self.get(account_id)
        account.is_verified = False
        account.verified_at = None
        account.verified_by = None
        account.rejection_reason = reason
        account.rejected_at = _utcnow()
        account.rejected_by = rejected_by
        await self._write(account)
        logger.info("Bank account %s rejected by %s: %s", account_id, rejected_by or "-", reason)
        return account

    async def resubmit(self, account_id: str, **corrections) -> BankAccount:
        """
        Put a rejected account back into the pending queue, optionally corrected.

        Raises:
            InvalidTransition: The account is not currently rejected.
            ValidationError: A correction targets a field producers cannot edit.
        """
        unknown = set(corrections) - CORRECTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be corrected on resubmission: {sorted(unknown)}")

        account = await self.get(account_id)
        status = account.verification_status
        if status != VerificationStatus.REJECTED:
            raise InvalidTransition(status.value, VerificationStatus.PENDING.value)

        for field, value in corrections.items():
            if value is None:
                continue
            if field == "account_type":
                value = _account_type(value)
            elif field in ("bank_name", "account_name", "account_number"):
                value = value.strip()
                if not value:
                    raise ValidationError(f"{field} cannot be empty")
            setattr(account, field, value)

        account.rejection_reason = None
        account.rejected_at = None
        account.rejected_by = None
        await self._write(account)
        logger.info("Bank account %s resubmitted for verification", account_id)
        return account

    async def set_primary(self, account_id: str) -> BankAccount:
        account = await self.get(account_id)
        if account.is_primary:
            return account
        await self._clear_primary(account.producer_id)
        account.is_primary = True
        await self._write(account)
        return account

    async def select_disbursement_account(self, producer_id: str) -> Optional[BankAccount]:
        """
        Auto-selection policy: the verified primary account, else the oldest
        verified account, else None.
        """
        result = await self.session.execute(
            select(BankAccount)
            .where(BankAccount.producer_id == producer_id, BankAccount.is_verified.is_(True))
            .order_by(BankAccount.created_at.asc())
            .execution_options(populate_existing=True)
        )
        verified = list(result.scalars().all())
        primary = next((a for a in verified if a.is_primary), None)
        return primary or (verified[0] if verified else None)

    async def require_disbursable(self, account_id: str, producer_id: str) -> BankAccount:
        """
        Resolve the account a payout will be paid into.

        Raises:
            NotFound: Unknown account.
            ValidationError: Account belongs to another producer or is not verified.
        """
        account = await self.get(account_id)
        if account.producer_id != producer_id:
            raise ValidationError(
                f"Bank account {account_id} does not belong to producer {producer_id}",
                bank_account_id=account_id,
            )
        if not account.is_verified:
            raise ValidationError(
                f"Bank account {account_id} is not verified ({account.verification_status.value})",
                bank_account_id=account_id,
            )
        return account

    async def mark_disbursed(self, account: BankAccount) -> BankAccount:
        """
        Stamp a disbursement on the account.

        The version-guarded write fails if the account was rejected or
        edited after it was loaded, so a payout is never bound to an
        account whose verification changed underneath it.
        """
        account.last_disbursed_at = _utcnow()
        await self._write(account)
        return account

    async def _clear_primary(self, producer_id: str) -> None:
        result = await self.session.execute(
            select(BankAccount).where(
                BankAccount.producer_id == producer_id,
                BankAccount.is_primary.is_(True),
            )
        )
        for other in result.scalars().all():
            other.is_primary = False
            # Written before the new primary so the one-primary index never sees two
            await self._write(other)

    async def _write(self, account: BankAccount) -> None:
        account_id = account.id
        try:
            await self.session.flush()
        except StaleDataError as e:
            raise ConcurrencyConflict(
                f"Bank account {account_id} was modified concurrently",
                bank_account_id=account_id,
            ) from e
