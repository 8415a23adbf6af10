"""SQLAlchemy model for producer bank accounts."""

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text, text

from settlement.models.enums import AccountType, VerificationStatus
from settlement.models.payout import Base, _new_id, _utcnow


class BankAccount(Base):
    """
    A producer-submitted disbursement account.

    An account is exactly one of: pending (unverified, no rejection reason),
    verified, or rejected with a reason. Only verified accounts can receive
    a payout. At most one account per producer is primary; the partial
    unique index enforces it in the database.
    """

    __tablename__ = "bank_accounts"
    __table_args__ = (
        Index(
            "uq_bank_accounts_primary",
            "producer_id",
            unique=True,
            sqlite_where=text("is_primary = 1"),
            postgresql_where=text("is_primary"),
        ),
    )

    id = Column(String(12), primary_key=True, default=_new_id)
    producer_id = Column(String(50), nullable=False, index=True)

    bank_name = Column(String(100), nullable=False)
    account_name = Column(String(200), nullable=False)
    account_number = Column(String(50), nullable=False)
    account_type = Column(String(20), nullable=False, default=AccountType.SAVINGS.value)
    branch_name = Column(String(100), nullable=True)
    swift_code = Column(String(20), nullable=True)

    is_primary = Column(Boolean, nullable=False, default=False)
    is_verified = Column(Boolean, nullable=False, default=False)
    rejection_reason = Column(Text, nullable=True)

    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(String(100), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(String(100), nullable=True)
    last_disbursed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def verification_status(self) -> VerificationStatus:
        if self.is_verified:
            return VerificationStatus.VERIFIED
        if self.rejection_reason:
            return VerificationStatus.REJECTED
        return VerificationStatus.PENDING

    @property
    def masked_account_number(self) -> str:
        return f"***{(self.account_number or '')[-4:]}"

    def snapshot(self) -> dict:
        """Identifying fields frozen onto a payout at disbursement time."""
        return {
            "id": self.id,
            "bank_name": self.bank_name,
            "account_name": self.account_name,
            "account_number": self.account_number,
            "account_type": self.account_type,
            "branch_name": self.branch_name,
            "swift_code": self.swift_code,
        }
