"""SQLAlchemy models for the settlement ledger."""

import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, relationship

from settlement.models.enums import PayoutStatus


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class Payout(Base):
    """
    A batch settlement of one producer's order earnings.

    Financial figures are stored in minor currency units and frozen at
    creation: commission is derived from the gross amount and the rate in
    effect at that moment, and net = gross - commission. Every UPDATE is
    guarded by the version column so two writers racing on the same batch
    cannot both commit.
    """

    __tablename__ = "payouts"

    id = Column(String(12), primary_key=True, default=_new_id)
    producer_id = Column(String(50), nullable=False, index=True)

    gross_amount_cents = Column(Integer, nullable=False)
    commission_rate = Column(Float, nullable=False)
    commission_cents = Column(Integer, nullable=False)
    net_amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="ETB")

    status = Column(String(20), nullable=False, default=PayoutStatus.PENDING.value, index=True)
    scheduled_for = Column(DateTime(timezone=True), nullable=True, index=True)

    # Completion result
    payment_reference = Column(String(100), nullable=True)
    payment_method = Column(String(30), nullable=True)
    bank_account_id = Column(String(12), ForeignKey("bank_accounts.id"), nullable=True)
    bank_account_snapshot = Column(Text, nullable=True)  # JSON copy of the account at completion

    failure_reason = Column(Text, nullable=True)

    processing_started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    version = Column(Integer, nullable=False)

    orders = relationship(
        "PayoutOrder",
        back_populates="payout",
        order_by="PayoutOrder.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    audit_logs = relationship("AuditLog", back_populates="payout", lazy="raise")

    __mapper_args__ = {"version_id_col": version}

    @property
    def status_enum(self) -> PayoutStatus:
        return PayoutStatus(self.status)

    @property
    def snapshot(self) -> dict | None:
        if not self.bank_account_snapshot:
            return None
        return json.loads(self.bank_account_snapshot)


class PayoutOrder(Base):
    """
    One order settled by a payout batch.

    An order may be held by at most one batch at a time. Failing a batch
    stamps released_at on its rows, returning the orders to the unsettled
    pool; the partial unique index enforces the rule in the database.
    """

    __tablename__ = "payout_orders"
    __table_args__ = (
        Index(
            "uq_payout_orders_held_order",
            "order_id",
            unique=True,
            sqlite_where=text("released_at IS NULL"),
            postgresql_where=text("released_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    payout_id = Column(String(12), ForeignKey("payouts.id"), nullable=False, index=True)
    order_id = Column(String(50), nullable=False)
    order_date = Column(Date, nullable=True)
    amount_cents = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False)
    released_at = Column(DateTime(timezone=True), nullable=True)

    payout = relationship("Payout", back_populates="orders")


class AuditLog(Base):
    """
    Immutable audit trail entry.

    Written inside the same transaction as the change it describes, so a
    rolled-back operation leaves no trace. Append-only.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payout_id = Column(String(12), ForeignKey("payouts.id"), nullable=True, index=True)
    bank_account_id = Column(String(12), ForeignKey("bank_accounts.id"), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    actor = Column(String(100), nullable=True)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)

    payout = relationship("Payout", back_populates="audit_logs")
