"""
Immutable audit trail for settlement operations.

Every successful mutation gets an append-only audit log entry with:
  - Payout ID and/or bank account ID (what was touched)
  - Action (what happened)
  - Actor (which administrator asked for it, as reported by the caller)
  - Details (amounts, references, reasons; account numbers masked)
  - Timestamp (UTC)

Entries are added to the caller's session, so they commit or roll back
together with the change they describe.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from settlement.models.payout import AuditLog

logger = logging.getLogger("settlement.audit")


async def log_event(
    session: AsyncSession,
    action: str,
    payout_id: Optional[str] = None,
    bank_account_id: Optional[str] = None,
    actor: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Create an immutable audit log entry.

    Args:
        session: Database session.
        action: What happened (e.g. "payout_scheduled", "bank_account_rejected").
        payout_id: The payout this event relates to.
        bank_account_id: The bank account this event relates to.
        actor: Identity of the administrator, if the caller supplied one.
        details: Arbitrary context (serialized to JSON).

    Returns:
        The created AuditLog record.
    """
    entry = AuditLog(
        payout_id=payout_id,
        bank_account_id=bank_account_id,
        action=action,
        actor=actor,
        details=json.dumps(details, default=str) if details else None,
        timestamp=datetime.now(timezone.utc),
    )
    session.add(entry)
    logger.info(
        "AUDIT | payout=%s account=%s actor=%s action=%s | %s",
        payout_id or "-",
        bank_account_id or "-",
        actor or "-",
        action,
        json.dumps(details, default=str)[:200] if details else "",
    )
    return entry
