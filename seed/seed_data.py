"""
Seed the database with realistic sample data.

Creates:
  - Bank accounts for 6 producers (verified, pending, and rejected)
  - One PENDING payout per producer built from a sample order feed
  - Edge cases: a producer with no verified account, a producer with
    two verified accounts and no primary

Run:
    python -m seed.seed_data
"""

import asyncio
import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from settlement.database import async_session, init_db
from settlement.engine.eligibility import OrderFeedItem
from settlement.engine.settlement import SettlementService

logger = logging.getLogger("settlement.seed")

SEED_ACTOR = "seed"

BANK_ACCOUNTS = [
    {"producer_id": "PRD-001", "bank_name": "Commercial Bank of Ethiopia", "account_name": "Abebe Kebede", "account_number": "1000123456789", "account_type": "SAVINGS", "is_primary": True, "verify": True},
    {"producer_id": "PRD-002", "bank_name": "Awash Bank", "account_name": "Tigist Alemu", "account_number": "0132045678901", "account_type": "CHECKING", "is_primary": True, "verify": True},
    {"producer_id": "PRD-003", "bank_name": "Dashen Bank", "account_name": "Mulugeta Tesfaye", "account_number": "5012233445566", "account_type": "SAVINGS", "is_primary": True, "verify": True},
    {"producer_id": "PRD-004", "bank_name": "Bank of Abyssinia", "account_name": "Hana Girma", "account_number": "7788990011223", "account_type": "SAVINGS", "is_primary": True, "verify": True},
    {"producer_id": "PRD-004", "bank_name": "Telebirr", "account_name": "Hana Girma", "account_number": "0911223344", "account_type": "MOBILE_MONEY", "is_primary": False, "verify": False},

    # ─── Edge cases ────────────────────────────────────────────────────

    # Two verified accounts, no primary: auto-selection falls back to the oldest
    {"producer_id": "PRD-005", "bank_name": "Cooperative Bank of Oromia", "account_name": "Dawit Bekele", "account_number": "1020304050607", "account_type": "SAVINGS", "is_primary": False, "verify": True},
    {"producer_id": "PRD-005", "bank_name": "Wegagen Bank", "account_name": "Dawit Bekele", "account_number": "2233445566778", "account_type": "CHECKING", "is_primary": False, "verify": True},

    # Only a rejected account: payouts cannot complete until a verified one exists
    {"producer_id": "PRD-006", "bank_name": "Nib International Bank", "account_name": "Selam Haile", "account_number": "9988776655", "account_type": "SAVINGS", "is_primary": True, "verify": False, "reject": "Account name does not match producer"},
]

ORDER_FEED = {
    "PRD-001": [("ORD-1001", "1250.00", date(2024, 11, 4)), ("ORD-1002", "480.50", date(2024, 11, 5)), ("ORD-1003", "99.99", date(2024, 11, 6))],
    "PRD-002": [("ORD-2001", "3200.00", date(2024, 11, 4)), ("ORD-2002", "150.00", date(2024, 11, 7))],
    "PRD-003": [("ORD-3001", "75.25", date(2024, 11, 5))],
    "PRD-004": [("ORD-4001", "610.00", date(2024, 11, 6)), ("ORD-4002", "610.00", date(2024, 11, 6))],
    "PRD-005": [("ORD-5001", "2045.10", date(2024, 11, 8))],
    "PRD-006": [("ORD-6001", "330.00", date(2024, 11, 8))],
}


async def seed(session: AsyncSession) -> dict:
    """Populate an empty database through the settlement service. Returns counts."""
    service = SettlementService(session)
    counts = {"bank_accounts": 0, "verified": 0, "rejected": 0, "payouts": 0}

    for data in BANK_ACCOUNTS:
        account = (await service.register_bank_account(
            data["producer_id"],
            data["bank_name"],
            data["account_name"],
            data["account_number"],
            account_type=data["account_type"],
            is_primary=data["is_primary"],
            actor=SEED_ACTOR,
        )).unwrap()
        counts["bank_accounts"] += 1

        if data["verify"]:
            (await service.verify_bank_account(account.id, actor=SEED_ACTOR)).unwrap()
            counts["verified"] += 1
        elif data.get("reject"):
            (await service.reject_bank_account(account.id, data["reject"], actor=SEED_ACTOR)).unwrap()
            counts["rejected"] += 1

    for producer_id, lines in ORDER_FEED.items():
        orders = [
            OrderFeedItem(order_id=order_id, producer_id=producer_id, amount=Decimal(amount), order_date=order_date)
            for order_id, amount, order_date in lines
        ]
        (await service.create_payout(producer_id, orders, actor=SEED_ACTOR)).unwrap()
        counts["payouts"] += 1

    return counts


async def main():
    logging.basicConfig(level=logging.INFO)
    await init_db()

    async with async_session() as session:
        counts = await seed(session)

    print(
        f"Seeded {counts['bank_accounts']} bank accounts "
        f"({counts['verified']} verified, {counts['rejected']} rejected) "
        f"and {counts['payouts']} pending payouts"
    )


if __name__ == "__main__":
    asyncio.run(main())
