"""Racing writers against the same payout or bank account."""

import asyncio

import pytest

from settlement.engine.bank_registry import BankAccountRegistry
from settlement.engine.errors import ConcurrencyConflict
from settlement.engine.settlement import SettlementService
from settlement.models.enums import PayoutStatus
from tests.conftest import feed


async def prepare(session_factory):
    async with session_factory() as session:
        service = SettlementService(session, commission_rate=0.10)
        account = (await service.register_bank_account(
            "PRD-1", "Dashen Bank", "Mulugeta Tesfaye", "5012233445566", is_primary=True,
        )).unwrap()
        (await service.verify_bank_account(account.id, actor="admin-1")).unwrap()
        payout = (await service.create_payout("PRD-1", feed("PRD-1", ("ORD-1", "1000.00")))).unwrap()
        (await service.schedule(payout.id)).unwrap()
        return payout.id, account.id


@pytest.mark.asyncio
async def test_concurrent_completes_only_one_wins(session_factory):
    payout_id, account_id = await prepare(session_factory)

    async with session_factory() as first, session_factory() as second:
        results = await asyncio.gather(
            SettlementService(first).complete(payout_id, account_id, "TX-A", actor="admin-1"),
            SettlementService(second).complete(payout_id, account_id, "TX-B", actor="admin-2"),
        )

    winners = [r for r in results if r.ok]
    losers = [r for r in results if not r.ok]
    assert len(winners) == 1
    assert len(losers) == 1
    assert losers[0].error.code in ("invalid_transition", "concurrency_conflict")

    async with session_factory() as session:
        service = SettlementService(session)
        stored = (await service.get_payout(payout_id)).value
        assert stored.status == PayoutStatus.COMPLETED.value
        assert stored.payment_reference == winners[0].value.payment_reference

        trace = (await service.payout_trace(payout_id)).value
        assert [log.action for log in trace.audit_trail].count("payout_completed") == 1


@pytest.mark.asyncio
async def test_complete_races_fail(session_factory):
    payout_id, account_id = await prepare(session_factory)

    async with session_factory() as first, session_factory() as second:
        completed, failed = await asyncio.gather(
            SettlementService(first).complete(payout_id, account_id, "TX-A"),
            SettlementService(second).fail(payout_id, "Bank rejected transfer"),
        )

    assert completed.ok != failed.ok

    async with session_factory() as session:
        stored = (await SettlementService(session).get_payout(payout_id)).value
        expected = PayoutStatus.COMPLETED if completed.ok else PayoutStatus.FAILED
        assert stored.status == expected.value
        if completed.ok:
            assert all(item.released_at is None for item in stored.orders)
        else:
            assert stored.payment_reference is None


@pytest.mark.asyncio
async def test_revoked_account_cannot_receive_payout(session_factory):
    payout_id, account_id = await prepare(session_factory)

    async with session_factory() as session:
        service = SettlementService(session)
        (await service.reject_bank_account(account_id, "Reported closed")).unwrap()
        result = await service.complete(payout_id, account_id, "TX-A")

    assert result.error.code == "validation_error"


async def pending_accounts(session_factory, count=2):
    async with session_factory() as session:
        service = SettlementService(session)
        ids = []
        for i in range(count):
            account = (await service.register_bank_account(
                "PRD-1", "Awash Bank", "Tigist Alemu", f"013204567890{i}",
            )).unwrap()
            ids.append(account.id)
        return ids


async def primary_ids(session_factory, producer_id="PRD-1"):
    async with session_factory() as session:
        accounts = (await SettlementService(session).list_bank_accounts(producer_id)).value
        return [a.id for a in accounts if a.is_primary]


@pytest.mark.asyncio
async def test_concurrent_set_primary_keeps_one_primary(session_factory):
    first_id, second_id = await pending_accounts(session_factory)

    async with session_factory() as first, session_factory() as second:
        results = await asyncio.gather(
            SettlementService(first).set_primary_bank_account(first_id),
            SettlementService(second).set_primary_bank_account(second_id),
        )

    assert any(r.ok for r in results)
    assert all(r.error.code == "concurrency_conflict" for r in results if not r.ok)
    assert len(await primary_ids(session_factory)) == 1


@pytest.mark.asyncio
async def test_concurrent_primary_registrations_keep_one_primary(session_factory):
    async def register(session, number):
        return await SettlementService(session).register_bank_account(
            "PRD-1", "Awash Bank", "Tigist Alemu", number, is_primary=True,
        )

    async with session_factory() as first, session_factory() as second:
        results = await asyncio.gather(register(first, "0132045678901"), register(second, "0132045678902"))

    assert any(r.ok for r in results)
    assert all(r.error.code == "concurrency_conflict" for r in results if not r.ok)
    assert len(await primary_ids(session_factory)) == 1


@pytest.mark.asyncio
async def test_stale_account_write_is_a_conflict(session_factory):
    (account_id,) = await pending_accounts(session_factory, count=1)

    async with session_factory() as first, session_factory() as second:
        stale = await BankAccountRegistry(first).get(account_id)

        (await SettlementService(second).reject_bank_account(account_id, "Name mismatch")).unwrap()

        with pytest.raises(ConcurrencyConflict) as exc:
            await BankAccountRegistry(first).mark_disbursed(stale)
        assert exc.value.details["bank_account_id"] == account_id
        await first.rollback()


@pytest.mark.asyncio
async def test_stale_payout_write_returns_conflict_result(session_factory):
    payout_id, _ = await prepare(session_factory)

    async with session_factory() as first, session_factory() as second:
        service = SettlementService(first)
        stale = await service.ledger.get(payout_id)

        (await SettlementService(second).mark_processing(payout_id)).unwrap()

        async def complete_stale():
            return await service.ledger.apply_transition(stale, PayoutStatus.COMPLETED, payment_reference="TX-A")

        result = await service._execute("complete", complete_stale)

    assert result.error.code == "concurrency_conflict"
    assert result.error.details["payout_id"] == payout_id
