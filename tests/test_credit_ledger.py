"""Tests for credit reservations, settlement and refunds."""

import asyncio

import pytest

from app.core.errors import BadInputError, CreditOverageError, InsufficientCreditsError
from app.services.credit_ledger import CreditLedger, EntryType, ReservationStatus


@pytest.fixture
def ledger():
    ledger = CreditLedger(default_balance=1000)
    ledger.open_account("u1", 1000)
    return ledger


@pytest.mark.asyncio
async def test_reserve_moves_credits_to_hold(ledger):
    reservation_id = await ledger.reserve("u1", 300, description="Analyst call")

    assert reservation_id.startswith("hold_")
    assert ledger.balance("u1") == 700
    assert ledger.held("u1") == 300
    assert ledger.get_reservation(reservation_id).status == ReservationStatus.HELD


@pytest.mark.asyncio
async def test_reserve_is_idempotent_by_key(ledger):
    first = await ledger.reserve("u1", 300, idempotency_key="research_dr_1")
    second = await ledger.reserve("u1", 300, idempotency_key="research_dr_1")

    assert first == second
    assert ledger.balance("u1") == 700


@pytest.mark.asyncio
async def test_reserve_rejects_overdraw(ledger):
    with pytest.raises(InsufficientCreditsError) as exc_info:
        await ledger.reserve("u1", 1001)
    assert exc_info.value.can_retry is False
    assert ledger.balance("u1") == 1000


@pytest.mark.asyncio
async def test_reserve_rejects_negative(ledger):
    with pytest.raises(BadInputError):
        await ledger.reserve("u1", -5)


@pytest.mark.asyncio
async def test_settle_returns_remainder(ledger):
    reservation_id = await ledger.reserve("u1", 500)

    balance = await ledger.settle(reservation_id, 350)

    reservation = ledger.get_reservation(reservation_id)
    assert balance == 650
    assert reservation.status == ReservationStatus.SETTLED
    assert reservation.settled_amount == 350
    assert reservation.refunded_amount == 150
    assert [e.transaction_type for e in ledger.transactions("u1")] == ["hold", "hold_release", "spend"]


@pytest.mark.asyncio
async def test_settle_overage_keeps_hold(ledger):
    reservation_id = await ledger.reserve("u1", 500)

    with pytest.raises(CreditOverageError):
        await ledger.settle(reservation_id, 501)
    assert ledger.get_reservation(reservation_id).status == ReservationStatus.HELD


@pytest.mark.asyncio
async def test_refund_restores_balance_once(ledger):
    reservation_id = await ledger.reserve("u1", 400)

    assert await ledger.refund(reservation_id) == 1000
    assert await ledger.refund(reservation_id) == 1000
    assert await ledger.settle(reservation_id, 400) == 1000

    refunds = [e for e in ledger.transactions("u1") if e.transaction_type == "refund"]
    assert len(refunds) == 1
    assert refunds[0].entry_type == EntryType.CREDIT


@pytest.mark.asyncio
async def test_unknown_reservation(ledger):
    with pytest.raises(BadInputError):
        await ledger.refund("hold_missing")


@pytest.mark.asyncio
async def test_concurrent_reserves_never_overdraw(ledger):
    results = await asyncio.gather(
        *(ledger.reserve("u1", 300) for _ in range(5)), return_exceptions=True
    )

    granted = [r for r in results if isinstance(r, str)]
    assert len(granted) == 3
    assert sum(isinstance(r, InsufficientCreditsError) for r in results) == 2
    assert ledger.balance("u1") == 100


def test_new_user_gets_default_balance():
    ledger = CreditLedger(default_balance=2500)
    assert ledger.balance("someone") == 2500


@pytest.mark.asyncio
async def test_locks_dropped_once_reservation_ends(ledger):
    settled = await ledger.reserve("u1", 100)
    refunded = await ledger.reserve("u1", 100)

    await asyncio.gather(ledger.settle(settled, 80), ledger.settle(settled, 80))
    await ledger.refund(refunded)

    assert settled not in ledger._reservation_locks
    assert refunded not in ledger._reservation_locks
    assert "u1" not in ledger._user_locks
    assert ledger.balance("u1") == 920
