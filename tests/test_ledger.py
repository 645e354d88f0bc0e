from __future__ import annotations

import pytest
from sqlalchemy import select

from superfan_api.domain.errors import (
    DatastoreConflict,
    InsufficientPoints,
    InsufficientPointsStatusProtected,
    RefConflict,
)
from superfan_api.models.wallet import PointTransaction, PointWallet, TransactionSourceEnum, TransactionTypeEnum
from superfan_api.services.points.cache import get_read_model_cache
from superfan_api.services.points.ledger import DebitPool, PointBucket, WalletLedger


@pytest.mark.asyncio
async def test_get_or_create_returns_single_wallet(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()

    async with session_factory() as session:
        ledger = WalletLedger(session)
        first = await ledger.get_or_create(user.id, club.id)
        second = await ledger.get_or_create(user.id, club.id)
        await session.commit()

        wallets = (await session.execute(select(PointWallet))).scalars().all()

    assert first.id == second.id
    assert len(wallets) == 1
    assert first.balance_pts == 0


@pytest.mark.asyncio
async def test_credit_updates_bucket_and_status(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()

    async with session_factory() as session:
        ledger = WalletLedger(session)
        wallet = await ledger.get_or_create(user.id, club.id)
        result = await ledger.credit(wallet, 6000, ref="earn-1")
        await ledger.credit(
            wallet,
            300,
            kind=TransactionTypeEnum.PURCHASE,
            source=TransactionSourceEnum.PURCHASED,
            bucket=PointBucket.PURCHASED,
        )
        await session.commit()

    assert result.created is True
    assert result.transaction.affects_status is True
    assert wallet.balance_pts == 6300
    assert wallet.earned_pts == 6000
    assert wallet.purchased_pts == 300
    assert wallet.status_pts == 6000
    assert wallet.current_status == "resident"


@pytest.mark.asyncio
async def test_repeated_ref_replays_without_double_credit(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()

    async with session_factory() as session:
        ledger = WalletLedger(session)
        wallet = await ledger.get_or_create(user.id, club.id)
        first = await ledger.credit(wallet, 100, ref="same-ref")
        replay = await ledger.credit(wallet, 100, ref="same-ref")
        await session.commit()

    assert first.created is True
    assert replay.created is False
    assert replay.transaction.id == first.transaction.id
    assert wallet.balance_pts == 100


@pytest.mark.asyncio
async def test_ref_of_another_entry_is_a_conflict(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()

    async with session_factory() as session:
        ledger = WalletLedger(session)
        wallet = await ledger.get_or_create(user.id, club.id)
        await ledger.credit(wallet, 100, ref="order-7")
        with pytest.raises(RefConflict) as excinfo:
            await ledger.debit(wallet, 40, ref="order-7")
        with pytest.raises(RefConflict):
            await ledger.credit(wallet, 250, ref="order-7")
        await session.commit()

    assert excinfo.value.status_code == 409
    assert wallet.balance_pts == 100
    assert wallet.spent_pts == 0


@pytest.mark.asyncio
async def test_debit_spends_purchased_points_first(session_factory, make_user, make_club, fund_wallet) -> None:
    user = await make_user()
    club = await make_club()
    await fund_wallet(user, club, earned=1000, purchased=300)

    async with session_factory() as session:
        ledger = WalletLedger(session)
        wallet = await ledger.require_wallet(user.id, club.id)
        result = await ledger.debit(wallet, 500)
        await session.commit()

    assert result.transaction.pts == -500
    assert result.transaction.purchased_delta == -300
    assert result.transaction.earned_delta == -200
    assert result.transaction.metadata_json["spent_breakdown"] == {"purchased": 300, "earned": 200}
    assert result.transaction.affects_status is False
    assert wallet.purchased_pts == 0
    assert wallet.earned_pts == 800
    assert wallet.spent_pts == 500
    assert wallet.balance_pts == 800


@pytest.mark.asyncio
async def test_debit_rejects_overdraft(session_factory, make_user, make_club, fund_wallet) -> None:
    user = await make_user()
    club = await make_club()
    await fund_wallet(user, club, earned=100)

    async with session_factory() as session:
        ledger = WalletLedger(session)
        wallet = await ledger.require_wallet(user.id, club.id)
        with pytest.raises(InsufficientPoints) as excinfo:
            await ledger.debit(wallet, 101)

    assert excinfo.value.details["available"] == 100
    assert excinfo.value.status_code == 409


@pytest.mark.asyncio
async def test_preserve_status_protects_tier_floor(session_factory, make_user, make_club, fund_wallet) -> None:
    user = await make_user()
    club = await make_club()
    await fund_wallet(user, club, earned=5200, purchased=100)

    async with session_factory() as session:
        ledger = WalletLedger(session)
        wallet = await ledger.require_wallet(user.id, club.id)

        with pytest.raises(InsufficientPointsStatusProtected):
            await ledger.debit(wallet, 400, preserve_status=True)

        result = await ledger.debit(wallet, 300, preserve_status=True)
        await session.commit()

    assert result.transaction.purchased_delta == -100
    assert result.transaction.earned_delta == -200
    assert wallet.earned_pts == 5000
    assert wallet.current_status == "resident"


@pytest.mark.asyncio
async def test_pool_restrictions(session_factory, make_user, make_club, fund_wallet) -> None:
    user = await make_user()
    club = await make_club()
    await fund_wallet(user, club, earned=500, purchased=50)

    async with session_factory() as session:
        ledger = WalletLedger(session)
        wallet = await ledger.require_wallet(user.id, club.id)

        with pytest.raises(InsufficientPoints):
            await ledger.debit(wallet, 100, pool=DebitPool.PURCHASED_ONLY)

        earned_only = await ledger.debit(wallet, 200, pool=DebitPool.EARNED_ONLY)
        await session.commit()

    assert earned_only.transaction.earned_delta == -200
    assert earned_only.transaction.purchased_delta == 0
    assert wallet.purchased_pts == 50


@pytest.mark.asyncio
async def test_debit_gives_up_after_repeated_conflicts(
    session_factory, make_user, make_club, fund_wallet, monkeypatch
) -> None:
    user = await make_user()
    club = await make_club()
    await fund_wallet(user, club, earned=500)

    async def lost_race(self, wallet, **kwargs):
        return None

    monkeypatch.setattr(WalletLedger, "_apply", lost_race)

    async with session_factory() as session:
        ledger = WalletLedger(session)
        wallet = await ledger.require_wallet(user.id, club.id)
        with pytest.raises(DatastoreConflict) as excinfo:
            await ledger.debit(wallet, 100)

    assert excinfo.value.status_code >= 500


@pytest.mark.asyncio
async def test_refund_returns_points_to_original_buckets(session_factory, make_user, make_club, fund_wallet) -> None:
    user = await make_user()
    club = await make_club()
    await fund_wallet(user, club, earned=400, purchased=100)

    async with session_factory() as session:
        ledger = WalletLedger(session)
        wallet = await ledger.require_wallet(user.id, club.id)
        spend = await ledger.debit(wallet, 300)
        refund = await ledger.refund(spend.transaction, reason="event cancelled")
        again = await ledger.refund(spend.transaction)
        await session.commit()

    assert refund.transaction.type is TransactionTypeEnum.REFUND
    assert refund.transaction.pts == 300
    assert again.created is False
    assert wallet.purchased_pts == 100
    assert wallet.earned_pts == 400


@pytest.mark.asyncio
async def test_reconcile_matches_ledger_and_history_filters(
    session_factory, make_user, make_club, fund_wallet
) -> None:
    user = await make_user()
    club = await make_club()
    await fund_wallet(user, club, earned=700, purchased=300)

    async with session_factory() as session:
        ledger = WalletLedger(session)
        wallet = await ledger.require_wallet(user.id, club.id)
        await ledger.debit(wallet, 450)
        await session.commit()

        report = await ledger.reconcile(wallet)
        spends = await ledger.history(wallet.id, types=[TransactionTypeEnum.SPEND])
        everything = await ledger.history(wallet.id)
        rows = (await session.execute(select(PointTransaction))).scalars().all()

    assert report.consistent is True
    assert report.derived == {"balance_pts": 550, "earned_pts": 550, "purchased_pts": 0, "spent_pts": 450}
    assert len(spends) == 1
    assert len(everything) == len(rows) == 3
    assert all(row.pts == row.earned_delta + row.purchased_delta for row in rows)


@pytest.mark.asyncio
async def test_writes_invalidate_cached_reads(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()
    cache = get_read_model_cache()
    cache.set(("breakdown", club.id, user.id), "stale")
    cache.set(("leaderboard", club.id, 25), "stale")

    async with session_factory() as session:
        ledger = WalletLedger(session)
        wallet = await ledger.get_or_create(user.id, club.id)
        await ledger.credit(wallet, 10)
        await session.commit()

    assert cache.get(("breakdown", club.id, user.id)) is None
    assert cache.get(("leaderboard", club.id, 25)) is None


@pytest.mark.asyncio
async def test_amounts_must_be_positive(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()

    async with session_factory() as session:
        ledger = WalletLedger(session)
        wallet = await ledger.get_or_create(user.id, club.id)
        with pytest.raises(ValueError):
            await ledger.credit(wallet, 0)
        with pytest.raises(ValueError):
            await ledger.debit(wallet, -5)
