from __future__ import annotations

import pytest
from sqlalchemy import func, select

from superfan_api.domain.errors import InsufficientPoints, RecipientNotFound, RefConflict, TransferToSelf
from superfan_api.models.wallet import PointTransaction, PointWallet, TransactionSourceEnum, TransactionTypeEnum
from superfan_api.services.points import DebitPool, PointsService, TransferService, WalletLedger


@pytest.mark.asyncio
async def test_transfer_moves_purchased_points_without_status(
    session_factory, make_user, make_club, fund_wallet
) -> None:
    sender = await make_user(email="sender@example.com")
    recipient = await make_user(email="fan@example.com")
    club = await make_club()
    await fund_wallet(sender, club, earned=6000, purchased=500)

    async with session_factory() as session:
        result = await TransferService(session).transfer(
            sender_id=sender.id,
            club_id=club.id,
            amount=200,
            recipient_email="  FAN@example.com ",
            note="for the merch table",
        )

    assert result.created is True
    assert result.outgoing.ref == result.incoming.ref == result.ref
    assert result.outgoing.source is TransactionSourceEnum.TRANSFERRED
    assert result.outgoing.type is TransactionTypeEnum.SPEND
    assert result.incoming.type is TransactionTypeEnum.PURCHASE
    assert result.outgoing.affects_status is False
    assert result.incoming.affects_status is False

    async with session_factory() as session:
        ledger = WalletLedger(session)
        sender_wallet = await ledger.require_wallet(sender.id, club.id)
        recipient_wallet = await ledger.require_wallet(recipient.id, club.id)

    assert sender_wallet.purchased_pts == 300
    assert sender_wallet.earned_pts == 6000
    assert recipient_wallet.purchased_pts == 200
    assert recipient_wallet.earned_pts == 0
    assert recipient_wallet.status_pts == 0


@pytest.mark.asyncio
async def test_purchased_only_pool_refuses_earned_points(session_factory, make_user, make_club, fund_wallet) -> None:
    sender = await make_user()
    recipient = await make_user()
    club = await make_club()
    await fund_wallet(sender, club, earned=1000, purchased=50)

    async with session_factory() as session:
        with pytest.raises(InsufficientPoints):
            await TransferService(session).transfer(
                sender_id=sender.id,
                club_id=club.id,
                amount=100,
                recipient_id=recipient.id,
            )

    async with session_factory() as session:
        result = await TransferService(session).transfer(
            sender_id=sender.id,
            club_id=club.id,
            amount=100,
            recipient_id=recipient.id,
            pool=DebitPool.ANY,
        )

    assert result.outgoing.purchased_delta == -50
    assert result.outgoing.earned_delta == -50
    assert result.incoming.purchased_delta == 100


@pytest.mark.asyncio
async def test_transfer_replays_on_same_ref(session_factory, make_user, make_club, fund_wallet) -> None:
    sender = await make_user()
    recipient = await make_user()
    club = await make_club()
    await fund_wallet(sender, club, purchased=500)

    async with session_factory() as session:
        service = TransferService(session)
        first = await service.transfer(
            sender_id=sender.id, club_id=club.id, amount=100, recipient_id=recipient.id, ref="gift-1"
        )
        second = await service.transfer(
            sender_id=sender.id, club_id=club.id, amount=100, recipient_id=recipient.id, ref="gift-1"
        )

    async with session_factory() as session:
        stmt = select(PointTransaction).where(PointTransaction.ref == first.ref)
        rows = (await session.execute(stmt)).scalars().all()
        sender_wallet = await WalletLedger(session).require_wallet(sender.id, club.id)

    assert first.created is True
    assert second.created is False
    assert len(rows) == 2
    assert sender_wallet.purchased_pts == 400


@pytest.mark.asyncio
async def test_self_transfer_and_unknown_recipient(session_factory, make_user, make_club, fund_wallet) -> None:
    sender = await make_user(email="me@example.com")
    inactive = await make_user(email="gone@example.com", is_active=False)
    club = await make_club()
    await fund_wallet(sender, club, purchased=500)

    async with session_factory() as session:
        service = TransferService(session)
        with pytest.raises(TransferToSelf):
            await service.transfer(sender_id=sender.id, club_id=club.id, amount=10, recipient_id=sender.id)
        with pytest.raises(TransferToSelf):
            await service.transfer(sender_id=sender.id, club_id=club.id, amount=10, recipient_email="ME@example.com")
        with pytest.raises(RecipientNotFound):
            await service.transfer(sender_id=sender.id, club_id=club.id, amount=10, recipient_id=inactive.id)
        with pytest.raises(ValueError):
            await service.transfer(
                sender_id=sender.id,
                club_id=club.id,
                amount=10,
                recipient_id=inactive.id,
                pool=DebitPool.EARNED_ONLY,
            )


@pytest.mark.asyncio
async def test_failed_transfer_leaves_no_partial_writes(session_factory, make_user, make_club) -> None:
    sender = await make_user()
    recipient = await make_user()
    club = await make_club()

    async with session_factory() as session:
        with pytest.raises(InsufficientPoints):
            await TransferService(session).transfer(
                sender_id=sender.id, club_id=club.id, amount=10, recipient_id=recipient.id
            )

    async with session_factory() as session:
        rows = (await session.execute(select(PointTransaction))).scalars().all()
        recipient_wallet = await WalletLedger(session).get_wallet(recipient.id, club.id)

    assert rows == []
    assert recipient_wallet is None


@pytest.mark.asyncio
async def test_reused_ref_for_a_different_transfer_is_rejected(
    session_factory, make_user, make_club, fund_wallet
) -> None:
    sender = await make_user()
    first = await make_user()
    second = await make_user()
    club = await make_club()
    await fund_wallet(sender, club, purchased=100)

    async with session_factory() as session:
        service = TransferService(session)
        await service.transfer(sender_id=sender.id, club_id=club.id, amount=10, recipient_id=first.id, ref="t1")
        with pytest.raises(RefConflict):
            await service.transfer(sender_id=sender.id, club_id=club.id, amount=5000, recipient_id=second.id, ref="t1")
        with pytest.raises(RefConflict):
            await service.transfer(sender_id=sender.id, club_id=club.id, amount=20, recipient_id=first.id, ref="t1")

    async with session_factory() as session:
        total = await session.scalar(select(func.sum(PointWallet.balance_pts)).where(PointWallet.club_id == club.id))
        second_wallet = await WalletLedger(session).get_wallet(second.id, club.id)

    assert total == 100
    assert second_wallet is None or second_wallet.balance_pts == 0


@pytest.mark.asyncio
async def test_spend_ref_cannot_collide_with_transfer(session_factory, make_user, make_club, fund_wallet) -> None:
    sender = await make_user()
    recipient = await make_user()
    club = await make_club()
    await fund_wallet(sender, club, purchased=100)

    async with session_factory() as session:
        await PointsService(session).spend(user_id=sender.id, club_id=club.id, amount=1, ref="s1")
        result = await TransferService(session).transfer(
            sender_id=sender.id, club_id=club.id, amount=70, recipient_id=recipient.id, ref="s1"
        )

    async with session_factory() as session:
        total = await session.scalar(select(func.sum(PointWallet.balance_pts)).where(PointWallet.club_id == club.id))

    assert result.created is True
    assert result.outgoing.pts == -70
    assert total == 99
