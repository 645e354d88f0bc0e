from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from superfan_api.core.time import utcnow
from superfan_api.domain.errors import (
    Forbidden,
    HoldExpired,
    InsufficientPoints,
    InvalidRedemptionState,
    OutOfStock,
    RewardUnavailable,
)
from superfan_api.models.reward import RedemptionStateEnum, Reward, RewardKindEnum, RewardStatusEnum
from superfan_api.models.user import UserRoleEnum
from superfan_api.models.wallet import PointTransaction
from superfan_api.services.points import RedemptionService, WalletLedger


async def _wallet(session_factory, user, club):
    async with session_factory() as session:
        return await WalletLedger(session).require_wallet(user.id, club.id)


@pytest.mark.asyncio
async def test_access_reward_debits_immediately(session_factory, make_user, make_club, make_reward, fund_wallet) -> None:
    user = await make_user()
    club = await make_club()
    reward = await make_reward(club, points_price=400)
    await fund_wallet(user, club, earned=1000)

    async with session_factory() as session:
        outcome = await RedemptionService(session).redeem(user_id=user.id, reward_id=reward.id)

    assert outcome.redemption.state is RedemptionStateEnum.CONFIRMED
    assert outcome.redemption.points_spent == 400
    assert outcome.transaction is not None
    assert outcome.transaction.ref == f"redemption:{outcome.redemption.id}"
    assert outcome.redemption.metadata_json["tier_at_redeem"] == "cadet"
    assert (await _wallet(session_factory, user, club)).balance_pts == 600


@pytest.mark.asyncio
async def test_redeem_prices_with_club_controls(
    session_factory, make_user, make_club, make_reward, fund_wallet
) -> None:
    user = await make_user()
    club = await make_club(
        redeem_multiplier=1.2,
        promo_active=True,
        promo_description="Tour week",
        promo_discount_pts=50,
    )
    reward = await make_reward(club, points_price=500)
    await fund_wallet(user, club, earned=1000)

    async with session_factory() as session:
        outcome = await RedemptionService(session).redeem(user_id=user.id, reward_id=reward.id)

    assert outcome.redemption.points_spent == 550
    assert (await _wallet(session_factory, user, club)).balance_pts == 450


@pytest.mark.asyncio
async def test_insufficient_balance_writes_nothing(session_factory, make_user, make_club, make_reward, fund_wallet) -> None:
    user = await make_user()
    club = await make_club()
    reward = await make_reward(club, kind=RewardKindEnum.VARIANT, points_price=400, inventory=3)
    await fund_wallet(user, club, earned=399)

    async with session_factory() as session:
        with pytest.raises(InsufficientPoints):
            await RedemptionService(session).redeem(user_id=user.id, reward_id=reward.id)

    async with session_factory() as session:
        stored = await session.get(Reward, reward.id)
        spends = (await session.execute(select(PointTransaction).where(PointTransaction.pts < 0))).scalars().all()

    assert stored.inventory == 3
    assert spends == []


@pytest.mark.asyncio
async def test_variant_last_unit_then_out_of_stock(
    session_factory, make_user, make_club, make_reward, fund_wallet
) -> None:
    first = await make_user()
    second = await make_user()
    club = await make_club()
    reward = await make_reward(club, kind=RewardKindEnum.VARIANT, title="Tour hoodie", points_price=300, inventory=1)
    await fund_wallet(first, club, earned=1000)
    await fund_wallet(second, club, earned=1000)

    async with session_factory() as session:
        outcome = await RedemptionService(session).redeem(user_id=first.id, reward_id=reward.id)

    async with session_factory() as session:
        with pytest.raises(OutOfStock):
            await RedemptionService(session).redeem(user_id=second.id, reward_id=reward.id)

    async with session_factory() as session:
        stored = await session.get(Reward, reward.id)

    assert outcome.redemption.state is RedemptionStateEnum.CONFIRMED
    assert stored.inventory == 0
    assert (await _wallet(session_factory, second, club)).balance_pts == 1000


@pytest.mark.asyncio
async def test_inactive_and_out_of_window_rewards_are_unavailable(
    session_factory, make_user, make_club, make_reward, fund_wallet
) -> None:
    user = await make_user()
    club = await make_club()
    inactive = await make_reward(club, status=RewardStatusEnum.INACTIVE)
    future = await make_reward(club, window_start=utcnow() + timedelta(days=2))
    await fund_wallet(user, club, earned=5000)

    async with session_factory() as session:
        service = RedemptionService(session)
        with pytest.raises(RewardUnavailable):
            await service.redeem(user_id=user.id, reward_id=inactive.id)
        with pytest.raises(RewardUnavailable):
            await service.redeem(user_id=user.id, reward_id=future.id)


@pytest.mark.asyncio
async def test_presale_hold_confirm(session_factory, make_user, make_club, make_reward, fund_wallet) -> None:
    user = await make_user()
    club = await make_club()
    reward = await make_reward(club, kind=RewardKindEnum.PRESALE_LOCK, title="Presale code", points_price=250, inventory=5)
    await fund_wallet(user, club, earned=1000)

    async with session_factory() as session:
        held = await RedemptionService(session).redeem(user_id=user.id, reward_id=reward.id)

    assert held.redemption.state is RedemptionStateEnum.HELD
    assert held.transaction is None
    assert held.redemption.hold_expires_at is not None
    assert (await _wallet(session_factory, user, club)).balance_pts == 1000

    async with session_factory() as session:
        confirmed = await RedemptionService(session).confirm_hold(held.redemption.id)
        stored = await session.get(Reward, reward.id)

    assert confirmed.redemption.state is RedemptionStateEnum.CONFIRMED
    assert confirmed.transaction is not None
    assert confirmed.transaction.pts == -250
    assert stored.inventory == 4
    assert (await _wallet(session_factory, user, club)).balance_pts == 750

    async with session_factory() as session:
        with pytest.raises(InvalidRedemptionState):
            await RedemptionService(session).confirm_hold(held.redemption.id)


@pytest.mark.asyncio
async def test_expired_hold_cannot_be_confirmed(session_factory, make_user, make_club, make_reward, fund_wallet) -> None:
    user = await make_user()
    club = await make_club()
    reward = await make_reward(club, kind=RewardKindEnum.PRESALE_LOCK, points_price=100)
    await fund_wallet(user, club, earned=500)
    placed_at = utcnow() - timedelta(hours=30)

    async with session_factory() as session:
        held = await RedemptionService(session).redeem(user_id=user.id, reward_id=reward.id, now=placed_at)

    assert held.redemption.effective_state() is RedemptionStateEnum.EXPIRED

    async with session_factory() as session:
        with pytest.raises(HoldExpired):
            await RedemptionService(session).confirm_hold(held.redemption.id)

    assert (await _wallet(session_factory, user, club)).balance_pts == 500


@pytest.mark.asyncio
async def test_cancel_hold_requires_owner_or_admin(
    session_factory, make_user, make_club, make_reward, fund_wallet
) -> None:
    user = await make_user()
    stranger = await make_user()
    club = await make_club()
    reward = await make_reward(club, kind=RewardKindEnum.PRESALE_LOCK, points_price=100)
    await fund_wallet(user, club, earned=500)

    async with session_factory() as session:
        held = await RedemptionService(session).redeem(user_id=user.id, reward_id=reward.id)

    async with session_factory() as session:
        with pytest.raises(Forbidden):
            await RedemptionService(session).cancel_hold(held.redemption.id, user_id=stranger.id)

    async with session_factory() as session:
        cancelled = await RedemptionService(session).cancel_hold(held.redemption.id, user_id=user.id)

    assert cancelled.state is RedemptionStateEnum.CANCELLED
    assert cancelled.resolved_at is not None

    async with session_factory() as session:
        with pytest.raises(InvalidRedemptionState):
            await RedemptionService(session).cancel_hold(held.redemption.id, user_id=user.id, is_admin=True)


@pytest.mark.asyncio
async def test_expire_holds_marks_only_due_holds(session_factory, make_user, make_club, make_reward, fund_wallet) -> None:
    user = await make_user()
    club = await make_club()
    reward = await make_reward(club, kind=RewardKindEnum.PRESALE_LOCK, points_price=100)
    await fund_wallet(user, club, earned=1000)

    async with session_factory() as session:
        service = RedemptionService(session)
        stale = await service.redeem(user_id=user.id, reward_id=reward.id, now=utcnow() - timedelta(hours=25))
        fresh = await service.redeem(user_id=user.id, reward_id=reward.id)

    async with session_factory() as session:
        expired = await RedemptionService(session).expire_holds()
        again = await RedemptionService(session).expire_holds()

    async with session_factory() as session:
        listed = await RedemptionService(session).list_for_user(user.id, club_id=club.id)

    states = {row.id: row.state for row in listed}
    assert expired == 1
    assert again == 0
    assert states[stale.redemption.id] is RedemptionStateEnum.EXPIRED
    assert states[fresh.redemption.id] is RedemptionStateEnum.HELD


@pytest.mark.asyncio
async def test_owner_refunds_confirmed_variant(session_factory, make_user, make_club, make_reward, fund_wallet) -> None:
    owner = await make_user(role=UserRoleEnum.OPERATOR)
    fan = await make_user()
    club = await make_club(owner)
    reward = await make_reward(club, kind=RewardKindEnum.VARIANT, title="Tour hoodie", points_price=300, inventory=2)
    await fund_wallet(fan, club, earned=1000)

    async with session_factory() as session:
        redeemed = await RedemptionService(session).redeem(user_id=fan.id, reward_id=reward.id)

    async with session_factory() as session:
        service = RedemptionService(session)
        with pytest.raises(Forbidden):
            await service.refund_redemption(redeemed.redemption.id, actor=fan)
        refunded = await service.refund_redemption(redeemed.redemption.id, actor=owner, reason="size swap")
        with pytest.raises(InvalidRedemptionState):
            await service.refund_redemption(redeemed.redemption.id, actor=owner)

    async with session_factory() as session:
        stored = await session.get(Reward, reward.id)
        ledger = WalletLedger(session)
        reconciliation = await ledger.reconcile(await ledger.require_wallet(fan.id, club.id))

    assert refunded.redemption.state is RedemptionStateEnum.REFUNDED
    assert refunded.transaction.pts == 300
    assert refunded.transaction.ref == f"refund:{redeemed.transaction.id}"
    assert refunded.wallet.balance_pts == 1000
    assert refunded.wallet.earned_pts == 1000
    assert stored.inventory == 2
    assert reconciliation.consistent
