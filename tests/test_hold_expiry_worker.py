from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from superfan_api.core.time import utcnow
from superfan_api.models.reward import RedemptionStateEnum, RewardKindEnum, RewardRedemption
from superfan_api.services.points import RedemptionService
from superfan_api.workers.hold_expiry import HoldExpiryWorker


@pytest.mark.asyncio
async def test_run_once_expires_due_holds_in_batches(
    session_factory, make_user, make_club, make_reward, fund_wallet
) -> None:
    user = await make_user()
    club = await make_club()
    reward = await make_reward(club, kind=RewardKindEnum.PRESALE_LOCK, points_price=10)
    await fund_wallet(user, club, earned=1000)

    held_ids = []
    async with session_factory() as session:
        service = RedemptionService(session)
        for _ in range(3):
            outcome = await service.redeem(user_id=user.id, reward_id=reward.id, now=utcnow() - timedelta(days=2))
            held_ids.append(outcome.redemption.id)

    worker = HoldExpiryWorker(session_factory, interval_seconds=60, batch_size=2)
    result = await worker.run_once()

    assert result == {"expired": 3}
    assert worker.total_expired == 3
    assert worker.last_run_at is not None

    async with session_factory() as session:
        states = {(await session.get(RewardRedemption, held_id)).state for held_id in held_ids}

    assert states == {RedemptionStateEnum.EXPIRED}


@pytest.mark.asyncio
async def test_worker_start_and_stop(session_factory) -> None:
    worker = HoldExpiryWorker(session_factory, interval_seconds=60, batch_size=10)

    worker.start()
    await asyncio.sleep(0.05)
    assert worker.is_running is True

    await worker.stop()

    assert worker.is_running is False
    assert worker.last_run_at is not None
