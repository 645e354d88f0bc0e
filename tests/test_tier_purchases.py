from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from superfan_api.domain.errors import AlreadyClaimed, ExternalServiceUnavailable, InvalidPricing, RewardUnavailable
from superfan_api.domain.status import StatusTier
from superfan_api.models.tier_reward import RewardClaim, TierReward
from superfan_api.observability.payments import get_payment_store
from superfan_api.services.pricing import TierPurchaseService


class FakeStripe:
    def __init__(self, *, fail: bool = False) -> None:
        self.calls: list[dict[str, Any]] = []
        self.fail = fail

    async def create_checkout_session(self, **kwargs: Any):
        self.calls.append(kwargs)
        if self.fail:
            raise ExternalServiceUnavailable("Payment processor timed out")
        return SimpleNamespace(id=f"cs_test_{len(self.calls)}", url="https://checkout.test/session")


async def _tier_reward(session_factory, club, **overrides: Any) -> TierReward:
    values: dict[str, Any] = {"club_id": club.id, "title": "Soundcheck access", "upgrade_price_cents": 1000}
    values.update(overrides)
    async with session_factory() as session:
        tier_reward = TierReward(**values)
        session.add(tier_reward)
        await session.commit()
        return tier_reward


@pytest.mark.asyncio
async def test_quote_uses_ledger_derived_tier(session_factory, make_user, make_club, fund_wallet) -> None:
    user = await make_user()
    club = await make_club()
    tier_reward = await _tier_reward(session_factory, club)
    wallet = await fund_wallet(user, club, earned=15000, purchased=50000)

    async with session_factory() as session:
        quote = await TierPurchaseService(session, stripe_service=FakeStripe()).quote(tier_reward.id, user_id=user.id)

    assert wallet.current_status == "headliner"
    assert quote.user_tier is StatusTier.HEADLINER
    assert quote.final_price_cents == 850


@pytest.mark.asyncio
async def test_quote_for_member_without_wallet_is_cadet(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()
    tier_reward = await _tier_reward(session_factory, club, resident_discount_percentage=40)

    async with session_factory() as session:
        quote = await TierPurchaseService(session, stripe_service=FakeStripe()).quote(tier_reward.id, user_id=user.id)

    assert quote.user_tier is StatusTier.CADET
    assert quote.final_price_cents == 1000


@pytest.mark.asyncio
async def test_purchase_opens_checkout_with_typed_metadata(session_factory, make_user, make_club, fund_wallet) -> None:
    user = await make_user(email="fan@example.com")
    club = await make_club()
    tier_reward = await _tier_reward(session_factory, club, superfan_discount_percentage=30)
    await fund_wallet(user, club, earned=40000)
    stripe_service = FakeStripe()

    async with session_factory() as session:
        quote, checkout = await TierPurchaseService(session, stripe_service=stripe_service).purchase(
            tier_reward.id, user=user
        )

    call = stripe_service.calls[0]
    assert quote.final_price_cents == 700
    assert checkout.checkout_session_id == "cs_test_1"
    assert checkout.amount_cents == 700
    assert call["amount_cents"] == 700
    assert call["idempotency_key"] == f"tier_purchase_{tier_reward.id}_{user.id}_700"
    assert call["metadata"]["type"] == "campaign_tier_purchase"
    assert call["metadata"]["user_tier"] == "superfan"
    assert call["metadata"]["discount_cents"] == "300"
    assert call["customer_email"] == "fan@example.com"
    assert get_payment_store().snapshot().checkout_totals["succeeded"]["campaign_tier_purchase"] == 1


@pytest.mark.asyncio
async def test_credit_campaign_checkout(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()
    tier_reward = await _tier_reward(
        session_factory, club, upgrade_price_cents=None, is_credit_campaign=True, credit_cost=2
    )
    stripe_service = FakeStripe()

    async with session_factory() as session:
        quote, checkout = await TierPurchaseService(session, stripe_service=stripe_service).purchase(
            tier_reward.id, user=user
        )

    assert quote.is_credit_campaign is True
    assert checkout.amount_cents == 200
    assert stripe_service.calls[0]["metadata"]["type"] == "credit_purchase"
    assert stripe_service.calls[0]["metadata"]["credits"] == "2"


@pytest.mark.asyncio
async def test_rejections_happen_before_processor_call(session_factory, make_user, make_club, fund_wallet) -> None:
    user = await make_user()
    club = await make_club()
    claimed = await _tier_reward(session_factory, club)
    too_cheap = await _tier_reward(session_factory, club, upgrade_price_cents=55)
    inactive = await _tier_reward(session_factory, club, is_active=False)
    await fund_wallet(user, club, earned=40000)
    async with session_factory() as session:
        session.add(
            RewardClaim(
                user_id=user.id,
                tier_reward_id=claimed.id,
                club_id=club.id,
                claim_method="upgrade_purchased",
                original_price_cents=1000,
                paid_price_cents=750,
                discount_applied_cents=250,
            )
        )
        await session.commit()
    stripe_service = FakeStripe()

    async with session_factory() as session:
        service = TierPurchaseService(session, stripe_service=stripe_service)
        with pytest.raises(AlreadyClaimed):
            await service.purchase(claimed.id, user=user)
        with pytest.raises(InvalidPricing):
            await service.purchase(too_cheap.id, user=user)
        with pytest.raises(RewardUnavailable):
            await service.purchase(inactive.id, user=user)

    assert stripe_service.calls == []


@pytest.mark.asyncio
async def test_processor_failure_is_recorded(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()
    tier_reward = await _tier_reward(session_factory, club)

    async with session_factory() as session:
        with pytest.raises(ExternalServiceUnavailable):
            await TierPurchaseService(session, stripe_service=FakeStripe(fail=True)).purchase(tier_reward.id, user=user)

    totals = get_payment_store().snapshot().checkout_totals
    assert totals["failed"]["campaign_tier_purchase"] == 1
