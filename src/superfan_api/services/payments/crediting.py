"""Exactly-once application of payment processor events.

One database transaction covers the processed-event marker, the ledger credit,
the weekly settlement aggregate, the reserve pool and any claim rows. A crash
anywhere leaves none of them behind, and a redelivered event finds the marker
and becomes a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.db.session import dialect_insert, transactional
from superfan_api.domain.errors import DuplicateExternalEvent, InvalidPricing, NotFound
from superfan_api.domain.pricing import get_bundle
from superfan_api.domain.settlement import SettlementBreakdown
from superfan_api.models.club import Club
from superfan_api.models.payment_event import PaymentProviderEnum, ProcessedPaymentEvent
from superfan_api.models.tier_reward import CreditPurchase, RewardClaim
from superfan_api.models.wallet import TransactionSourceEnum, TransactionTypeEnum
from superfan_api.observability.tracing import get_tracer
from superfan_api.services.campaigns import CreditCampaignService
from superfan_api.services.payments.metadata import (
    CreditPurchaseMetadata,
    PointsPurchaseMetadata,
    TierPurchaseMetadata,
    parse_checkout_metadata,
)
from superfan_api.services.points.ledger import PointBucket, WalletLedger
from superfan_api.services.settlement import SettlementService

CREDITING_EVENT_TYPES = frozenset(
    {
        "checkout.session.completed",
        "checkout.session.async_payment_succeeded",
    }
)
_PAID_STATUSES = frozenset({"paid", "no_payment_required"})

tracer = get_tracer(__name__)


@dataclass(slots=True)
class CreditingOutcome:
    event_id: str
    event_type: str
    outcome: str
    purchase_type: str | None = None
    points_credited: int = 0
    wallet_id: UUID | None = None
    settlement: SettlementBreakdown | None = None

    @property
    def applied(self) -> bool:
        return self.outcome == "processed"


class PaymentEventService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        ledger: WalletLedger | None = None,
        settlement: SettlementService | None = None,
        provider: PaymentProviderEnum = PaymentProviderEnum.STRIPE,
    ) -> None:
        self._session = session
        self._ledger = ledger or WalletLedger(session)
        self._settlement = settlement or SettlementService(session)
        self._provider = provider

    async def apply_event(self, event: Mapping[str, Any]) -> CreditingOutcome:
        """Apply a verified ``{id, type, data}`` event at most once."""

        event_id = str(event["id"])
        event_type = str(event["type"])
        with tracer.start_as_current_span("payments.apply_event") as span:
            span.set_attribute("payment.event_id", event_id)
            span.set_attribute("payment.event_type", event_type)
            try:
                outcome = await self._apply_once(event_id, event_type, event)
            except DuplicateExternalEvent:
                logger.info("Payment event already processed", event_id=event_id, event_type=event_type)
                outcome = CreditingOutcome(event_id=event_id, event_type=event_type, outcome="duplicate")
            span.set_attribute("payment.outcome", outcome.outcome)
        return outcome

    async def _apply_once(self, event_id: str, event_type: str, event: Mapping[str, Any]) -> CreditingOutcome:
        async with transactional(self._session):
            if await self._already_processed(event_id):
                raise DuplicateExternalEvent(event_id=event_id)

            marker = ProcessedPaymentEvent(provider=self._provider, event_id=event_id, event_type=event_type)
            self._session.add(marker)
            try:
                await self._session.flush()
            except IntegrityError as exc:
                raise DuplicateExternalEvent(event_id=event_id) from exc

            outcome = await self._dispatch(event_id, event_type, event)
            marker.outcome = outcome.outcome
            await self._session.flush()

        logger.info(
            "Payment event applied",
            event_id=event_id,
            event_type=event_type,
            outcome=outcome.outcome,
            purchase_type=outcome.purchase_type,
            points=outcome.points_credited,
        )
        return outcome

    async def _dispatch(self, event_id: str, event_type: str, event: Mapping[str, Any]) -> CreditingOutcome:
        if event_type not in CREDITING_EVENT_TYPES:
            return CreditingOutcome(event_id=event_id, event_type=event_type, outcome="ignored")

        checkout = event.get("data", {}).get("object", {})
        payment_status = checkout.get("payment_status")
        if payment_status is not None and payment_status not in _PAID_STATUSES:
            logger.info("Checkout not paid yet", event_id=event_id, payment_status=payment_status)
            return CreditingOutcome(event_id=event_id, event_type=event_type, outcome="ignored")

        session_id = checkout.get("id")
        if not session_id:
            raise InvalidPricing("Checkout event has no session id", event_id=event_id)
        metadata = parse_checkout_metadata(checkout.get("metadata"))
        amount_total = checkout.get("amount_total")

        if isinstance(metadata, PointsPurchaseMetadata):
            return await self._credit_points(event_id, event_type, session_id, metadata, amount_total)
        if isinstance(metadata, TierPurchaseMetadata):
            return await self._record_tier_claim(event_id, event_type, session_id, metadata)
        return await self._record_credit_purchase(event_id, event_type, session_id, metadata)

    async def _credit_points(
        self,
        event_id: str,
        event_type: str,
        session_id: str,
        metadata: PointsPurchaseMetadata,
        amount_total: int | None,
    ) -> CreditingOutcome:
        bundle = get_bundle(metadata.bundle_index)
        if (bundle.points, bundle.bonus_pts, bundle.usd_cents) != (
            metadata.points,
            metadata.bonus_pts,
            metadata.usd_cents,
        ):
            raise InvalidPricing("Checkout metadata does not match the point bundle", bundle_index=metadata.bundle_index)

        club = await self._session.get(Club, metadata.club_id)
        if club is None:
            raise NotFound("Club not found", club_id=str(metadata.club_id))

        gross = int(amount_total) if amount_total is not None else metadata.usd_cents
        wallet = await self._ledger.get_or_create(metadata.user_id, metadata.club_id)
        result = await self._ledger.credit(
            wallet,
            metadata.total_points,
            kind=TransactionTypeEnum.PURCHASE,
            source=TransactionSourceEnum.PURCHASED,
            bucket=PointBucket.PURCHASED,
            affects_status=False,
            ref=session_id,
            metadata={
                "event_id": event_id,
                "checkout_session_id": session_id,
                "bundle_index": metadata.bundle_index,
                "bonus_pts": metadata.bonus_pts,
            },
            unit_sell_cents=club.system_purchase_rate,
            unit_settle_cents=club.point_settle_cents,
            usd_gross_cents=gross,
        )
        if not result.created:
            # Another event for the same checkout session already credited it.
            return CreditingOutcome(
                event_id=event_id,
                event_type=event_type,
                outcome="duplicate",
                purchase_type=metadata.type,
                wallet_id=wallet.id,
            )

        breakdown = await self._settlement.record_purchase(
            club=club,
            gross_cents=gross,
            points=metadata.total_points,
        )
        return CreditingOutcome(
            event_id=event_id,
            event_type=event_type,
            outcome="processed",
            purchase_type=metadata.type,
            points_credited=metadata.total_points,
            wallet_id=wallet.id,
            settlement=breakdown,
        )

    async def _record_tier_claim(
        self,
        event_id: str,
        event_type: str,
        session_id: str,
        metadata: TierPurchaseMetadata,
    ) -> CreditingOutcome:
        stmt = (
            dialect_insert(self._session, RewardClaim)
            .values(
                user_id=metadata.user_id,
                tier_reward_id=metadata.tier_reward_id,
                club_id=metadata.club_id,
                claim_method="upgrade_purchased",
                user_tier_at_claim=metadata.user_tier.value,
                original_price_cents=metadata.original_price_cents,
                paid_price_cents=metadata.final_price_cents,
                discount_applied_cents=metadata.discount_cents,
                checkout_session_id=session_id,
                metadata_json={"event_id": event_id},
            )
            .on_conflict_do_nothing()
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            logger.warning(
                "Tier reward already claimed; payment recorded without a new claim",
                user_id=str(metadata.user_id),
                tier_reward_id=str(metadata.tier_reward_id),
                checkout_session_id=session_id,
            )
            return CreditingOutcome(event_id=event_id, event_type=event_type, outcome="duplicate", purchase_type=metadata.type)
        return CreditingOutcome(event_id=event_id, event_type=event_type, outcome="processed", purchase_type=metadata.type)

    async def _record_credit_purchase(
        self,
        event_id: str,
        event_type: str,
        session_id: str,
        metadata: CreditPurchaseMetadata,
    ) -> CreditingOutcome:
        stmt = (
            dialect_insert(self._session, CreditPurchase)
            .values(
                user_id=metadata.user_id,
                tier_reward_id=metadata.tier_reward_id,
                club_id=metadata.club_id,
                credits_purchased=metadata.credits,
                price_paid_cents=metadata.price_cents,
                checkout_session_id=session_id,
                status="completed",
            )
            .on_conflict_do_nothing(index_elements=["checkout_session_id"])
        )
        result = await self._session.execute(stmt)
        if not result.rowcount:
            return CreditingOutcome(event_id=event_id, event_type=event_type, outcome="duplicate", purchase_type=metadata.type)

        await CreditCampaignService(self._session).add_credits(
            user_id=metadata.user_id,
            campaign_id=metadata.tier_reward_id,
            club_id=metadata.club_id,
            credits=metadata.credits,
        )
        logger.info(
            "Campaign credits purchased",
            user_id=str(metadata.user_id),
            campaign_id=str(metadata.tier_reward_id),
            credits=metadata.credits,
            checkout_session_id=session_id,
        )
        return CreditingOutcome(event_id=event_id, event_type=event_type, outcome="processed", purchase_type=metadata.type)

    async def _already_processed(self, event_id: str) -> bool:
        stmt = select(ProcessedPaymentEvent.id).where(
            ProcessedPaymentEvent.provider == self._provider,
            ProcessedPaymentEvent.event_id == event_id,
        )
        return (await self._session.execute(stmt)).first() is not None


__all__ = ["CREDITING_EVENT_TYPES", "CreditingOutcome", "PaymentEventService"]
