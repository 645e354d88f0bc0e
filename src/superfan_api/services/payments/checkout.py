"""Card checkout for point bundles."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.core.settings import settings
from superfan_api.domain.errors import EconomyError, NotFound
from superfan_api.domain.pricing import PointBundle, get_bundle
from superfan_api.models.club import Club
from superfan_api.models.user import User
from superfan_api.observability.payments import get_payment_store
from superfan_api.services.payments.metadata import PointsPurchaseMetadata, to_processor_metadata
from superfan_api.services.payments.stripe_service import StripeService


@dataclass(slots=True)
class CheckoutSessionResult:
    checkout_session_id: str
    checkout_url: str
    amount_cents: int
    idempotency_key: str


def points_purchase_idempotency_key(user_id: UUID, club_id: UUID, bundle_index: int, request_id: str) -> str:
    return f"points_purchase_{club_id}_{user_id}_{bundle_index}_{request_id}"


class PointsCheckoutService:
    def __init__(self, session: AsyncSession, *, stripe_service: StripeService | None = None) -> None:
        self._session = session
        self._stripe = stripe_service or StripeService()

    async def create_checkout(
        self,
        *,
        user: User,
        club_id: UUID,
        bundle_index: int,
        request_id: str | None = None,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> CheckoutSessionResult:
        """Open a processor session whose completion credits the bundle's points."""

        bundle: PointBundle = get_bundle(bundle_index)
        club = await self._session.get(Club, club_id)
        if club is None or not club.is_active:
            raise NotFound("Club not found", club_id=str(club_id))

        metadata = PointsPurchaseMetadata(
            user_id=user.id,
            club_id=club.id,
            bundle_index=bundle_index,
            points=bundle.points,
            bonus_pts=bundle.bonus_pts,
            usd_cents=bundle.usd_cents,
        )
        key = points_purchase_idempotency_key(user.id, club.id, bundle_index, request_id or uuid4().hex)
        store = get_payment_store()
        try:
            checkout = await self._stripe.create_checkout_session(
                product_name=f"{club.name}: {bundle.display_name}",
                amount_cents=bundle.usd_cents,
                metadata=to_processor_metadata(metadata),
                idempotency_key=key,
                success_url=success_url or f"{settings.frontend_url}/clubs/{club.id}?purchase=success",
                cancel_url=cancel_url or f"{settings.frontend_url}/clubs/{club.id}?purchase=cancelled",
                customer_email=user.email,
            )
        except EconomyError as exc:
            store.record_checkout_failure(metadata.type, str(exc))
            raise

        store.record_checkout_success(metadata.type, checkout.id)
        logger.info(
            "Points checkout created",
            user_id=str(user.id),
            club_id=str(club.id),
            bundle_index=bundle_index,
            session_id=checkout.id,
        )
        return CheckoutSessionResult(
            checkout_session_id=checkout.id,
            checkout_url=checkout.url,
            amount_cents=bundle.usd_cents,
            idempotency_key=key,
        )


__all__ = ["CheckoutSessionResult", "PointsCheckoutService", "points_purchase_idempotency_key"]
