from __future__ import annotations

from typing import List
from uuid import UUID

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.api.dependencies.session import require_user
from superfan_api.api.errors import as_http_exception, economy_errors
from superfan_api.db.session import get_session
from superfan_api.domain.errors import DuplicateExternalEvent, EconomyError
from superfan_api.domain.pricing import POINT_BUNDLES
from superfan_api.models.user import User
from superfan_api.observability.payments import get_payment_store
from superfan_api.services.payments import (
    CryptoPurchaseService,
    PaymentEventService,
    PointsCheckoutService,
    StripeService,
)
from superfan_api.services.points import WalletLedger


router = APIRouter(prefix="/payments", tags=["payments"])


class BundleResponse(BaseModel):
    index: int
    points: int
    bonus_pts: int
    total_points: int
    usd_cents: int
    display_name: str


class CheckoutRequest(BaseModel):
    """Request model for buying a point bundle by card."""

    model_config = ConfigDict(extra="forbid")

    club_id: UUID
    bundle_index: int = Field(..., ge=0, description="Index into the bundle catalog")
    request_id: str | None = Field(default=None, max_length=64, description="Client retry key")
    success_url: str | None = Field(default=None, description="URL to redirect after successful payment")
    cancel_url: str | None = Field(default=None, description="URL to redirect after cancelled payment")


class CheckoutResponse(BaseModel):
    """Response model for checkout session creation."""

    checkout_session_id: str = Field(..., description="Stripe checkout session ID")
    checkout_url: str = Field(..., description="URL to redirect user for payment")
    amount_cents: int = Field(..., description="Charged amount in cents")


class CryptoPurchaseRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    club_id: UUID
    bundle_index: int = Field(..., ge=0)
    tx_hash: str = Field(..., min_length=64, max_length=66)


class CryptoPurchaseResponse(BaseModel):
    tx_hash: str
    points_credited: int
    balance_pts: int
    duplicate: bool = False


class WebhookResponse(BaseModel):
    """Response model for webhook processing."""

    success: bool = Field(..., description="Whether the event was accepted")
    message: str = Field(..., description="Processing result message")


@router.get("/bundles", response_model=List[BundleResponse])
async def list_bundles() -> List[BundleResponse]:
    return [
        BundleResponse(
            index=index,
            points=bundle.points,
            bonus_pts=bundle.bonus_pts,
            total_points=bundle.total_points,
            usd_cents=bundle.usd_cents,
            display_name=bundle.display_name,
        )
        for index, bundle in enumerate(POINT_BUNDLES)
    ]


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    request: CheckoutRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> CheckoutResponse:
    """Create a Stripe checkout session for a point bundle.

    Points are credited when the completion webhook arrives, never here.
    """

    with economy_errors():
        result = await PointsCheckoutService(db).create_checkout(
            user=user,
            club_id=request.club_id,
            bundle_index=request.bundle_index,
            request_id=request.request_id,
            success_url=request.success_url,
            cancel_url=request.cancel_url,
        )
    return CheckoutResponse(
        checkout_session_id=result.checkout_session_id,
        checkout_url=result.checkout_url,
        amount_cents=result.amount_cents,
    )


@router.post("/crypto", response_model=CryptoPurchaseResponse)
async def purchase_with_crypto(
    request: CryptoPurchaseRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> CryptoPurchaseResponse:
    """Credit a bundle paid by an on-chain stablecoin transfer."""

    try:
        result = await CryptoPurchaseService(db).purchase(
            user_id=user.id,
            club_id=request.club_id,
            bundle_index=request.bundle_index,
            tx_hash=request.tx_hash,
        )
    except DuplicateExternalEvent as exc:
        wallet = await WalletLedger(db).get_wallet(user.id, request.club_id)
        return CryptoPurchaseResponse(
            tx_hash=str(exc.details.get("tx_hash", request.tx_hash)),
            points_credited=0,
            balance_pts=wallet.balance_pts if wallet else 0,
            duplicate=True,
        )
    except EconomyError as exc:
        raise as_http_exception(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"code": "invalid_request", "message": str(exc)}) from exc

    return CryptoPurchaseResponse(
        tx_hash=result.tx_hash,
        points_credited=result.points_credited,
        balance_pts=result.wallet.balance_pts,
    )


@router.post("/webhooks/stripe", response_model=WebhookResponse)
async def handle_stripe_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="stripe-signature"),
    db: AsyncSession = Depends(get_session),
) -> WebhookResponse:
    """Verify and apply a Stripe event.

    Redelivered events are acknowledged without effect. Permanent failures are
    acknowledged so the processor stops retrying; datastore failures return 5xx.
    """

    delivery_id = request.headers.get("stripe-webhook-id")
    payments_store = get_payment_store()
    payload = await request.body()

    try:
        event = StripeService().construct_webhook_event(payload, stripe_signature)
    except stripe.SignatureVerificationError:
        logger.warning("Invalid Stripe webhook signature", delivery_id=delivery_id)
        payments_store.record_webhook(
            event_type="signature_error",
            outcome="failed",
            event_id=None,
            error="signature_verification_failed",
        )
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    event_id = event.get("id")
    event_type = event.get("type", "unknown")
    logger.info(
        "Processing Stripe webhook event",
        event_id=event_id,
        event_type=event_type,
        delivery_id=delivery_id,
        livemode=event.get("livemode"),
    )

    try:
        outcome = await PaymentEventService(db).apply_event(event)
    except EconomyError as exc:
        payments_store.record_webhook(event_type=event_type, outcome="failed", event_id=event_id, error=str(exc))
        if exc.status_code >= 500:
            logger.error("Stripe webhook processing error", event_id=event_id, error=str(exc))
            raise as_http_exception(exc) from exc
        logger.error("Stripe webhook rejected", event_id=event_id, code=exc.code, error=str(exc))
        return WebhookResponse(success=False, message=exc.code)

    payments_store.record_webhook(event_type=event_type, outcome=outcome.outcome, event_id=event_id, error=None)
    return WebhookResponse(success=True, message=f"{outcome.outcome} {event_type} event")
