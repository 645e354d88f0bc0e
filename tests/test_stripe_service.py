from __future__ import annotations

import time
from types import SimpleNamespace
from typing import Any

import pytest
import stripe

from superfan_api.domain.errors import ExternalServiceUnavailable
from superfan_api.services.payments.stripe_service import StripeService


@pytest.mark.asyncio
async def test_create_checkout_session_builds_single_line_item(monkeypatch: pytest.MonkeyPatch) -> None:
    captured_kwargs: dict[str, Any] = {}

    def fake_create(**kwargs: Any):
        captured_kwargs.update(kwargs)
        return SimpleNamespace(id="cs_test_123", url="https://checkout.test/cs_test_123")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

    service = StripeService()
    session = await service.create_checkout_session(
        product_name="Night Owls: 1,000 Points ($10.00)",
        amount_cents=1000,
        metadata={"type": "points_purchase", "bundle_index": "0"},
        idempotency_key="points_purchase_abc",
        customer_email="test@example.com",
        success_url="https://example.com/success",
        cancel_url="https://example.com/cancel",
    )

    assert session.id == "cs_test_123"
    assert captured_kwargs["mode"] == "payment"
    assert captured_kwargs["idempotency_key"] == "points_purchase_abc"
    line_item = captured_kwargs["line_items"][0]
    assert line_item["price_data"]["unit_amount"] == 1000
    assert line_item["price_data"]["currency"] == "usd"
    assert captured_kwargs["metadata"]["type"] == "points_purchase"
    assert captured_kwargs["payment_intent_data"]["metadata"]["bundle_index"] == "0"
    assert captured_kwargs["customer_email"] == "test@example.com"


@pytest.mark.asyncio
async def test_processor_errors_become_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(**_: Any):
        raise stripe.StripeError("creation failed")

    monkeypatch.setattr(stripe.checkout.Session, "create", boom)
    service = StripeService()

    with pytest.raises(ExternalServiceUnavailable):
        await service.create_checkout_session(
            product_name="Bundle",
            amount_cents=1000,
            metadata={},
            idempotency_key="key",
            success_url="https://example.com/success",
            cancel_url="https://example.com/cancel",
        )


@pytest.mark.asyncio
async def test_slow_processor_times_out(monkeypatch: pytest.MonkeyPatch) -> None:
    def slow(**_: Any):
        time.sleep(0.5)
        return SimpleNamespace(id="cs_late", url="https://checkout.test/late")

    monkeypatch.setattr(stripe.checkout.Session, "create", slow)
    service = StripeService(timeout_seconds=0.05)

    with pytest.raises(ExternalServiceUnavailable):
        await service.create_checkout_session(
            product_name="Bundle",
            amount_cents=1000,
            metadata={},
            idempotency_key="key",
            success_url="https://example.com/success",
            cancel_url="https://example.com/cancel",
        )


def test_construct_webhook_event_verifies_signature(monkeypatch: pytest.MonkeyPatch) -> None:
    expected_event = {"type": "checkout.session.completed", "id": "evt_123"}

    def fake_construct(payload: bytes, signature: str, secret: str):
        assert signature == "sig_header"
        return expected_event

    monkeypatch.setattr(stripe.Webhook, "construct_event", fake_construct)

    service = StripeService()
    event = service.construct_webhook_event(b"{}", "sig_header")
    assert event is expected_event


def test_construct_webhook_event_raises_on_bad_signature(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(*_: Any, **__: Any):
        raise stripe.SignatureVerificationError("bad signature", "payload")

    monkeypatch.setattr(stripe.Webhook, "construct_event", boom)
    service = StripeService()

    with pytest.raises(stripe.SignatureVerificationError):
        service.construct_webhook_event(b"{}", "sig_bad")
