from __future__ import annotations

import pytest

from superfan_api.observability.payments import PaymentObservabilityStore


def test_checkout_tallies_and_last_events() -> None:
    store = PaymentObservabilityStore()

    store.record_checkout_success("points_purchase", "cs_1")
    store.record_checkout_success("points_purchase", "cs_2")
    store.record_checkout_failure("campaign_tier_purchase", "Payment processor timed out")

    payload = store.snapshot().as_dict()["checkout"]
    assert payload["totals"] == {
        "succeeded": {"points_purchase": 2},
        "failed": {"campaign_tier_purchase": 1},
    }
    assert payload["events"]["last_success_session_id"] == "cs_2"
    assert payload["events"]["last_failure_reason"] == "Payment processor timed out"
    assert payload["events"]["last_failure_at"] is not None


def test_webhook_outcomes() -> None:
    store = PaymentObservabilityStore()

    store.record_webhook(event_type="checkout.session.completed", outcome="processed", event_id="evt_1")
    store.record_webhook(event_type="checkout.session.completed", outcome="duplicate", event_id="evt_1")
    store.record_webhook(event_type="charge.refunded", outcome="ignored", event_id="evt_2")

    snapshot = store.snapshot()
    assert snapshot.webhook_totals["processed"] == {"checkout.session.completed": 1}
    assert snapshot.webhook_totals["duplicate"] == {"checkout.session.completed": 1}
    assert snapshot.webhook_totals["ignored"] == {"charge.refunded": 1}
    assert snapshot.webhook_events.last_event_id == "evt_2"
    assert snapshot.webhook_events.last_outcome == "ignored"

    with pytest.raises(ValueError):
        store.record_webhook(event_type="checkout.session.completed", outcome="exploded")


def test_reset_clears_counters() -> None:
    store = PaymentObservabilityStore()
    store.record_webhook(event_type="signature_error", outcome="failed", error="signature_verification_failed")

    store.reset()

    snapshot = store.snapshot()
    assert snapshot.webhook_totals["failed"] == {}
    assert snapshot.webhook_events.last_event_id is None
