"""In-memory counters for checkout creation and payment event crediting."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Dict

from superfan_api.core.time import utcnow

WEBHOOK_OUTCOMES = ("processed", "duplicate", "ignored", "failed")


@dataclass
class CheckoutEventLog:
    last_success_at: datetime | None = None
    last_success_session_id: str | None = None
    last_failure_at: datetime | None = None
    last_failure_reason: str | None = None


@dataclass
class WebhookEventLog:
    last_event_at: datetime | None = None
    last_event_id: str | None = None
    last_event_type: str | None = None
    last_outcome: str | None = None
    last_failure_at: datetime | None = None
    last_failure_reason: str | None = None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class PaymentObservabilitySnapshot:
    checkout_totals: Dict[str, Dict[str, int]]
    webhook_totals: Dict[str, Dict[str, int]]
    checkout_events: CheckoutEventLog
    webhook_events: WebhookEventLog

    def as_dict(self) -> Dict[str, object]:
        return {
            "checkout": {
                "totals": self.checkout_totals,
                "events": {
                    "last_success_at": _iso(self.checkout_events.last_success_at),
                    "last_success_session_id": self.checkout_events.last_success_session_id,
                    "last_failure_at": _iso(self.checkout_events.last_failure_at),
                    "last_failure_reason": self.checkout_events.last_failure_reason,
                },
            },
            "webhooks": {
                "totals": self.webhook_totals,
                "events": {
                    "last_event_at": _iso(self.webhook_events.last_event_at),
                    "last_event_id": self.webhook_events.last_event_id,
                    "last_event_type": self.webhook_events.last_event_type,
                    "last_outcome": self.webhook_events.last_outcome,
                    "last_failure_at": _iso(self.webhook_events.last_failure_at),
                    "last_failure_reason": self.webhook_events.last_failure_reason,
                },
            },
        }


@dataclass
class PaymentObservabilityStore:
    """Thread-safe tallies keyed by checkout kind and webhook outcome."""

    _lock: Lock = field(default_factory=Lock)
    _checkout_totals: Dict[str, Counter] = field(
        default_factory=lambda: {"succeeded": Counter(), "failed": Counter()}
    )
    _checkout_events: CheckoutEventLog = field(default_factory=CheckoutEventLog)
    _webhook_totals: Dict[str, Counter] = field(
        default_factory=lambda: {outcome: Counter() for outcome in WEBHOOK_OUTCOMES}
    )
    _webhook_events: WebhookEventLog = field(default_factory=WebhookEventLog)

    def record_checkout_success(self, kind: str, session_id: str | None) -> None:
        with self._lock:
            self._checkout_totals["succeeded"][kind] += 1
            self._checkout_events.last_success_at = utcnow()
            self._checkout_events.last_success_session_id = session_id

    def record_checkout_failure(self, kind: str, reason: str) -> None:
        with self._lock:
            self._checkout_totals["failed"][kind] += 1
            self._checkout_events.last_failure_at = utcnow()
            self._checkout_events.last_failure_reason = reason

    def record_webhook(
        self,
        *,
        event_type: str,
        outcome: str,
        event_id: str | None = None,
        error: str | None = None,
    ) -> None:
        if outcome not in self._webhook_totals:
            raise ValueError(f"Unknown webhook outcome {outcome!r}")
        with self._lock:
            self._webhook_totals[outcome][event_type] += 1
            now = utcnow()
            self._webhook_events.last_event_at = now
            self._webhook_events.last_event_id = event_id
            self._webhook_events.last_event_type = event_type
            self._webhook_events.last_outcome = outcome
            if outcome == "failed":
                self._webhook_events.last_failure_at = now
                self._webhook_events.last_failure_reason = error

    def snapshot(self) -> PaymentObservabilitySnapshot:
        with self._lock:
            checkout_totals = {bucket: dict(counter) for bucket, counter in self._checkout_totals.items()}
            webhook_totals = {bucket: dict(counter) for bucket, counter in self._webhook_totals.items()}
            checkout_events = CheckoutEventLog(**vars(self._checkout_events))
            webhook_events = WebhookEventLog(**vars(self._webhook_events))
        return PaymentObservabilitySnapshot(
            checkout_totals=checkout_totals,
            webhook_totals=webhook_totals,
            checkout_events=checkout_events,
            webhook_events=webhook_events,
        )

    def reset(self) -> None:
        with self._lock:
            for counter in self._checkout_totals.values():
                counter.clear()
            for counter in self._webhook_totals.values():
                counter.clear()
            self._checkout_events = CheckoutEventLog()
            self._webhook_events = WebhookEventLog()


_PAYMENT_STORE = PaymentObservabilityStore()


def get_payment_store() -> PaymentObservabilityStore:
    return _PAYMENT_STORE
