"""Operator snapshots of payment crediting and read-model cache health."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from superfan_api.api.dependencies.session import require_admin
from superfan_api.observability.payments import get_payment_store
from superfan_api.services.points.cache import get_read_model_cache


router = APIRouter(prefix="/observability", tags=["Observability"], dependencies=[Depends(require_admin)])


@router.get("/payments", summary="Payment observability snapshot")
async def get_payments_snapshot() -> dict[str, object]:
    """Checkout and webhook counters with the most recent success and failure."""
    return get_payment_store().snapshot().as_dict()


@router.get("/read-models", summary="Read-model cache statistics")
async def get_read_model_cache_stats() -> dict[str, int]:
    return asdict(get_read_model_cache().stats())
