"""Typed checkout metadata carried through the payment processor and back."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from superfan_api.domain.errors import InvalidPricing
from superfan_api.domain.status import StatusTier


class _CheckoutMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    user_id: UUID
    club_id: UUID


class PointsPurchaseMetadata(_CheckoutMetadata):
    type: Literal["points_purchase"] = "points_purchase"
    bundle_index: int = Field(ge=0)
    points: int = Field(gt=0)
    bonus_pts: int = Field(default=0, ge=0)
    usd_cents: int = Field(gt=0)

    @property
    def total_points(self) -> int:
        return self.points + self.bonus_pts


class TierPurchaseMetadata(_CheckoutMetadata):
    type: Literal["campaign_tier_purchase"] = "campaign_tier_purchase"
    tier_reward_id: UUID
    user_tier: StatusTier
    original_price_cents: int = Field(gt=0)
    final_price_cents: int = Field(gt=0)
    discount_cents: int = Field(ge=0)


class CreditPurchaseMetadata(_CheckoutMetadata):
    type: Literal["credit_purchase"] = "credit_purchase"
    tier_reward_id: UUID
    credits: int = Field(gt=0)
    price_cents: int = Field(gt=0)


CheckoutMetadata = Annotated[
    Union[PointsPurchaseMetadata, TierPurchaseMetadata, CreditPurchaseMetadata],
    Field(discriminator="type"),
]

_adapter: TypeAdapter[CheckoutMetadata] = TypeAdapter(CheckoutMetadata)


def parse_checkout_metadata(raw: Mapping[str, Any] | None) -> CheckoutMetadata:
    """Validate processor metadata; unknown types and stray keys are rejected."""

    try:
        return _adapter.validate_python(dict(raw or {}))
    except ValidationError as exc:
        raise InvalidPricing("Checkout metadata is malformed", errors=exc.errors(include_url=False, include_context=False)) from exc


def to_processor_metadata(metadata: _CheckoutMetadata) -> dict[str, str]:
    """Flatten to the string-only map the processor stores."""

    return {key: str(value) for key, value in metadata.model_dump(mode="json").items()}


__all__ = [
    "CheckoutMetadata",
    "CreditPurchaseMetadata",
    "PointsPurchaseMetadata",
    "TierPurchaseMetadata",
    "parse_checkout_metadata",
    "to_processor_metadata",
]
