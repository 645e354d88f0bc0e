from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./superfan.db"
    database_echo: bool = False
    log_level: str = "INFO"
    otel_service_name: str = "superfan-api"
    otel_exporter_otlp_endpoint: str = ""

    # Stripe configuration
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_request_timeout_seconds: float = 10.0

    # Checkout redirect base
    frontend_url: str = "http://localhost:3000"

    # Internal API security (server-to-server callers)
    internal_api_key: str = ""

    # Economy constants (unified peg: 100 points = $1)
    platform_fee_rate: float = 0.10
    breakage_rate: float = 0.15
    reserve_buffer_rate: float = 0.10
    presale_hold_hours: int = 24
    minimum_charge_cents: int = 50
    credit_unit_cents: int = 100
    status_thresholds: dict[str, int] = Field(
        default_factory=lambda: {"cadet": 0, "resident": 5000, "headliner": 15000, "superfan": 40000}
    )
    default_tier_discounts: dict[str, int] = Field(
        default_factory=lambda: {"resident": 10, "headliner": 15, "superfan": 25}
    )
    ledger_conflict_retries: int = 3

    # Read-model cache (breakdowns, leaderboards)
    read_model_cache_ttl_seconds: float = 5.0
    read_model_cache_max_entries: int = 1024
    leaderboard_default_limit: int = 25

    # Presale hold expiry reconciliation
    hold_expiry_worker_enabled: bool = False
    hold_expiry_interval_seconds: int = 60
    hold_expiry_batch_size: int = 200

    # Blockchain verifier (crypto-denominated point purchases)
    chain_rpc_url: str = ""
    chain_receiving_address: str = ""
    chain_token_contract: str = ""
    chain_token_decimals: int = 6
    chain_min_confirmations: int = 1
    chain_request_timeout_seconds: float = 10.0
    chain_amount_tolerance_cents: int = 1
    chain_allowed_senders: list[str] = Field(default_factory=list)

    @field_validator("chain_allowed_senders", mode="before")
    @classmethod
    def _parse_address_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip().lower() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip().lower() for item in value if str(item).strip()]
        return []

    @field_validator("platform_fee_rate", "breakage_rate", "reserve_buffer_rate")
    @classmethod
    def _validate_rate(cls, value: float) -> float:
        if not 0 <= value < 1:
            raise ValueError("rates must be within [0, 1)")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
