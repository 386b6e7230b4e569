"""Pydantic data models for the sale pricing engine.

All data structures are immutable (frozen) after creation. A cache entry is
replaced as a whole, never edited field by field.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator

from .types import AssetKey, Percentage, PriceSource, StageStatus, TokenAmount


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Read naive datetimes as UTC; aware ones pass through."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Price(BaseModel):
    """Market price of a reference asset as reported by one provider."""

    amount: Decimal = Field(gt=0)
    change_24h_percent: Percentage = Decimal("0")
    observed_at: datetime
    source: PriceSource
    provider: str  # e.g. "coinmarketcap", "coingecko", "synthetic"
    asset_key: AssetKey
    quote_currency: str = "USD"

    model_config = {"frozen": True}

    @field_validator("observed_at")
    @classmethod
    def ensure_tz(cls, v: datetime) -> datetime:
        return as_utc(v)


class CacheEntry(BaseModel):
    """A cached price and the moment it was stored."""

    price: Price
    stored_at: datetime

    model_config = {"frozen": True}

    def is_stale(self, now: datetime, freshness: timedelta) -> bool:
        """Entries at or beyond the freshness window are stale."""
        return now - self.stored_at >= freshness


class RateLimitState(BaseModel):
    """Block window for a single provider."""

    blocked_until: datetime | None = None

    model_config = {"frozen": True}

    def is_blocked(self, now: datetime) -> bool:
        return self.blocked_until is not None and now < self.blocked_until


class SaleStage(BaseModel):
    """A phase of the token sale with a fixed price in reference-asset units."""

    id: str = Field(min_length=1)
    name: str
    price_per_unit: Decimal = Field(gt=0)
    unit_cap: TokenAmount | None = Field(default=None, gt=0)
    opens_at: datetime | None = None
    closes_at: datetime | None = None

    model_config = {"frozen": True}

    @field_validator("opens_at", "closes_at")
    @classmethod
    def ensure_tz(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)

    @model_validator(mode="after")
    def check_window(self) -> "SaleStage":
        if self.opens_at and self.closes_at and self.opens_at >= self.closes_at:
            raise ValueError(
                f"Stage {self.id}: opens_at ({self.opens_at.isoformat()}) must be "
                f"before closes_at ({self.closes_at.isoformat()})"
            )
        return self

    def is_open_at(self, now: datetime) -> bool:
        """Check if the stage window contains *now* (both bounds inclusive)."""
        if self.opens_at is not None and self.opens_at > now:
            return False
        if self.closes_at is not None and self.closes_at < now:
            return False
        return True


class StageTransition(BaseModel):
    """Stage change observed since the previous query."""

    from_stage: SaleStage | None = None
    to_stage: SaleStage
    time_until_next_open: timedelta | None = None

    model_config = {"frozen": True}

    @property
    def has_transitioned(self) -> bool:
        return self.from_stage is not None


class StagePrice(BaseModel):
    """A stage price expressed in reference-asset units and in the quote currency."""

    in_reference: Decimal
    in_quote: Decimal

    model_config = {"frozen": True}


class PriceChange(BaseModel):
    """Percentage price deltas versus the adjacent stages."""

    from_previous: Percentage = Decimal("0")
    to_next: Percentage = Decimal("0")

    model_config = {"frozen": True}


class ProjectTokenQuote(BaseModel):
    """Complete price quote for the project token at one instant."""

    stage: SaleStage
    price_in_reference: Decimal
    price_in_quote: Decimal
    reference_price: Price
    stage_transition: StageTransition
    previous_price: StagePrice | None = None
    next_price: StagePrice | None = None
    price_change: PriceChange = Field(default_factory=PriceChange)
    quoted_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}

    @property
    def reference_asset(self) -> AssetKey:
        return self.reference_price.asset_key

    @property
    def quote_currency(self) -> str:
        return self.reference_price.quote_currency


class StageScheduleEntry(BaseModel):
    """A configured stage together with its status at a point in time."""

    position: int
    stage: SaleStage
    status: StageStatus

    model_config = {"frozen": True}


class AuditEntry(BaseModel):
    """Audit trail entry for a provider request."""

    timestamp: datetime = Field(default_factory=utc_now)
    provider: str
    action: str  # "fetch", "ping"
    endpoint: str | None = None
    success: bool = True
    error_message: str | None = None
    duration_ms: int | None = None
    notes: str | None = None

    model_config = {"frozen": True}
