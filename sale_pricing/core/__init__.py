"""Core module - data models, types, configuration and exceptions."""

from .models import (
    Price,
    CacheEntry,
    RateLimitState,
    SaleStage,
    StageTransition,
    StagePrice,
    PriceChange,
    ProjectTokenQuote,
    StageScheduleEntry,
    AuditEntry,
)
from .types import (
    PriceSource,
    StageStatus,
    Environment,
)
from .exceptions import (
    SalePricingError,
    ProviderCallFailed,
    RateLimited,
    AllProvidersExhausted,
    Cancelled,
    NoStagesConfigured,
    ReferencePriceUnavailable,
    ConfigurationError,
)
from .config import PricingConfig

__all__ = [
    # Models
    "Price",
    "CacheEntry",
    "RateLimitState",
    "SaleStage",
    "StageTransition",
    "StagePrice",
    "PriceChange",
    "ProjectTokenQuote",
    "StageScheduleEntry",
    "AuditEntry",
    # Types
    "PriceSource",
    "StageStatus",
    "Environment",
    # Exceptions
    "SalePricingError",
    "ProviderCallFailed",
    "RateLimited",
    "AllProvidersExhausted",
    "Cancelled",
    "NoStagesConfigured",
    "ReferencePriceUnavailable",
    "ConfigurationError",
    # Config
    "PricingConfig",
]
