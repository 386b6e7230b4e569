"""Custom exceptions for the sale pricing engine."""

from datetime import datetime


class SalePricingError(Exception):
    """Base exception for all sale pricing errors."""

    code = "SALE_PRICING_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ProviderCallFailed(SalePricingError):
    """Raised when a price provider fails or returns invalid data."""

    code = "PROVIDER_ERROR"

    def __init__(
        self,
        source: str,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        code: str | None = None,
    ):
        full_message = f"[{source}] {message}"
        super().__init__(
            full_message,
            {
                "source": source,
                "endpoint": endpoint,
                "status_code": status_code,
            },
        )
        self.source = source
        self.endpoint = endpoint
        self.status_code = status_code
        if code:
            self.code = code


class RateLimited(ProviderCallFailed):
    """Raised when a provider rate limit is hit (HTTP 429) or still active."""

    code = "RATE_LIMIT"

    def __init__(
        self,
        source: str,
        retry_after_seconds: int | None = None,
        reset_at: datetime | None = None,
        endpoint: str | None = None,
    ):
        message = "Rate limit exceeded"
        if retry_after_seconds:
            message += f", retry after {retry_after_seconds}s"
        super().__init__(source, message, endpoint=endpoint, status_code=429)
        self.retry_after_seconds = retry_after_seconds
        self.reset_at = reset_at
        self.details["reset_at"] = reset_at.isoformat() if reset_at else None


class AllProvidersExhausted(SalePricingError):
    """Raised when every provider failed on every retry attempt.

    Carries the primary provider's last error; the primary is the canonical
    source, so its failure is the one reported.
    """

    code = "ALL_PROVIDERS_EXHAUSTED"

    def __init__(self, asset_key: str, attempts: int, last_error: ProviderCallFailed):
        message = (
            f"All price providers failed for {asset_key} after {attempts} attempt(s): "
            f"{last_error.message}"
        )
        super().__init__(
            message,
            {"asset_key": asset_key, "attempts": attempts, "last_error": last_error.message},
        )
        self.asset_key = asset_key
        self.attempts = attempts
        self.last_error = last_error


class Cancelled(SalePricingError):
    """Raised when a price lookup is cancelled or runs past its deadline."""

    code = "CANCELLED"

    def __init__(self, asset_key: str, reason: str = "cancelled"):
        super().__init__(
            f"Price lookup for {asset_key} {reason}",
            {"asset_key": asset_key, "reason": reason},
        )
        self.asset_key = asset_key
        self.reason = reason


class NoStagesConfigured(SalePricingError):
    """Raised when the sale stage sequence is empty."""

    code = "NO_STAGES_DEFINED"

    def __init__(self):
        super().__init__("No sale stages defined")


class ReferencePriceUnavailable(SalePricingError):
    """Raised when the reference asset price cannot be obtained for a quote."""

    code = "SOL_PRICE_UNAVAILABLE"

    def __init__(self, asset_key: str, stage_id: str | None = None, reason: str | None = None):
        message = f"Failed to fetch {asset_key} price"
        if reason:
            message += f": {reason}"
        super().__init__(message, {"asset_key": asset_key, "stage": stage_id})
        self.asset_key = asset_key
        self.stage_id = stage_id


class ConfigurationError(SalePricingError):
    """Raised when configuration is invalid or missing."""

    code = "CONFIG_VALIDATION_ERROR"

    def __init__(self, config_key: str, message: str):
        full_message = f"Configuration error [{config_key}]: {message}"
        super().__init__(full_message, {"config_key": config_key})
        self.config_key = config_key
