"""Configuration management for price providers and the pricing engine.

Loads configuration from environment variables or .env file.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .types import Environment

DEFAULT_STAGES_FILE = Path(__file__).parent.parent / "data" / "sale_stages.yaml"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(name, f"expected an integer, got {raw!r}") from e


@dataclass
class PricingConfig:
    """Settings for the price oracle, its providers and the sale stages."""

    environment: Environment = Environment.PRODUCTION

    # CoinMarketCap (primary provider) - required outside development
    coinmarketcap_api_key: Optional[str] = None

    # CoinGecko (secondary provider) - public API works without key
    coingecko_api_key: Optional[str] = None

    reference_asset: str = "SOL"
    quote_currency: str = "USD"

    # Oracle behaviour
    cache_ttl_seconds: int = 60
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    default_block_seconds: int = 300  # used when a 429 carries no reset hint

    # Client-side throttle applied by each HTTP provider
    max_price_calls_per_minute: int = 30

    stages_file: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "PricingConfig":
        """Load configuration from environment variables."""
        env_raw = os.getenv("SALE_PRICING_ENV", Environment.PRODUCTION.value).lower()
        try:
            environment = Environment(env_raw)
        except ValueError as e:
            raise ConfigurationError(
                "SALE_PRICING_ENV",
                f"must be one of {[m.value for m in Environment]}, got {env_raw!r}",
            ) from e

        stages_file = os.getenv("SALE_STAGES_FILE")

        return cls(
            environment=environment,
            coinmarketcap_api_key=os.getenv("COINMARKETCAP_API_KEY"),
            coingecko_api_key=os.getenv("COINGECKO_API_KEY"),
            reference_asset=os.getenv("REFERENCE_ASSET", "SOL").upper(),
            quote_currency=os.getenv("QUOTE_CURRENCY", "USD").upper(),
            cache_ttl_seconds=_env_int("PRICE_CACHE_SECONDS", 60),
            max_retries=_env_int("PRICE_MAX_RETRIES", 3),
            base_delay_ms=_env_int("PRICE_BASE_DELAY_MS", 1000),
            max_delay_ms=_env_int("PRICE_MAX_DELAY_MS", 10000),
            default_block_seconds=_env_int("PRICE_RATE_LIMIT_BLOCK_SECONDS", 300),
            max_price_calls_per_minute=_env_int("MAX_PRICE_CALLS_PER_MINUTE", 30),
            stages_file=Path(stages_file) if stages_file else None,
        )

    @classmethod
    def load(cls, env_file: Optional[Path] = None) -> "PricingConfig":
        """
        Load configuration from .env file and environment variables.

        Args:
            env_file: Optional path to .env file. If not provided,
                      looks for .env in the project root.

        Returns:
            PricingConfig instance with loaded values
        """
        if env_file:
            load_dotenv(env_file)
        else:
            project_root = Path(__file__).parent.parent.parent
            env_path = project_root / ".env"
            if env_path.exists():
                load_dotenv(env_path)

        return cls.from_env()

    @property
    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def resolved_stages_file(self) -> Path:
        """Stage file to load, falling back to the bundled schedule."""
        return self.stages_file or DEFAULT_STAGES_FILE

    def has_coinmarketcap(self) -> bool:
        """Check if CoinMarketCap API key is configured."""
        return bool(self.coinmarketcap_api_key)

    def has_coingecko(self) -> bool:
        """Check if CoinGecko API key is configured (optional)."""
        return bool(self.coingecko_api_key)

    def validate(self) -> "PricingConfig":
        """Raise ConfigurationError on the first invalid setting."""
        if not 1 <= self.cache_ttl_seconds <= 3600:
            raise ConfigurationError(
                "cache_ttl_seconds", "price cache window must be between 1 and 3600 seconds"
            )
        if self.max_retries < 0:
            raise ConfigurationError("max_retries", "must not be negative")
        if self.base_delay_ms <= 0:
            raise ConfigurationError("base_delay_ms", "must be positive")
        if self.max_delay_ms < self.base_delay_ms:
            raise ConfigurationError("max_delay_ms", "must be >= base_delay_ms")
        if self.default_block_seconds <= 0:
            raise ConfigurationError("default_block_seconds", "must be positive")
        if self.max_price_calls_per_minute <= 0:
            raise ConfigurationError("max_price_calls_per_minute", "API rate limit must be positive")
        if not self.reference_asset:
            raise ConfigurationError("reference_asset", "is not configured")
        if not self.is_development and not self.has_coinmarketcap():
            raise ConfigurationError(
                "COINMARKETCAP_API_KEY", "CoinMarketCap API key is not configured"
            )
        return self

