"""Builds the oracle and pricing engine from configuration.

Production wiring uses CoinMarketCap as the primary provider and CoinGecko
as the secondary. Development wiring swaps in synthetic providers so the
whole flow runs without API keys.
"""

import logging

from .calculator.stage_pricing import StagePricingEngine
from .core.config import PricingConfig
from .core.types import PriceSource
from .oracle import PriceOracle
from .providers.price import (
    CoinGeckoPriceProvider,
    CoinMarketCapPriceProvider,
    SyntheticPriceProvider,
)
from .stages.loader import load_stages

logger = logging.getLogger(__name__)


def build_price_oracle(config: PricingConfig) -> PriceOracle:
    """Create a PriceOracle with the providers selected by *config*."""
    config.validate()

    if config.is_development:
        logger.info("Development mode: using synthetic price providers")
        primary = SyntheticPriceProvider(
            quote_currency=config.quote_currency, name="synthetic-primary"
        )
        secondary = SyntheticPriceProvider(
            quote_currency=config.quote_currency, name="synthetic-secondary"
        )
        fallback = SyntheticPriceProvider(quote_currency=config.quote_currency)
    else:
        primary = CoinMarketCapPriceProvider(
            api_key=config.coinmarketcap_api_key,
            quote_currency=config.quote_currency,
            source=PriceSource.PRIMARY,
            rate_limit_calls=config.max_price_calls_per_minute,
        )
        secondary = CoinGeckoPriceProvider(
            api_key=config.coingecko_api_key,
            quote_currency=config.quote_currency,
            source=PriceSource.SECONDARY,
            rate_limit_calls=config.max_price_calls_per_minute,
        )
        fallback = None

    return PriceOracle(
        primary=primary,
        secondary=secondary,
        fallback=fallback,
        cache_ttl_seconds=config.cache_ttl_seconds,
        max_retries=config.max_retries,
        base_delay_ms=config.base_delay_ms,
        max_delay_ms=config.max_delay_ms,
        default_block_seconds=config.default_block_seconds,
    )


def build_pricing_engine(
    config: PricingConfig,
    oracle: PriceOracle | None = None,
) -> StagePricingEngine:
    """Create a StagePricingEngine over the configured stage schedule."""
    stages = load_stages(config.resolved_stages_file)
    return StagePricingEngine(
        oracle=oracle or build_price_oracle(config),
        stages=stages,
        reference_asset_key=config.reference_asset,
    )
