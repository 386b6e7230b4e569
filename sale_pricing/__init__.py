"""Sale Pricing - price oracle and sale-stage pricing engine.

Fetches a cached, rate-limit aware price for a reference asset from
CoinMarketCap with CoinGecko failover, and prices a project token from
an ordered schedule of sale stages.
"""

from .calculator.stage_pricing import StagePricingEngine
from .oracle import PriceOracle

__version__ = "0.1.0"

__all__ = ["PriceOracle", "StagePricingEngine", "__version__"]
