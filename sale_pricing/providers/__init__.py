"""Price providers for the oracle.

This module contains:
- CoinMarketCap (primary)
- CoinGecko (secondary)
- Synthetic prices (development)
"""

from .base import BasePriceProvider, HTTPPriceProvider

__all__ = ["BasePriceProvider", "HTTPPriceProvider"]
