"""Price data providers."""

from .coinmarketcap_provider import CoinMarketCapPriceProvider
from .coingecko_price import CoinGeckoPriceProvider, DEFAULT_ASSET_IDS
from .synthetic_provider import SyntheticPriceProvider

__all__ = [
    "CoinMarketCapPriceProvider",
    "CoinGeckoPriceProvider",
    "DEFAULT_ASSET_IDS",
    "SyntheticPriceProvider",
]
