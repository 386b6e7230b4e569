"""CoinGecko price provider for current spot prices.

This provider fetches the current price from the CoinGecko simple-price
endpoint. It serves as the fallback when CoinMarketCap is unavailable
or rate limited.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from ...core.exceptions import ProviderCallFailed
from ...core.models import Price, utc_now
from ...core.types import PriceSource
from ..base import HTTPPriceProvider

logger = logging.getLogger(__name__)

# Ticker -> CoinGecko coin id
DEFAULT_ASSET_IDS: dict[str, str] = {
    "SOL": "solana",
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDC": "usd-coin",
    "USDT": "tether",
}


class CoinGeckoPriceProvider(HTTPPriceProvider):
    """Fetches current prices from CoinGecko."""

    name = "coingecko"
    SOURCE = PriceSource.SECONDARY
    BASE_URL = "https://api.coingecko.com/api/v3"
    PRO_BASE_URL = "https://pro-api.coingecko.com/api/v3"
    ERROR_CODE = "COINGECKO_API_ERROR"
    PRICE_ENDPOINT = "/simple/price"

    def __init__(
        self,
        api_key: Optional[str] = None,
        quote_currency: str = "USD",
        asset_ids: dict[str, str] | None = None,
        source: PriceSource | None = None,
        rate_limit_calls: int = 30,
        rate_limit_period: int = 60,
        request_timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        """
        Initialize CoinGecko price provider.

        Args:
            api_key: Optional CoinGecko Pro API key
            quote_currency: Currency the price is converted to
            asset_ids: Extra or overriding ticker -> CoinGecko id entries
            source: Slot reported on returned prices
            rate_limit_calls: Rate limit per period
            rate_limit_period: Period in seconds
            request_timeout: Default HTTP timeout in seconds
            client: Optional shared httpx client
        """
        super().__init__(
            source=source,
            rate_limit_calls=rate_limit_calls,
            rate_limit_period=rate_limit_period,
            request_timeout=request_timeout,
            client=client,
        )
        self.api_key = api_key
        self.quote_currency = quote_currency.upper()
        self.asset_ids = {**DEFAULT_ASSET_IDS, **{k.upper(): v for k, v in (asset_ids or {}).items()}}
        if api_key:
            self.base_url = self.PRO_BASE_URL

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self.api_key:
            headers["x-cg-pro-api-key"] = self.api_key
        return headers

    def is_available(self) -> bool:
        """Check if CoinGecko API is available."""
        try:
            self._make_request("/ping", timeout=10.0)
            return True
        except ProviderCallFailed:
            return False

    def coin_id(self, asset_key: str) -> str:
        """CoinGecko id for a ticker; unknown tickers are passed through lowercased."""
        return self.asset_ids.get(asset_key.upper(), asset_key.lower())

    def fetch_price(self, asset_key: str, timeout: float | None = None) -> Price:
        """
        Get the current price for an asset.

        Args:
            asset_key: Asset symbol (e.g., "SOL")
            timeout: HTTP timeout override in seconds

        Returns:
            Price reported by CoinGecko
        """
        coin_id = self.coin_id(asset_key)
        vs = self.quote_currency.lower()
        endpoint = self.PRICE_ENDPOINT

        data = self._make_request(
            endpoint,
            params={
                "ids": coin_id,
                "vs_currencies": vs,
                "include_24hr_change": "true",
                "include_last_updated_at": "true",
            },
            timeout=timeout,
        )

        coin = data.get(coin_id)
        if not isinstance(coin, dict) or coin.get(vs) is None:
            raise self._malformed(endpoint, f"no {vs} price for {coin_id}")

        try:
            amount = Decimal(str(coin[vs]))
            change = Decimal(str(coin.get(f"{vs}_24h_change") or 0))
        except InvalidOperation as e:
            raise self._malformed(endpoint, f"non-numeric price {coin[vs]!r}") from e

        if not amount.is_finite() or amount <= 0:
            raise self._malformed(endpoint, f"non-positive price {amount}")

        last_updated = coin.get("last_updated_at")
        observed_at = (
            datetime.fromtimestamp(int(last_updated), tz=timezone.utc)
            if last_updated
            else utc_now()
        )

        return Price(
            amount=amount,
            change_24h_percent=change,
            observed_at=observed_at,
            source=self.source,
            provider=self.name,
            asset_key=asset_key.upper(),
            quote_currency=self.quote_currency,
        )
