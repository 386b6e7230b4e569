"""CoinMarketCap price provider.

Primary source for the reference asset price. Uses the latest-quotes
endpoint, which reports the USD price and the 24h percentage change.

API documentation: https://coinmarketcap.com/api/documentation/v1/
Basic plan: 10,000 credits/month, 30 req/min
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from ...core.exceptions import ProviderCallFailed
from ...core.models import Price, utc_now
from ...core.types import PriceSource
from ..base import HTTPPriceProvider

logger = logging.getLogger(__name__)


class CoinMarketCapPriceProvider(HTTPPriceProvider):
    """Fetches current quotes from the CoinMarketCap Pro API."""

    name = "coinmarketcap"
    SOURCE = PriceSource.PRIMARY
    BASE_URL = "https://pro-api.coinmarketcap.com"
    ERROR_CODE = "CMC_API_ERROR"
    QUOTES_ENDPOINT = "/v2/cryptocurrency/quotes/latest"

    def __init__(
        self,
        api_key: Optional[str],
        quote_currency: str = "USD",
        source: PriceSource | None = None,
        rate_limit_calls: int = 25,  # Stay under 30/min limit
        rate_limit_period: int = 60,
        request_timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        """
        Initialize CoinMarketCap provider.

        Args:
            api_key: CMC API key
            quote_currency: Currency the price is converted to
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

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self.api_key:
            headers["X-CMC_PRO_API_KEY"] = self.api_key
        return headers

    def is_available(self) -> bool:
        """Check if CMC API is reachable with the configured key."""
        if not self.api_key:
            return False
        try:
            self._make_request("/v1/key/info", timeout=10.0)
            return True
        except ProviderCallFailed:
            return False

    def fetch_price(self, asset_key: str, timeout: float | None = None) -> Price:
        """
        Get the latest quote for an asset.

        Args:
            asset_key: Asset symbol (e.g., "SOL")
            timeout: HTTP timeout override in seconds

        Returns:
            Price reported by CoinMarketCap
        """
        if not self.api_key:
            raise ProviderCallFailed(
                source=self.name,
                message="API key not configured",
                code=self.ERROR_CODE,
            )

        symbol = asset_key.upper()
        endpoint = self.QUOTES_ENDPOINT
        data = self._make_request(
            endpoint,
            params={"symbol": symbol, "convert": self.quote_currency},
            timeout=timeout,
        )

        status = data.get("status") or {}
        if status.get("error_code", 0) != 0:
            raise ProviderCallFailed(
                source=self.name,
                message=status.get("error_message") or "CMC API Error",
                endpoint=endpoint,
                code=self.ERROR_CODE,
            )

        token_data = self._extract_token(data.get("data") or {}, symbol)
        if token_data is None:
            raise self._malformed(endpoint, f"no data for {symbol}")

        quote = (token_data.get("quote") or {}).get(self.quote_currency)
        if not quote or quote.get("price") is None:
            raise self._malformed(endpoint, f"no {self.quote_currency} quote for {symbol}")

        try:
            amount = Decimal(str(quote["price"]))
            change = Decimal(str(quote.get("percent_change_24h") or 0))
        except InvalidOperation as e:
            raise self._malformed(endpoint, f"non-numeric price {quote.get('price')!r}") from e

        if not amount.is_finite() or amount <= 0:
            raise self._malformed(endpoint, f"non-positive price {amount}")

        return Price(
            amount=amount,
            change_24h_percent=change,
            observed_at=self._parse_timestamp(quote.get("last_updated")),
            source=self.source,
            provider=self.name,
            asset_key=symbol,
            quote_currency=self.quote_currency,
        )

    @staticmethod
    def _extract_token(data: dict[str, Any], symbol: str) -> dict[str, Any] | None:
        """Pick the entry for *symbol*; v2 returns a list per symbol, v1 an object."""
        entry = data.get(symbol)
        if isinstance(entry, list):
            # Several tokens can share a ticker, CMC orders them by rank
            return entry[0] if entry else None
        if isinstance(entry, dict):
            return entry
        return None

    @staticmethod
    def _parse_timestamp(raw: Any) -> datetime:
        if raw:
            try:
                return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
            except ValueError:
                logger.debug(f"Unparseable CMC timestamp {raw!r}, using now")
        return utc_now()
