"""Synthetic price provider for development environments.

Produces a plausible, slightly different price on every call so that
the pricing flow can be exercised without API keys or network access.
"""

import logging
import random
from decimal import Decimal

from ...core.models import Price, utc_now
from ...core.types import PriceSource
from ..base import BasePriceProvider

logger = logging.getLogger(__name__)


class SyntheticPriceProvider(BasePriceProvider):
    """Generates mock prices around a base value."""

    name = "synthetic"
    SOURCE = PriceSource.SYNTHETIC

    def __init__(
        self,
        base_price: float = 100.0,
        spread: float = 5.0,
        quote_currency: str = "USD",
        rng: random.Random | None = None,
        name: str | None = None,
    ):
        """
        Initialize synthetic provider.

        Args:
            base_price: Centre of the generated price band
            spread: Half-width of the band; also bounds the 24h change
            quote_currency: Currency reported on prices
            rng: Random source (seed it for reproducible tests)
            name: Override the provider name, e.g. to tell two instances apart
        """
        super().__init__(rate_limit_calls=10_000, rate_limit_period=60)
        if name:
            self.name = name
        self.base_price = base_price
        self.spread = spread
        self.quote_currency = quote_currency.upper()
        self._rng = rng or random.Random()

    def is_available(self) -> bool:
        return True

    def fetch_price(self, asset_key: str, timeout: float | None = None) -> Price:
        amount = self.base_price + self._rng.uniform(-self.spread, self.spread)
        change = self._rng.uniform(-self.spread, self.spread)
        self._record_audit(action="fetch", notes="synthetic")
        logger.debug(f"[{self.name}] Synthetic {asset_key} price {amount:.4f}")
        return Price(
            amount=Decimal(str(round(amount, 6))),
            change_24h_percent=Decimal(str(round(change, 4))),
            observed_at=utc_now(),
            source=self.source,
            provider=self.name,
            asset_key=asset_key.upper(),
            quote_currency=self.quote_currency,
        )
