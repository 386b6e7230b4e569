"""Pytest configuration and fixtures for sale pricing tests."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from sale_pricing.core.models import Price, SaleStage
from sale_pricing.core.types import PriceSource
from sale_pricing.oracle import PriceOracle
from sale_pricing.providers.base import BasePriceProvider


T0 = datetime(2025, 6, 1, tzinfo=timezone.utc)
T1 = datetime(2025, 6, 16, tzinfo=timezone.utc)
T2 = datetime(2025, 7, 1, tzinfo=timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class ScriptedProvider(BasePriceProvider):
    """Provider that replays a script of prices and exceptions.

    The last script item repeats once the script runs out.
    """

    def __init__(self, name: str, script: list, source: PriceSource = PriceSource.PRIMARY):
        super().__init__(source=source, rate_limit_calls=10_000)
        self.name = name
        self.script = list(script)
        self.calls: list[str] = []

    def is_available(self) -> bool:
        return True

    def fetch_price(self, asset_key: str, timeout: float | None = None) -> Price:
        self.calls.append(asset_key)
        item = self.script[min(len(self.calls), len(self.script)) - 1]
        if isinstance(item, Exception):
            raise item
        return item


def make_price(
    amount: str = "150",
    source: PriceSource = PriceSource.PRIMARY,
    provider: str = "primary-stub",
    asset_key: str = "SOL",
) -> Price:
    return Price(
        amount=Decimal(amount),
        change_24h_percent=Decimal("1.5"),
        observed_at=T0,
        source=source,
        provider=provider,
        asset_key=asset_key,
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T1 + timedelta(days=2))


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_oracle(clock, sleeps):
    """Factory for an oracle with a manual clock and recorded sleeps."""

    def _make(primary, secondary, **kwargs) -> PriceOracle:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("sleep", sleeps.append)
        return PriceOracle(primary=primary, secondary=secondary, **kwargs)

    return _make


@pytest.fixture
def sample_stages() -> list[SaleStage]:
    """Three back-to-back stages, the last one open-ended."""
    return [
        SaleStage(
            id="private-sale",
            name="Private Sale",
            price_per_unit=Decimal("0.1"),
            unit_cap=1_000_000,
            opens_at=T0,
            closes_at=T1 - timedelta(seconds=1),
        ),
        SaleStage(
            id="pre-sale",
            name="Pre-Sale",
            price_per_unit=Decimal("0.15"),
            unit_cap=2_000_000,
            opens_at=T1,
            closes_at=T2 - timedelta(seconds=1),
        ),
        SaleStage(
            id="public-sale",
            name="Public Sale",
            price_per_unit=Decimal("0.2"),
            opens_at=T2,
        ),
    ]


@pytest.fixture
def scripted():
    """The ScriptedProvider class, for building providers in tests."""
    return ScriptedProvider


@pytest.fixture
def price_factory():
    return make_price
