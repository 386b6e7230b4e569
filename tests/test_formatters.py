"""Tests for output formatters."""

import json
from datetime import timedelta
from decimal import Decimal

import pytest

from sale_pricing.calculator.stage_pricing import StagePricingEngine
from sale_pricing.output.formatters import (
    JSONFormatter,
    TableFormatter,
    format_percent,
    format_time_until,
    get_formatter,
)

from conftest import T1, make_price


@pytest.fixture
def engine(make_oracle, scripted, price_factory, sample_stages, clock):
    oracle = make_oracle(
        scripted("primary-stub", [price_factory("150")]),
        scripted("secondary-stub", [price_factory("150")]),
    )
    return StagePricingEngine(oracle=oracle, stages=sample_stages, clock=clock)


@pytest.fixture
def presale_quote(engine):
    engine.get_project_token_price(T1 - timedelta(days=1))
    return engine.get_project_token_price(T1 + timedelta(days=1))


class TestHelpers:
    """Tests for the small text helpers."""

    def test_format_time_until(self):
        assert format_time_until(timedelta(days=3, hours=4, minutes=59)) == "3d 4h"
        assert format_time_until(timedelta(hours=5)) == "0d 5h"

    def test_negative_countdown_is_clamped(self):
        assert format_time_until(timedelta(seconds=-30)) == "0d 0h"

    def test_format_percent(self):
        assert format_percent(Decimal("50")) == "+50.0%"
        assert format_percent(Decimal("-12.345")) == "-12.3%"
        assert format_percent(Decimal("0")) == "0.0%"

    def test_get_formatter(self):
        assert isinstance(get_formatter("json"), JSONFormatter)
        assert isinstance(get_formatter("table"), TableFormatter)
        with pytest.raises(ValueError):
            get_formatter("xml")


class TestJSONFormatter:
    """Tests for JSON output."""

    def test_price(self):
        data = json.loads(JSONFormatter().format_price(make_price("151.5")))

        assert Decimal(data["amount"]) == Decimal("151.5")
        assert data["source"] == "primary"
        assert data["asset_key"] == "SOL"

    def test_quote(self, presale_quote):
        data = json.loads(JSONFormatter().format_quote(presale_quote))

        assert data["stage"]["id"] == "pre-sale"
        assert Decimal(data["price_in_quote"]) == Decimal("22.5")
        assert Decimal(data["next_price"]["in_reference"]) == Decimal("0.2")
        assert data["stage_transition"]["from_stage"]["id"] == "private-sale"
        assert data["stage_transition"]["time_until_next_open_seconds"] == 14 * 86_400

    def test_schedule(self, engine):
        data = json.loads(JSONFormatter().format_schedule(engine.get_stage_schedule(T1)))

        assert [entry["status"] for entry in data] == ["closed", "active", "upcoming"]


class TestTableFormatter:
    """Tests for table output."""

    def test_quote(self, presale_quote):
        text = TableFormatter().format_quote(presale_quote)

        assert "Sale stage changed from Private Sale to Pre-Sale" in text
        assert "+50.0% from previous stage" in text
        assert "+33.3% in next stage" in text
        assert "22.50 USD" in text
        assert "14d 0h" in text
        assert "2,000,000" in text

    def test_quote_without_transition(self, engine):
        quote = engine.get_project_token_price(T1 + timedelta(days=1))
        text = TableFormatter().format_quote(quote)

        assert "Sale stage changed" not in text
        assert "Pre-Sale" in text

    def test_price(self):
        text = TableFormatter().format_price(make_price("151.5"))

        assert "151.5000 USD" in text
        assert "primary-stub" in text

    def test_schedule(self, engine):
        text = TableFormatter().format_schedule(engine.get_stage_schedule(T1))

        assert "Private Sale (private-sale)" in text
        assert "active" in text
        assert "open" in text
        assert "\x1b[" not in text
