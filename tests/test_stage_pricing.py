"""Tests for the stage pricing engine."""

from datetime import timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from sale_pricing.calculator.stage_pricing import StagePricingEngine, calc_percent_change
from sale_pricing.core.exceptions import (
    AllProvidersExhausted,
    Cancelled,
    NoStagesConfigured,
    ProviderCallFailed,
    ReferencePriceUnavailable,
)
from sale_pricing.core.models import SaleStage
from sale_pricing.core.types import StageStatus

from conftest import T0, T1, T2


@pytest.fixture
def oracle(make_oracle, scripted, price_factory):
    primary = scripted("primary-stub", [price_factory("150")])
    secondary = scripted("secondary-stub", [price_factory("150", provider="secondary-stub")])
    return make_oracle(primary, secondary)


@pytest.fixture
def engine(oracle, sample_stages, clock):
    return StagePricingEngine(oracle=oracle, stages=sample_stages, clock=clock)


class TestPercentChange:
    """Tests for the percentage formula."""

    def test_calc_percent_change(self):
        assert calc_percent_change(Decimal("0.10"), Decimal("0.15")) == 50
        assert calc_percent_change(Decimal("0.2"), Decimal("0.1")) == -50

    def test_zero_base_raises(self):
        with pytest.raises(ValueError):
            calc_percent_change(Decimal("0"), Decimal("1"))


class TestSaleStageModel:
    """Tests for SaleStage validation."""

    def test_window_must_be_ordered(self):
        with pytest.raises(ValidationError):
            SaleStage(id="x", name="X", price_per_unit=Decimal("1"), opens_at=T1, closes_at=T0)

    def test_equal_bounds_rejected(self):
        with pytest.raises(ValidationError):
            SaleStage(id="x", name="X", price_per_unit=Decimal("1"), opens_at=T1, closes_at=T1)

    def test_price_must_be_positive(self):
        with pytest.raises(ValidationError):
            SaleStage(id="x", name="X", price_per_unit=Decimal("0"))

    def test_unit_cap_must_be_positive(self):
        with pytest.raises(ValidationError):
            SaleStage(id="x", name="X", price_per_unit=Decimal("1"), unit_cap=0)

    def test_naive_dates_are_utc(self):
        stage = SaleStage(
            id="x", name="X", price_per_unit=Decimal("1"), opens_at=T0.replace(tzinfo=None)
        )
        assert stage.opens_at == T0

    def test_stages_are_frozen(self, sample_stages):
        with pytest.raises(ValidationError):
            sample_stages[0].price_per_unit = Decimal("1")


class TestCurrentStage:
    """Tests for active stage resolution."""

    @pytest.mark.parametrize(
        "offset, expected",
        [
            (T0, "private-sale"),
            (T0 + timedelta(days=7), "private-sale"),
            (T1 - timedelta(seconds=1), "private-sale"),
            (T1, "pre-sale"),
            (T1 + timedelta(days=3), "pre-sale"),
            (T2 - timedelta(seconds=1), "pre-sale"),
            (T2, "public-sale"),
            (T2 + timedelta(days=400), "public-sale"),
        ],
    )
    def test_selection_is_monotonic(self, engine, offset, expected):
        assert engine.get_current_stage(offset).id == expected

    def test_after_all_closes_open_ended_last_stage(self, engine):
        stage = engine.get_current_stage(T2 + timedelta(days=3650))
        assert stage.id == "public-sale"
        assert stage.closes_at is None

    def test_before_first_stage_falls_back_to_last(self, engine):
        assert engine.get_current_stage(T0 - timedelta(days=1)).id == "public-sale"

    def test_gap_between_stages_falls_back_to_last(self, oracle):
        stages = [
            SaleStage(id="a", name="A", price_per_unit=Decimal("1"), opens_at=T0, closes_at=T1),
            SaleStage(id="b", name="B", price_per_unit=Decimal("2"), opens_at=T2),
        ]
        engine = StagePricingEngine(oracle, stages)
        assert engine.get_current_stage(T1 + timedelta(days=1)).id == "b"

    def test_all_stages_closed_returns_last(self, oracle):
        stages = [
            SaleStage(id="a", name="A", price_per_unit=Decimal("1"), opens_at=T0, closes_at=T1),
            SaleStage(id="b", name="B", price_per_unit=Decimal("2"), opens_at=T1, closes_at=T2),
        ]
        engine = StagePricingEngine(oracle, stages)
        assert engine.get_current_stage(T2 + timedelta(days=1)).id == "b"

    def test_closing_instant_is_inclusive(self, oracle):
        stages = [
            SaleStage(id="a", name="A", price_per_unit=Decimal("1"), closes_at=T1),
            SaleStage(id="b", name="B", price_per_unit=Decimal("2"), opens_at=T1),
        ]
        engine = StagePricingEngine(oracle, stages)
        assert engine.get_current_stage(T1).id == "a"

    def test_first_matching_stage_wins_when_undated(self, oracle):
        stages = [
            SaleStage(id="a", name="A", price_per_unit=Decimal("1")),
            SaleStage(id="b", name="B", price_per_unit=Decimal("2")),
        ]
        engine = StagePricingEngine(oracle, stages)
        assert engine.get_current_stage(T1).id == "a"

    def test_naive_now_is_read_as_utc(self, engine):
        assert engine.get_current_stage(T1.replace(tzinfo=None)).id == "pre-sale"

        naive = (T1 + timedelta(days=1)).replace(tzinfo=None)
        quote = engine.get_project_token_price(naive)
        assert quote.quoted_at == T1 + timedelta(days=1)
        assert quote.stage_transition.time_until_next_open == T2 - (T1 + timedelta(days=1))

    def test_no_stages(self, oracle):
        engine = StagePricingEngine(oracle, [])
        with pytest.raises(NoStagesConfigured) as exc_info:
            engine.get_current_stage(T1)
        assert exc_info.value.code == "NO_STAGES_DEFINED"

    def test_stage_list_is_immutable(self, engine, sample_stages):
        sample_stages.clear()
        assert len(engine.stages) == 3


class TestProjectTokenPrice:
    """Tests for the composed quote."""

    def test_quote_in_presale(self, engine):
        quote = engine.get_project_token_price(T1 + timedelta(days=1))

        assert quote.stage.id == "pre-sale"
        assert quote.price_in_reference == Decimal("0.15")
        assert quote.price_in_quote == Decimal("22.50")
        assert quote.reference_price.amount == Decimal("150")
        assert quote.previous_price.in_reference == Decimal("0.1")
        assert quote.previous_price.in_quote == Decimal("15.0")
        assert quote.next_price.in_reference == Decimal("0.2")
        assert quote.next_price.in_quote == Decimal("30.0")
        assert quote.quote_currency == "USD"
        assert quote.reference_asset == "SOL"

    def test_price_change_from_previous(self, engine):
        quote = engine.get_project_token_price(T1 + timedelta(days=1))
        assert quote.price_change.from_previous == Decimal("50.0")

    def test_price_change_to_next(self, engine):
        quote = engine.get_project_token_price(T1 + timedelta(days=1))
        # (0.2 - 0.15) / 0.15 * 100
        assert float(quote.price_change.to_next) == pytest.approx(33.3333, rel=1e-4)

    def test_first_stage_has_no_previous(self, engine):
        quote = engine.get_project_token_price(T0 + timedelta(days=1))

        assert quote.previous_price is None
        assert quote.price_change.from_previous == 0
        assert quote.price_change.to_next == Decimal("50")

    def test_last_stage_has_no_next(self, engine):
        quote = engine.get_project_token_price(T2 + timedelta(days=1))

        assert quote.next_price is None
        assert quote.price_change.to_next == 0
        assert quote.stage_transition.time_until_next_open is None

    def test_time_until_next_open(self, engine):
        now = T1 + timedelta(days=1)
        quote = engine.get_project_token_price(now)
        assert quote.stage_transition.time_until_next_open == T2 - now

    def test_uses_clock_when_now_omitted(self, engine, clock):
        quote = engine.get_project_token_price()
        assert quote.stage.id == "pre-sale"
        assert quote.quoted_at == clock()

    def test_no_stages_fails_before_oracle(self, make_oracle, scripted, price_factory):
        primary = scripted("primary-stub", [price_factory()])
        engine = StagePricingEngine(make_oracle(primary, scripted("s", [])), [])

        with pytest.raises(NoStagesConfigured):
            engine.get_project_token_price(T1)
        assert primary.calls == []

    def test_oracle_failure_is_wrapped(self, make_oracle, scripted, sample_stages):
        primary = scripted("primary-stub", [ProviderCallFailed("primary-stub", "HTTP 500")])
        secondary = scripted("secondary-stub", [ProviderCallFailed("secondary-stub", "HTTP 500")])
        engine = StagePricingEngine(
            make_oracle(primary, secondary, max_retries=0), sample_stages
        )

        with pytest.raises(ReferencePriceUnavailable) as exc_info:
            engine.get_project_token_price(T1)

        error = exc_info.value
        assert isinstance(error.__cause__, AllProvidersExhausted)
        assert error.stage_id == "pre-sale"
        assert error.code == "SOL_PRICE_UNAVAILABLE"
        # A failed quote does not count as an observation
        assert engine.last_observed_stage_id is None

    def test_cancelled_lookup_is_wrapped(self, engine, oracle):
        engine.get_project_token_price(T0 + timedelta(days=1))
        oracle.clear_cache()

        with pytest.raises(ReferencePriceUnavailable) as exc_info:
            engine.get_project_token_price(T1 + timedelta(days=1), timeout=0)

        error = exc_info.value
        assert isinstance(error.__cause__, Cancelled)
        assert error.stage_id == "pre-sale"
        assert engine.last_observed_stage_id == "private-sale"


class TestStageTransition:
    """Tests for transition detection across queries."""

    def test_cold_start_then_boundary_crossing(self, engine, sample_stages):
        first = engine.get_project_token_price(T1 - timedelta(hours=1))
        second = engine.get_project_token_price(T1 + timedelta(hours=1))

        assert first.stage_transition.from_stage is None
        assert first.stage_transition.to_stage.id == "private-sale"
        assert second.stage_transition.from_stage == sample_stages[0]
        assert second.stage_transition.to_stage.id == "pre-sale"
        assert second.stage_transition.has_transitioned

    def test_same_stage_reports_no_transition(self, engine):
        engine.get_project_token_price(T1 + timedelta(hours=1))
        again = engine.get_project_token_price(T1 + timedelta(hours=2))

        assert again.stage_transition.from_stage is None
        assert engine.last_observed_stage_id == "pre-sale"

    def test_skipped_stage_reports_structural_previous(self, engine, sample_stages):
        engine.get_project_token_price(T0 + timedelta(days=1))
        jumped = engine.get_project_token_price(T2 + timedelta(days=1))

        # The pre-sale was never observed, yet it is reported as the origin
        assert jumped.stage_transition.from_stage == sample_stages[1]

    def test_transition_backwards_reports_structural_previous(self, engine):
        engine.get_project_token_price(T1 + timedelta(days=1))
        back = engine.get_project_token_price(T0 + timedelta(days=1))

        assert back.stage_transition.to_stage.id == "private-sale"
        # The first stage has no structural predecessor
        assert back.stage_transition.from_stage is None
        assert engine.last_observed_stage_id == "private-sale"


class TestStageSchedule:
    """Tests for the schedule listing."""

    def test_statuses_during_presale(self, engine):
        schedule = engine.get_stage_schedule(T1 + timedelta(days=1))

        assert [e.status for e in schedule] == [
            StageStatus.CLOSED,
            StageStatus.ACTIVE,
            StageStatus.UPCOMING,
        ]
        assert [e.position for e in schedule] == [0, 1, 2]

    def test_schedule_does_not_touch_transition_state(self, engine):
        engine.get_stage_schedule(T1)
        assert engine.last_observed_stage_id is None
