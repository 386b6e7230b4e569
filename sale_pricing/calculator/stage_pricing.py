"""Stage pricing engine - prices the project token from the active sale stage.

Each sale stage fixes the token price in units of the reference asset. The
engine picks the stage active at a given instant, converts its price with
the oracle's reference price, and reports the deltas to the neighbouring
stages and any stage change since the previous query.
"""

import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Callable, Sequence

from ..core.exceptions import (
    AllProvidersExhausted,
    Cancelled,
    NoStagesConfigured,
    ReferencePriceUnavailable,
)
from ..core.models import (
    PriceChange,
    ProjectTokenQuote,
    SaleStage,
    StagePrice,
    StageScheduleEntry,
    StageTransition,
    as_utc,
    utc_now,
)
from ..core.types import StageStatus
from ..oracle import PriceOracle

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def calc_percent_change(old: Decimal, new: Decimal) -> Decimal:
    """Percentage change from *old* to *new*."""
    if old == 0:
        raise ValueError("Cannot compute a percentage change from zero")
    return (new - old) / old * HUNDRED


class StagePricingEngine:
    """Combines the active sale stage with the oracle's reference price."""

    def __init__(
        self,
        oracle: PriceOracle,
        stages: Sequence[SaleStage],
        reference_asset_key: str = "SOL",
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the engine.

        Args:
            oracle: Source of the reference asset price
            stages: Sale stages in temporal order (never re-sorted)
            reference_asset_key: Asset the stage prices are denominated in
            clock: Returns the current UTC time
        """
        self.oracle = oracle
        self._stages: tuple[SaleStage, ...] = tuple(stages)
        self.reference_asset_key = reference_asset_key.upper()
        self._clock = clock or utc_now

        self._last_observed_stage_id: str | None = None
        self._lock = threading.Lock()

    @property
    def stages(self) -> tuple[SaleStage, ...]:
        return self._stages

    @property
    def last_observed_stage_id(self) -> str | None:
        return self._last_observed_stage_id

    def _current_index(self, now: datetime) -> int:
        if not self._stages:
            raise NoStagesConfigured()

        for index, stage in enumerate(self._stages):
            if stage.is_open_at(now):
                return index

        # Nothing open right now: the last stage keeps the price defined
        return len(self._stages) - 1

    def _neighbours(self, index: int) -> tuple[SaleStage | None, SaleStage | None]:
        previous_stage = self._stages[index - 1] if index > 0 else None
        next_stage = self._stages[index + 1] if index < len(self._stages) - 1 else None
        return previous_stage, next_stage

    def get_current_stage(self, now: datetime | None = None) -> SaleStage:
        """
        Get the sale stage active at *now*.

        The first stage whose window contains *now* wins; when none does,
        the last configured stage is returned.

        Raises:
            NoStagesConfigured: The stage sequence is empty
        """
        now = as_utc(now) or self._clock()
        return self._stages[self._current_index(now)]

    def get_stage_schedule(self, now: datetime | None = None) -> list[StageScheduleEntry]:
        """List every stage with its status at *now*."""
        now = as_utc(now) or self._clock()
        active = self._current_index(now)

        schedule = []
        for index, stage in enumerate(self._stages):
            if index == active:
                status = StageStatus.ACTIVE
            elif stage.opens_at is not None and stage.opens_at > now:
                status = StageStatus.UPCOMING
            elif index > active and stage.opens_at is None:
                status = StageStatus.UPCOMING
            else:
                status = StageStatus.CLOSED
            schedule.append(StageScheduleEntry(position=index, stage=stage, status=status))
        return schedule

    def calculate_price_changes(
        self,
        current: SaleStage,
        previous_stage: SaleStage | None,
        next_stage: SaleStage | None,
    ) -> PriceChange:
        """Percent change from the previous stage, and to the next one."""
        from_previous = Decimal("0")
        to_next = Decimal("0")

        if previous_stage is not None:
            from_previous = calc_percent_change(previous_stage.price_per_unit, current.price_per_unit)
        if next_stage is not None:
            to_next = calc_percent_change(current.price_per_unit, next_stage.price_per_unit)

        return PriceChange(from_previous=from_previous, to_next=to_next)

    def _stage_transition(
        self,
        current: SaleStage,
        previous_stage: SaleStage | None,
        next_stage: SaleStage | None,
        now: datetime,
    ) -> StageTransition:
        """Report a change of active stage since the last query.

        ``from_stage`` is the structurally previous stage, not necessarily the
        one observed last: a stage skipped between two queries is not reported.
        """
        with self._lock:
            last_id = self._last_observed_stage_id
            has_transitioned = last_id is not None and last_id != current.id
            self._last_observed_stage_id = current.id

        if has_transitioned:
            logger.info(f"Sale stage changed from {last_id} to {current.id}")

        time_until_next_open = None
        if next_stage is not None and next_stage.opens_at is not None:
            time_until_next_open = next_stage.opens_at - now

        return StageTransition(
            from_stage=previous_stage if has_transitioned else None,
            to_stage=current,
            time_until_next_open=time_until_next_open,
        )

    def get_project_token_price(
        self,
        now: datetime | None = None,
        timeout: float | None = None,
    ) -> ProjectTokenQuote:
        """
        Get the full price quote for the project token.

        Args:
            now: Instant to price at (defaults to the clock)
            timeout: Deadline in seconds for the reference price lookup

        Returns:
            ProjectTokenQuote for the active stage

        Raises:
            NoStagesConfigured: The stage sequence is empty
            ReferencePriceUnavailable: The oracle could not provide a price
        """
        now = as_utc(now) or self._clock()
        index = self._current_index(now)
        stage = self._stages[index]

        try:
            reference_price = self.oracle.get_price(self.reference_asset_key, timeout=timeout)
        except (AllProvidersExhausted, Cancelled) as e:
            logger.error(f"Reference price unavailable for stage {stage.id}: {e.message}")
            raise ReferencePriceUnavailable(
                self.reference_asset_key, stage_id=stage.id, reason=e.message
            ) from e

        rate = reference_price.amount
        previous_stage, next_stage = self._neighbours(index)

        previous_price = None
        if previous_stage is not None:
            previous_price = StagePrice(
                in_reference=previous_stage.price_per_unit,
                in_quote=previous_stage.price_per_unit * rate,
            )
        next_price = None
        if next_stage is not None:
            next_price = StagePrice(
                in_reference=next_stage.price_per_unit,
                in_quote=next_stage.price_per_unit * rate,
            )

        return ProjectTokenQuote(
            stage=stage,
            price_in_reference=stage.price_per_unit,
            price_in_quote=stage.price_per_unit * rate,
            reference_price=reference_price,
            stage_transition=self._stage_transition(stage, previous_stage, next_stage, now),
            previous_price=previous_price,
            next_price=next_price,
            price_change=self.calculate_price_changes(stage, previous_stage, next_stage),
            quoted_at=now,
        )
