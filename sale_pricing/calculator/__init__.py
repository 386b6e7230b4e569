"""Calculator module - stage pricing."""

from .stage_pricing import StagePricingEngine, calc_percent_change

__all__ = ["StagePricingEngine", "calc_percent_change"]
