"""Sale stage loader.

Reads the ordered sale-stage schedule from a YAML or JSON file. The order
of the file is the temporal order of the sale; it is never re-sorted.

Expected layout:

    stages:
      - id: pre-sale
        name: Pre-Sale
        price_per_unit: "0.15"
        unit_cap: 2000000          # optional
        opens_at: "2025-06-16T00:00:00Z"   # optional
        closes_at: "2025-06-30T23:59:59Z"  # optional
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..core.exceptions import ConfigurationError
from ..core.models import SaleStage

logger = logging.getLogger(__name__)

# Older schedules name the price after the reference asset
_PRICE_ALIASES = ("price_per_unit", "price", "price_in_sol")


def _load_file(filepath: Path) -> Any:
    """Load YAML or JSON file."""
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            if filepath.suffix in (".yaml", ".yml"):
                return yaml.safe_load(f)
            return json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError("stages_file", f"{filepath} does not exist") from e
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError("stages_file", f"failed to read {filepath}: {e}") from e


def _normalise_entry(raw: dict[str, Any]) -> dict[str, Any]:
    entry = dict(raw)
    for alias in _PRICE_ALIASES:
        if alias in entry:
            price = entry.pop(alias)
            # Through str so YAML floats keep their written digits
            entry["price_per_unit"] = str(price) if isinstance(price, float) else price
            break
    for legacy, field in (("max_tokens", "unit_cap"), ("start_date", "opens_at"), ("end_date", "closes_at")):
        if legacy in entry and field not in entry:
            entry[field] = entry.pop(legacy)
    return entry


def parse_stages(data: Any) -> tuple[SaleStage, ...]:
    """
    Build the stage sequence from decoded file contents.

    Args:
        data: Mapping with a ``stages`` list, or the list itself

    Returns:
        Stages in file order

    Raises:
        ConfigurationError: Missing list, invalid entry or duplicate id
    """
    raw_stages = data.get("stages") if isinstance(data, dict) else data
    if not isinstance(raw_stages, list):
        raise ConfigurationError("stages", "expected a list of sale stages")

    stages: list[SaleStage] = []
    seen: set[str] = set()

    for position, raw in enumerate(raw_stages):
        if not isinstance(raw, dict):
            raise ConfigurationError(f"stages[{position}]", "each stage must be a mapping")
        try:
            stage = SaleStage(**_normalise_entry(raw))
        except ValidationError as e:
            raise ConfigurationError(f"stages[{position}]", str(e)) from e

        if stage.id in seen:
            raise ConfigurationError(f"stages[{position}]", f"duplicate stage id {stage.id!r}")
        seen.add(stage.id)
        stages.append(stage)

    return tuple(stages)


def load_stages(filepath: Path | str) -> tuple[SaleStage, ...]:
    """Load the sale stage schedule from a YAML or JSON file."""
    filepath = Path(filepath)
    stages = parse_stages(_load_file(filepath))
    logger.debug(f"Loaded {len(stages)} sale stage(s) from {filepath}")
    if not stages:
        logger.warning(f"{filepath} defines no sale stages; quotes will fail")
    return stages
