"""Output formatters for prices, quotes and stage schedules.

Provides two output formats:
- JSON: Machine-readable, complete data
- Table: Human-readable CLI output (rich)
"""

import io
import json
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from decimal import Decimal

from rich import box
from rich.console import Console
from rich.table import Table

from ..core.models import Price, ProjectTokenQuote, StageScheduleEntry
from ..core.types import OutputFormatType, StageStatus

logger = logging.getLogger(__name__)


def format_time_until(delta: timedelta) -> str:
    """Render a countdown as whole days and hours, e.g. ``3d 4h``."""
    total_seconds = max(int(delta.total_seconds()), 0)
    days, remainder = divmod(total_seconds, 86_400)
    hours = remainder // 3_600
    return f"{days}d {hours}h"


def format_percent(value: Decimal) -> str:
    sign = "+" if value > 0 else ""
    return f"{sign}{value:.1f}%"


class OutputFormatter(ABC):
    """Abstract base class for output formatters."""

    @abstractmethod
    def format_price(self, price: Price) -> str:
        """Format a reference asset price."""

    @abstractmethod
    def format_quote(self, quote: ProjectTokenQuote) -> str:
        """Format a project token quote."""

    @abstractmethod
    def format_schedule(self, schedule: list[StageScheduleEntry]) -> str:
        """Format the stage schedule."""


class JSONFormatter(OutputFormatter):
    """Formats results as JSON."""

    def __init__(self, indent: int = 2):
        self.indent = indent

    def _dump(self, data: object) -> str:
        return json.dumps(data, indent=self.indent)

    def format_price(self, price: Price) -> str:
        return self._dump(price.model_dump(mode="json"))

    def format_quote(self, quote: ProjectTokenQuote) -> str:
        data = quote.model_dump(mode="json")
        transition = quote.stage_transition
        if transition.time_until_next_open is not None:
            data["stage_transition"]["time_until_next_open_seconds"] = int(
                transition.time_until_next_open.total_seconds()
            )
        return self._dump(data)

    def format_schedule(self, schedule: list[StageScheduleEntry]) -> str:
        return self._dump([entry.model_dump(mode="json") for entry in schedule])


class TableFormatter(OutputFormatter):
    """Formats results as human-readable tables for CLI output."""

    STATUS_STYLES = {
        StageStatus.ACTIVE: "bold green",
        StageStatus.UPCOMING: "cyan",
        StageStatus.CLOSED: "dim",
    }

    def __init__(self, width: int = 120, color: bool = False):
        """
        Initialize table formatter.

        Args:
            width: Maximum table width
            color: Keep ANSI styling in the rendered text
        """
        self.width = width
        self.color = color

    def _render(self, *renderables: object) -> str:
        buffer = io.StringIO()
        console = Console(
            file=buffer,
            width=self.width,
            force_terminal=self.color,
            color_system="auto" if self.color else None,
        )
        for renderable in renderables:
            console.print(renderable)
        return buffer.getvalue()

    def format_price(self, price: Price) -> str:
        table = Table(title=f"{price.asset_key} PRICE", box=box.SIMPLE, show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Price", f"{price.amount:,.4f} {price.quote_currency}")
        table.add_row("24h change", format_percent(price.change_24h_percent))
        table.add_row("Observed", price.observed_at.strftime("%Y-%m-%d %H:%M:%S UTC"))
        table.add_row("Source", f"{price.provider} ({price.source.display_name})")
        return self._render(table)

    def format_quote(self, quote: ProjectTokenQuote) -> str:
        asset = quote.reference_asset
        currency = quote.quote_currency
        transition = quote.stage_transition

        table = Table(title="PROJECT TOKEN PRICE", box=box.SIMPLE, show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")

        if transition.from_stage is not None:
            table.add_row(
                "Stage change",
                f"Sale stage changed from {transition.from_stage.name} to {quote.stage.name}",
            )

        table.add_row("Stage", quote.stage.name)
        table.add_row(
            "Price",
            f"{quote.price_in_reference} {asset} ({quote.price_in_quote:,.2f} {currency})",
        )

        change = quote.price_change
        if change.from_previous != 0:
            table.add_row("Previous stage", f"{format_percent(change.from_previous)} from previous stage")
        if change.to_next != 0:
            table.add_row("Next stage", f"{format_percent(change.to_next)} in next stage")
        if quote.next_price is not None:
            table.add_row(
                "Next price",
                f"{quote.next_price.in_reference} {asset} ({quote.next_price.in_quote:,.2f} {currency})",
            )
        if transition.time_until_next_open is not None:
            table.add_row("Next stage in", format_time_until(transition.time_until_next_open))
        if quote.stage.unit_cap:
            table.add_row("Max tokens", f"{quote.stage.unit_cap:,}")

        ref = quote.reference_price
        table.add_row(
            f"{asset} price",
            f"{ref.amount:,.4f} {currency} via {ref.provider}",
        )
        return self._render(table)

    def format_schedule(self, schedule: list[StageScheduleEntry]) -> str:
        table = Table(title="SALE STAGES", box=box.SIMPLE_HEAVY)
        table.add_column("#", justify="right")
        table.add_column("Stage")
        table.add_column("Price", justify="right")
        table.add_column("Cap", justify="right")
        table.add_column("Opens")
        table.add_column("Closes")
        table.add_column("Status")

        for entry in schedule:
            stage = entry.stage
            table.add_row(
                str(entry.position + 1),
                f"{stage.name} ({stage.id})",
                str(stage.price_per_unit),
                f"{stage.unit_cap:,}" if stage.unit_cap else "-",
                stage.opens_at.strftime("%Y-%m-%d %H:%M") if stage.opens_at else "-",
                stage.closes_at.strftime("%Y-%m-%d %H:%M") if stage.closes_at else "open",
                f"[{self.STATUS_STYLES[entry.status]}]{entry.status.value}[/]",
            )
        return self._render(table)


def get_formatter(output: OutputFormatType) -> OutputFormatter:
    """Pick a formatter by name ("json" or "table")."""
    if output == "json":
        return JSONFormatter()
    if output == "table":
        return TableFormatter()
    raise ValueError(f"Unknown output format: {output}")
