"""CLI entry point for the sale pricing engine.

Usage:
    sale-pricing price SOL
    sale-pricing quote --output json
    sale-pricing stages --stages-file config/stages.yaml
"""

import logging
from pathlib import Path
from typing import NoReturn, Optional, get_args

import typer
from rich.console import Console
from rich.logging import RichHandler

from .core.config import PricingConfig
from .core.types import OutputFormatType
from .core.exceptions import (
    AllProvidersExhausted,
    RateLimited,
    ReferencePriceUnavailable,
    SalePricingError,
)
from .factory import build_price_oracle, build_pricing_engine
from .output.formatters import get_formatter

app = typer.Typer(
    name="sale-pricing",
    help="Reference asset prices and sale-stage token quotes",
    add_completion=False,
)

console = Console()

OUTPUT_HELP = "Output format: table, json"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_time=False, show_path=False)],
        force=True,
    )


def _load_config(env_file: Optional[Path], stages_file: Optional[Path]) -> PricingConfig:
    config = PricingConfig.load(env_file)
    if stages_file:
        config.stages_file = stages_file
    return config


def _rate_limit_hint(error: BaseException) -> str | None:
    """Find a rate-limit error in the cause chain and describe its window."""
    while error is not None:
        if isinstance(error, AllProvidersExhausted):
            error = error.last_error
            continue
        if isinstance(error, RateLimited):
            if error.retry_after_seconds:
                return f"{error.source} is rate limited, retry after {error.retry_after_seconds}s"
            return f"{error.source} is rate limited"
        error = error.__cause__
    return None


def _fail(error: SalePricingError) -> NoReturn:
    console.print(f"[red]{error.message} ({error.code})[/]")
    hint = _rate_limit_hint(error)
    if hint:
        console.print(f"[yellow]{hint}[/]")
    elif isinstance(error, (AllProvidersExhausted, ReferencePriceUnavailable)):
        console.print("[yellow]Try again in a moment.[/]")
    raise typer.Exit(1)


def _check_output(output: str) -> None:
    if output not in get_args(OutputFormatType):
        console.print(f"[red]Invalid output format: {output}[/]")
        raise typer.Exit(1)


@app.command()
def price(
    asset: Optional[str] = typer.Argument(None, help="Asset ticker (defaults to the reference asset)"),
    output: str = typer.Option("table", "--output", "-o", help=OUTPUT_HELP),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Deadline in seconds"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Path to .env file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Show the current price of the reference asset."""
    setup_logging(verbose)
    _check_output(output)

    try:
        config = _load_config(env_file, None)
        oracle = build_price_oracle(config)
        result = oracle.get_price(asset or config.reference_asset, timeout=timeout)
    except SalePricingError as e:
        _fail(e)

    typer.echo(get_formatter(output).format_price(result))


@app.command()
def quote(
    output: str = typer.Option("table", "--output", "-o", help=OUTPUT_HELP),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Deadline in seconds"),
    stages_file: Optional[Path] = typer.Option(None, "--stages-file", help="Sale stage YAML/JSON file"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Path to .env file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Quote the project token at the active sale stage."""
    setup_logging(verbose)
    _check_output(output)

    try:
        config = _load_config(env_file, stages_file)
        engine = build_pricing_engine(config)
        result = engine.get_project_token_price(timeout=timeout)
    except SalePricingError as e:
        _fail(e)

    typer.echo(get_formatter(output).format_quote(result))


@app.command()
def stages(
    output: str = typer.Option("table", "--output", "-o", help=OUTPUT_HELP),
    stages_file: Optional[Path] = typer.Option(None, "--stages-file", help="Sale stage YAML/JSON file"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Path to .env file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """List the sale stages and which one is active."""
    setup_logging(verbose)
    _check_output(output)

    try:
        config = _load_config(env_file, stages_file)
        engine = build_pricing_engine(config)
        schedule = engine.get_stage_schedule()
    except SalePricingError as e:
        _fail(e)

    typer.echo(get_formatter(output).format_schedule(schedule))


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
