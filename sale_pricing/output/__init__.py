"""Output formatting for CLI results."""

from .formatters import JSONFormatter, TableFormatter, format_time_until, get_formatter

__all__ = ["JSONFormatter", "TableFormatter", "format_time_until", "get_formatter"]
