"""Sale stage schedule loading."""

from .loader import load_stages, parse_stages

__all__ = ["load_stages", "parse_stages"]
