"""Type definitions and enums for the sale pricing engine."""

from decimal import Decimal
from enum import Enum
from typing import Literal


class PriceSource(str, Enum):
    """Which provider slot produced a price."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    SYNTHETIC = "synthetic_fallback"

    @property
    def display_name(self) -> str:
        """Human-readable display name."""
        names = {
            self.PRIMARY: "Primary provider",
            self.SECONDARY: "Secondary provider",
            self.SYNTHETIC: "Synthetic (development)",
        }
        return names.get(self, self.value)


class StageStatus(str, Enum):
    """Status of a sale stage relative to a point in time."""

    UPCOMING = "upcoming"   # opens_at is in the future
    ACTIVE = "active"       # the stage currently priced
    CLOSED = "closed"       # closes_at is in the past, or superseded


class Environment(str, Enum):
    """Deployment environment."""

    PRODUCTION = "production"
    DEVELOPMENT = "development"


# Type aliases for common patterns
Percentage = Decimal  # 0-100 scale, signed
TokenAmount = int     # Number of project tokens
AssetKey = str        # Ticker of the reference asset, e.g. "SOL"

OutputFormatType = Literal["json", "table"]
