"""Domain types for assets, price snapshots, rounds and predictions."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Any

from arena.engine.errors import InvalidDirectionError


class Direction(str, Enum):
    """Predicted or realized price movement."""

    UP = "up"
    DOWN = "down"

    @classmethod
    def parse(cls, value) -> "Direction":
        """
        Parse a user-supplied direction.

        Accepts Direction members and case-insensitive 'up'/'down'.

        Raises:
            InvalidDirectionError: If the value is not a direction
        """
        if isinstance(value, Direction):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidDirectionError(str(value))


class RoundStatus(str, Enum):
    """Round lifecycle state."""

    ACTIVE = "active"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Asset:
    """
    Tracked asset.

    Attributes:
        symbol: Display symbol (e.g. 'BTC')
        feed_key: Price feed identifier (e.g. 'bitcoin')
        name: Human-readable name
    """
    symbol: str
    feed_key: str
    name: str


@dataclass(frozen=True)
class PriceSnapshot:
    """
    Latest observed price data for one asset.

    Attributes:
        symbol: Asset symbol
        price: Current price (USD)
        change_24h_pct: 24h change in percent
        market_cap: Market capitalization (USD)
        volume_24h: 24h traded volume (USD)
        captured_at: When the engine observed this price
    """
    symbol: str
    price: float
    change_24h_pct: float
    market_cap: float
    volume_24h: float
    captured_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'symbol': self.symbol,
            'price': self.price,
            'change_24h_pct': self.change_24h_pct,
            'market_cap': self.market_cap,
            'volume_24h': self.volume_24h,
            'captured_at': self.captured_at.isoformat(),
        }


@dataclass(frozen=True)
class Prediction:
    """A user's directional call for one round."""
    user_id: str
    direction: Direction
    submitted_at: datetime


@dataclass
class Round:
    """
    Fixed-duration prediction window for one asset.

    Predictions are keyed by user id, so a user holds at most one
    prediction per round.
    """
    id: str
    symbol: str
    start_price: float
    start_time: datetime
    end_time: datetime
    status: RoundStatus = RoundStatus.ACTIVE
    predictions: Dict[str, Prediction] = field(default_factory=dict)
    end_price: Optional[float] = None
    resolved_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status is RoundStatus.ACTIVE

    def seconds_left(self, now: datetime) -> float:
        """Seconds until end time (0 once expired)."""
        return max(0.0, (self.end_time - now).total_seconds())

    def direction_counts(self) -> Dict[str, int]:
        counts = {Direction.UP.value: 0, Direction.DOWN.value: 0}
        for prediction in self.predictions.values():
            counts[prediction.direction.value] += 1
        return counts

    def copy(self) -> "Round":
        """Detached copy; callers never share the registry's instance."""
        return replace(self, predictions=dict(self.predictions))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        counts = self.direction_counts()
        return {
            'id': self.id,
            'symbol': self.symbol,
            'status': self.status.value,
            'start_price': self.start_price,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
            'end_price': self.end_price,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
            'total_predictions': len(self.predictions),
            'up_predictions': counts[Direction.UP.value],
            'down_predictions': counts[Direction.DOWN.value],
        }
