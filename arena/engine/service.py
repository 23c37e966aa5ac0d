"""
Prediction Service

Entry point for user actions: routes a prediction to the active round of
an asset and serves read models for the API and chat commands.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from arena.engine.errors import NoActiveRoundError, UnknownAssetError, UserRegistryError
from arena.engine.models import Asset, Direction, PriceSnapshot, Round
from arena.engine.price_cache import PriceCache
from arena.engine.round_registry import RoundRegistry
from arena.users.registry import UserRecord, UserRegistry


@dataclass(frozen=True)
class PredictionReceipt:
    """Confirmation of an accepted prediction."""
    round_id: str
    symbol: str
    user_id: str
    direction: Direction
    start_price: float
    end_time: datetime
    submitted_at: datetime
    replaced: bool

    @property
    def seconds_left(self) -> float:
        return max(0.0, (self.end_time - self.submitted_at).total_seconds())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'round_id': self.round_id,
            'symbol': self.symbol,
            'user_id': self.user_id,
            'direction': self.direction.value,
            'start_price': self.start_price,
            'end_time': self.end_time.isoformat(),
            'submitted_at': self.submitted_at.isoformat(),
            'replaced': self.replaced,
            'seconds_left': round(self.seconds_left, 1),
        }


class PredictionService:
    """User-facing operations over the round engine."""

    def __init__(
        self,
        assets: Iterable[Asset],
        registry: RoundRegistry,
        price_cache: PriceCache,
        user_registry: UserRegistry,
    ):
        self.assets: Dict[str, Asset] = {a.symbol: a for a in assets}
        self.registry = registry
        self.price_cache = price_cache
        self.user_registry = user_registry

    def submit_prediction(
        self,
        user_id: str,
        asset_symbol: str,
        direction,
        now: Optional[datetime] = None,
    ) -> PredictionReceipt:
        """
        Record a user's prediction in the active round for an asset.

        A second submission in the same round replaces the first.

        Raises:
            InvalidDirectionError: direction is not up/down
            UnknownAssetError: asset is not tracked
            NoActiveRoundError: asset has no open round
            RoundNotActiveError: round closed between lookup and recording
        """
        now = now or datetime.now(timezone.utc)
        parsed = Direction.parse(direction)
        symbol = (asset_symbol or "").strip().upper()

        if symbol not in self.assets:
            raise UnknownAssetError(symbol or asset_symbol)

        active = self.registry.get_active_for_asset(symbol)
        if active is None:
            raise NoActiveRoundError(symbol)

        prediction, replaced = self.registry.record_prediction(active.id, user_id, parsed, now=now)

        try:
            self.user_registry.get_or_create(user_id)
            if not replaced:
                self.user_registry.record_prediction_made(user_id)
        except UserRegistryError as e:
            logger.error(f"Failed to update stats for {user_id}: {e}")

        logger.info(
            f"Prediction {'updated' if replaced else 'recorded'}: {user_id} -> "
            f"{symbol} {parsed.value.upper()} ({active.id})"
        )

        return PredictionReceipt(
            round_id=active.id,
            symbol=symbol,
            user_id=user_id,
            direction=prediction.direction,
            start_price=active.start_price,
            end_time=active.end_time,
            submitted_at=prediction.submitted_at,
            replaced=replaced,
        )

    # ========== READ MODELS ==========

    def active_rounds(self) -> List[Round]:
        return self.registry.list_active()

    def resolved_rounds(self) -> List[Round]:
        """Resolved rounds still in retention, most recent first."""
        return self.registry.list_resolved()

    def get_round(self, round_id: str) -> Optional[Round]:
        return self.registry.get(round_id)

    def prices(self) -> List[PriceSnapshot]:
        return self.price_cache.all()

    def price(self, symbol: str) -> Optional[PriceSnapshot]:
        return self.price_cache.get(symbol)

    def user_stats(self, user_id: str) -> Optional[UserRecord]:
        return self.user_registry.get(user_id)

    def open_predictions_for(self, user_id: str) -> List[Round]:
        """Active rounds the user has a prediction in."""
        return [r for r in self.registry.list_active() if user_id in r.predictions]

    def engine_stats(self) -> Dict[str, Any]:
        """Combined registry, cache and user statistics."""
        try:
            total_users = len(self.user_registry.all_users())
        except UserRegistryError as e:
            logger.warning(f"Failed to count users: {e}")
            total_users = None

        return {
            'tracked_assets': sorted(self.assets),
            'rounds': self.registry.stats(),
            'prices': self.price_cache.get_stats(),
            'total_users': total_users,
        }
