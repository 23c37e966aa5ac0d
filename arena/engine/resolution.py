"""
Resolution Engine

Settles an expired round:
1. Require a price snapshot captured at or after the round's end time
2. Transition the round to Resolved (exactly once)
3. Direction = Up if end price > start price, otherwise Down
4. Credit each winner the flat reward through the User Registry
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from loguru import logger

from arena.engine.errors import AlreadyResolvedError, RoundNotFoundError
from arena.engine.models import Direction, Round
from arena.engine.price_cache import PriceCache
from arena.engine.round_registry import RoundRegistry
from arena.users.registry import UserRegistry


def compute_direction(start_price: float, end_price: float) -> Direction:
    """Realized direction. A flat price counts as Down."""
    return Direction.UP if end_price > start_price else Direction.DOWN


@dataclass
class ResolutionOutcome:
    """Result of resolving one round."""
    round: Round
    direction: Direction
    winners: List[str]
    reward_per_winner: float
    failed_credits: Dict[str, str] = field(default_factory=dict)

    @property
    def price_change_pct(self) -> float:
        start = self.round.start_price
        return (self.round.end_price - start) / start * 100

    @property
    def total_reward(self) -> float:
        return self.reward_per_winner * (len(self.winners) - len(self.failed_credits))


class ResolutionEngine:
    """Computes round outcomes and credits winners."""

    def __init__(
        self,
        registry: RoundRegistry,
        price_cache: PriceCache,
        user_registry: UserRegistry,
        reward_per_win: float,
    ):
        self.registry = registry
        self.price_cache = price_cache
        self.user_registry = user_registry
        self.reward_per_win = reward_per_win

    def resolve(
        self,
        round_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[ResolutionOutcome]:
        """
        Resolve a round if it has expired and an end price is available.

        Returns:
            ResolutionOutcome, or None if the round was deferred (no end
            price yet, not expired) or already resolved by another caller
        """
        now = now or datetime.now(timezone.utc)

        current = self.registry.get(round_id)
        if current is None:
            logger.debug(f"Round {round_id} not found, skipping resolution")
            return None
        if not current.is_active:
            logger.debug(f"Round {round_id} already resolved")
            return None
        if now < current.end_time:
            logger.debug(f"Round {round_id} has not expired yet")
            return None

        snapshot = self.price_cache.get_since(current.symbol, current.end_time)
        if snapshot is None:
            logger.info(f"Deferring {round_id}: no {current.symbol} price observed since round end")
            return None

        try:
            resolved = self.registry.mark_resolved(round_id, snapshot.price, now=now)
        except AlreadyResolvedError:
            logger.debug(f"Round {round_id} resolved concurrently, skipping")
            return None
        except RoundNotFoundError:
            logger.debug(f"Round {round_id} evicted concurrently, skipping")
            return None

        direction = compute_direction(resolved.start_price, resolved.end_price)
        winners = sorted(
            user_id for user_id, prediction in resolved.predictions.items()
            if prediction.direction is direction
        )

        outcome = ResolutionOutcome(
            round=resolved,
            direction=direction,
            winners=winners,
            reward_per_winner=self.reward_per_win,
        )

        for user_id in winners:
            try:
                self.user_registry.record_win(user_id, self.reward_per_win)
            except Exception as e:
                logger.error(f"Failed to credit {user_id} for {round_id}: {e}")
                outcome.failed_credits[user_id] = str(e)

        logger.info(
            f"Resolved {round_id}: {resolved.symbol} ${resolved.start_price:,.4f} -> "
            f"${resolved.end_price:,.4f} ({direction.value.upper()}), "
            f"{len(winners)}/{len(resolved.predictions)} winners"
        )
        return outcome
