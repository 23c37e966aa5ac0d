"""
Round Registry

Authoritative in-memory store of prediction rounds:
- One Active round per asset, enforced by an asset -> round id index
- Predictions keyed by user id (a later submission replaces the earlier one)
- Active -> Resolved exactly once via mark_resolved
- Resolved rounds are evicted after their result has been broadcast

Every read returns a detached copy of the round.
"""

import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from loguru import logger

from arena.engine.errors import (
    AlreadyActiveError,
    AlreadyResolvedError,
    RoundNotActiveError,
    RoundNotFoundError,
)
from arena.engine.models import Asset, Direction, Prediction, Round, RoundStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoundRegistry:
    """
    Thread-safe round store.

    All state changes happen under a single lock and never block on I/O,
    so check-then-act sequences (create, resolve) are atomic.
    """

    def __init__(self, round_duration_seconds: int, prediction_cutoff_seconds: int = 0):
        """
        Initialize registry.

        Args:
            round_duration_seconds: Fixed round length applied at creation
            prediction_cutoff_seconds: Predictions close this long before end time
        """
        if round_duration_seconds <= 0:
            raise ValueError("round_duration_seconds must be positive")

        self.round_duration = timedelta(seconds=round_duration_seconds)
        self.prediction_cutoff = timedelta(seconds=max(0, prediction_cutoff_seconds))
        self._rounds: Dict[str, Round] = {}
        self._active_by_symbol: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._stats = {
            'created': 0,
            'resolved': 0,
            'evicted': 0,
            'predictions': 0,
        }

    # ========== LIFECYCLE ==========

    def create_round(
        self,
        asset: Asset,
        start_price: float,
        now: Optional[datetime] = None,
    ) -> Round:
        """
        Open a new round for an asset.

        Raises:
            AlreadyActiveError: If the asset already has an Active round
        """
        if start_price <= 0:
            raise ValueError(f"Invalid start price for {asset.symbol}: {start_price}")

        start_time = now or _utcnow()
        round_id = f"{asset.symbol}_{int(start_time.timestamp() * 1000)}_{uuid.uuid4().hex[:6]}"

        with self._lock:
            existing = self._active_by_symbol.get(asset.symbol)
            if existing is not None:
                raise AlreadyActiveError(asset.symbol, existing)

            new_round = Round(
                id=round_id,
                symbol=asset.symbol,
                start_price=start_price,
                start_time=start_time,
                end_time=start_time + self.round_duration,
            )
            self._rounds[round_id] = new_round
            self._active_by_symbol[asset.symbol] = round_id
            self._stats['created'] += 1
            created = new_round.copy()

        logger.info(f"New round {round_id}: {asset.symbol} @ ${start_price:,.4f}")
        return created

    def record_prediction(
        self,
        round_id: str,
        user_id: str,
        direction: Direction,
        now: Optional[datetime] = None,
    ) -> Tuple[Prediction, bool]:
        """
        Record (or replace) a user's prediction for a round.

        Returns:
            (prediction, replaced) where replaced is True if the user already
            had a prediction in this round

        Raises:
            RoundNotFoundError: If the round id is unknown
            RoundNotActiveError: If the round is resolved, expired or past its cutoff
        """
        now = now or _utcnow()

        with self._lock:
            target = self._rounds.get(round_id)
            if target is None:
                raise RoundNotFoundError(round_id)
            if not target.is_active or now >= target.end_time - self.prediction_cutoff:
                raise RoundNotActiveError(round_id)

            prediction = Prediction(user_id=user_id, direction=direction, submitted_at=now)
            replaced = user_id in target.predictions
            target.predictions[user_id] = prediction
            if not replaced:
                self._stats['predictions'] += 1

        return prediction, replaced

    def list_expired(self, now: Optional[datetime] = None) -> List[Round]:
        """Active rounds whose end time has passed. Does not change state."""
        now = now or _utcnow()
        with self._lock:
            return [
                r.copy() for r in self._rounds.values()
                if r.is_active and now >= r.end_time
            ]

    def mark_resolved(
        self,
        round_id: str,
        end_price: float,
        now: Optional[datetime] = None,
    ) -> Round:
        """
        Transition a round from Active to Resolved.

        Returns:
            Copy of the resolved round, with the predictions frozen at resolution

        Raises:
            RoundNotFoundError: If the round id is unknown
            AlreadyResolvedError: If an earlier call already resolved it
        """
        now = now or _utcnow()

        with self._lock:
            target = self._rounds.get(round_id)
            if target is None:
                raise RoundNotFoundError(round_id)
            if not target.is_active:
                raise AlreadyResolvedError(round_id)

            target.status = RoundStatus.RESOLVED
            target.end_price = end_price
            target.resolved_at = now
            if self._active_by_symbol.get(target.symbol) == round_id:
                del self._active_by_symbol[target.symbol]
            self._stats['resolved'] += 1
            return target.copy()

    def evict(self, round_id: str) -> bool:
        """
        Remove a Resolved round.

        Returns:
            True if removed, False if unknown or still Active
        """
        with self._lock:
            target = self._rounds.get(round_id)
            if target is None:
                return False
            if target.is_active:
                logger.warning(f"Refusing to evict active round {round_id}")
                return False
            del self._rounds[round_id]
            self._stats['evicted'] += 1
        return True

    def evict_expired_retention(
        self,
        retention_seconds: float,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Evict Resolved rounds resolved more than retention_seconds ago."""
        now = now or _utcnow()
        cutoff = now - timedelta(seconds=retention_seconds)

        with self._lock:
            stale = [
                r.id for r in self._rounds.values()
                if not r.is_active and r.resolved_at is not None and r.resolved_at <= cutoff
            ]
            for round_id in stale:
                del self._rounds[round_id]
            self._stats['evicted'] += len(stale)

        if stale:
            logger.debug(f"Evicted {len(stale)} resolved rounds past retention")
        return stale

    # ========== READS ==========

    def get(self, round_id: str) -> Optional[Round]:
        with self._lock:
            target = self._rounds.get(round_id)
            return target.copy() if target else None

    def get_active_for_asset(self, symbol: str) -> Optional[Round]:
        with self._lock:
            round_id = self._active_by_symbol.get(symbol.upper())
            return self._rounds[round_id].copy() if round_id else None

    def list_active(self) -> List[Round]:
        """Active rounds ordered by end time."""
        with self._lock:
            active = [r.copy() for r in self._rounds.values() if r.is_active]
        return sorted(active, key=lambda r: r.end_time)

    def list_resolved(self) -> List[Round]:
        """Resolved rounds still in retention, most recent first."""
        with self._lock:
            resolved = [r.copy() for r in self._rounds.values() if not r.is_active]
        return sorted(resolved, key=lambda r: r.resolved_at, reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rounds)

    def stats(self) -> Dict:
        """Get registry statistics."""
        with self._lock:
            active = [r for r in self._rounds.values() if r.is_active]
            return {
                **self._stats,
                'active_rounds': len(active),
                'stored_rounds': len(self._rounds),
                'open_predictions': sum(len(r.predictions) for r in active),
                'players': len({u for r in active for u in r.predictions}),
            }
