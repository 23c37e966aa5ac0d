"""
Price Cache

Holds the latest PriceSnapshot per tracked asset:
- Refreshed from a PriceFeedProvider on a fixed interval
- All-or-nothing per asset: a snapshot is replaced whole or left untouched
- Absence before the first successful refresh is a normal state
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from loguru import logger

from arena.collector.coingecko_client import PriceFeedProvider
from arena.engine.errors import PriceFeedError
from arena.engine.models import Asset, PriceSnapshot


@dataclass(frozen=True)
class RefreshResult:
    """Per-asset outcome of a refresh: either a snapshot or an error message."""
    symbol: str
    snapshot: Optional[PriceSnapshot] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.snapshot is not None


class PriceCache:
    """
    Thread-safe store of the latest snapshot per asset.

    Provider calls happen outside the lock; only the final swap of
    snapshots is done while holding it.
    """

    def __init__(self, provider: PriceFeedProvider):
        self.provider = provider
        self._snapshots: Dict[str, PriceSnapshot] = {}
        self._lock = threading.RLock()
        self._stats = {
            'refreshes': 0,
            'failures': 0,
            'asset_updates': 0,
            'asset_misses': 0,
        }

    def refresh(
        self,
        assets: Iterable[Asset],
        now: Optional[datetime] = None,
    ) -> Dict[str, RefreshResult]:
        """
        Refresh snapshots for the given assets.

        Args:
            assets: Assets to refresh
            now: Capture timestamp (defaults to current UTC time)

        Returns:
            Mapping symbol -> RefreshResult. Assets missing from the
            provider response get an error result and keep their old snapshot.
        """
        assets = list(assets)
        captured_at = now or datetime.now(timezone.utc)

        try:
            data = self.provider.fetch_prices([a.feed_key for a in assets])
        except PriceFeedError as e:
            logger.warning(f"Price refresh failed for all assets: {e}")
            with self._lock:
                self._stats['refreshes'] += 1
                self._stats['failures'] += 1
                self._stats['asset_misses'] += len(assets)
            return {a.symbol: RefreshResult(symbol=a.symbol, error=str(e)) for a in assets}

        results: Dict[str, RefreshResult] = {}
        fresh: Dict[str, PriceSnapshot] = {}

        for asset in assets:
            entry = data.get(asset.feed_key)
            if entry is None:
                results[asset.symbol] = RefreshResult(
                    symbol=asset.symbol,
                    error=f"No price data returned for {asset.feed_key}",
                )
                continue

            snapshot = PriceSnapshot(
                symbol=asset.symbol,
                price=entry["price"],
                change_24h_pct=entry.get("change_24h", 0.0),
                market_cap=entry.get("market_cap", 0.0),
                volume_24h=entry.get("volume_24h", 0.0),
                captured_at=captured_at,
            )
            fresh[asset.symbol] = snapshot
            results[asset.symbol] = RefreshResult(symbol=asset.symbol, snapshot=snapshot)

        misses = len(assets) - len(fresh)
        with self._lock:
            self._snapshots.update(fresh)
            self._stats['refreshes'] += 1
            self._stats['asset_updates'] += len(fresh)
            self._stats['asset_misses'] += misses

        if misses:
            missing = [s for s, r in results.items() if not r.ok]
            logger.warning(f"Partial price refresh: {len(fresh)}/{len(assets)} assets, missing {missing}")
        else:
            logger.debug(f"Prices updated: {len(fresh)}/{len(assets)} assets")

        return results

    def get(self, symbol: str) -> Optional[PriceSnapshot]:
        """Latest snapshot for symbol, or None before the first successful refresh."""
        with self._lock:
            return self._snapshots.get(symbol.upper())

    def get_fresh(
        self,
        symbol: str,
        max_age_seconds: float,
        now: Optional[datetime] = None,
    ) -> Optional[PriceSnapshot]:
        """Snapshot only if it was captured within max_age_seconds."""
        snapshot = self.get(symbol)
        if snapshot is None:
            return None
        now = now or datetime.now(timezone.utc)
        if now - snapshot.captured_at > timedelta(seconds=max_age_seconds):
            return None
        return snapshot

    def get_since(self, symbol: str, since: datetime) -> Optional[PriceSnapshot]:
        """Snapshot only if it was captured at or after `since`."""
        snapshot = self.get(symbol)
        if snapshot is None or snapshot.captured_at < since:
            return None
        return snapshot

    def all(self) -> List[PriceSnapshot]:
        """All cached snapshots, ordered by symbol."""
        with self._lock:
            return [self._snapshots[s] for s in sorted(self._snapshots)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)

    def get_stats(self) -> Dict:
        """Get cache statistics."""
        with self._lock:
            return {
                **self._stats,
                'size': len(self._snapshots),
            }
