"""Price feed collection (CoinGecko)."""

from arena.collector.coingecko_client import (
    PriceFeedProvider,
    CoinGeckoClient,
)

__all__ = [
    'PriceFeedProvider',
    'CoinGeckoClient',
]
