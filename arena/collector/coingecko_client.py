"""CoinGecko price feed client."""
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

import httpx
from loguru import logger

from arena.engine.errors import PriceFeedError, RateLimitError
from config.settings import settings


class PriceFeedProvider(ABC):
    """
    Source of current prices for a set of asset feed keys.

    Implementations must tolerate partial responses: a key missing from the
    returned mapping means that asset's refresh failed, the others succeed.
    """

    @abstractmethod
    def fetch_prices(self, asset_keys: Iterable[str]) -> Dict[str, Dict[str, float]]:
        """
        Fetch price data.

        Args:
            asset_keys: Provider keys (e.g. 'bitcoin')

        Returns:
            Mapping key -> {price, change_24h, market_cap, volume_24h}

        Raises:
            PriceFeedError: If the whole call failed
        """


class CoinGeckoClient(PriceFeedProvider):
    """
    Wrapper for the CoinGecko simple/price endpoint.

    CoinGecko Free Tier:
    - ~30 calls per minute without a key
    - Demo keys are sent in the x-cg-demo-api-key header
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize CoinGecko client.

        Args:
            api_key: CoinGecko demo API key (defaults to settings, optional)
            base_url: API base URL (defaults to settings)
            timeout: Request timeout in seconds (defaults to settings)
            transport: Custom httpx transport (used by tests)
        """
        self.api_key = api_key if api_key is not None else settings.COINGECKO_API_KEY
        self.base_url = (base_url or settings.COINGECKO_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self.call_count = 0

        headers = {
            "Accept": "application/json",
            "User-Agent": "RainmakerArena/1.0",
        }
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        else:
            logger.warning("COINGECKO_API_KEY not set, using free tier with rate limits")

        self.client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=transport,
        )

        logger.info("CoinGecko client initialized")

    def fetch_prices(self, asset_keys: Iterable[str]) -> Dict[str, Dict[str, float]]:
        keys = [k for k in asset_keys if k]
        if not keys:
            return {}

        self.call_count += 1
        params = {
            "ids": ",".join(keys),
            "vs_currencies": "usd",
            "include_market_cap": "true",
            "include_24hr_vol": "true",
            "include_24hr_change": "true",
        }

        try:
            response = self.client.get("/simple/price", params=params)
        except httpx.TimeoutException as e:
            raise PriceFeedError(f"CoinGecko request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise PriceFeedError(f"CoinGecko request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitError("CoinGecko rate limit exceeded (HTTP 429)")
        if response.status_code != 200:
            raise PriceFeedError(f"CoinGecko returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise PriceFeedError("CoinGecko returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise PriceFeedError(f"Unexpected CoinGecko payload type: {type(payload).__name__}")

        prices = {}
        for key in keys:
            entry = payload.get(key)
            parsed = self._parse_entry(entry)
            if parsed is None:
                logger.debug(f"No usable CoinGecko data for {key}")
                continue
            prices[key] = parsed

        logger.debug(f"Fetched CoinGecko prices: {len(prices)}/{len(keys)} assets")
        return prices

    @staticmethod
    def _parse_entry(entry) -> Optional[Dict[str, float]]:
        """Convert one CoinGecko entry, or None if it has no usable price."""
        if not isinstance(entry, dict):
            return None
        try:
            price = float(entry["usd"])
        except (KeyError, TypeError, ValueError):
            return None
        if price <= 0:
            return None

        def number(name: str) -> float:
            try:
                return float(entry.get(name) or 0.0)
            except (TypeError, ValueError):
                return 0.0

        return {
            "price": price,
            "change_24h": number("usd_24h_change"),
            "market_cap": number("usd_market_cap"),
            "volume_24h": number("usd_24h_vol"),
        }

    def health_check(self) -> bool:
        """
        Check API connectivity.

        Returns:
            True if API is accessible, False otherwise
        """
        try:
            return "bitcoin" in self.fetch_prices(["bitcoin"])
        except PriceFeedError as e:
            logger.error(f"Health check failed: {e}")
            return False

    def get_call_count(self) -> int:
        """Get total API calls made."""
        return self.call_count

    def close(self) -> None:
        self.client.close()
