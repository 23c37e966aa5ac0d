"""Pytest configuration and fixtures for engine and API testing."""
import pytest
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from fastapi.testclient import TestClient

from arena.bot.commands import CommandHandler
from arena.collector.coingecko_client import PriceFeedProvider
from arena.engine.errors import NotificationError, PriceFeedError, UserRegistryError
from arena.engine.models import Asset
from arena.engine.price_cache import PriceCache
from arena.engine.resolution import ResolutionEngine
from arena.engine.round_registry import RoundRegistry
from arena.engine.service import PredictionService
from arena.notify.broadcast import BroadcastAdapter
from arena.notify.channels import NotificationChannel
from arena.scheduler import RoundScheduler
from arena.users.registry import InMemoryUserRegistry


T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
ROUND_SECONDS = 300
REWARD = 0.02


# Fake collaborators
class FakePriceFeed(PriceFeedProvider):
    """In-memory price feed; keys missing from `prices` are omitted from responses."""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self.prices: Dict[str, float] = dict(prices or {})
        self.error: Optional[Exception] = None
        self.calls: List[List[str]] = []

    def fetch_prices(self, asset_keys: Iterable[str]) -> Dict[str, Dict[str, float]]:
        keys = list(asset_keys)
        self.calls.append(keys)
        if self.error is not None:
            raise self.error
        return {
            key: {
                "price": self.prices[key],
                "change_24h": 1.5,
                "market_cap": 1_000_000.0,
                "volume_24h": 50_000.0,
            }
            for key in keys
            if key in self.prices
        }


class RecordingChannel(NotificationChannel):
    """Keeps every sent message; raises NotificationError when `fail` is set."""

    def __init__(self):
        self.messages: List[str] = []
        self.events: List[dict] = []
        self.fail = False

    def send(self, message, event=None):
        if self.fail:
            raise NotificationError("channel down")
        self.messages.append(message)
        self.events.append(event or {})


class FlakyUserRegistry(InMemoryUserRegistry):
    """Fails record_win for the user ids in `failing`."""

    def __init__(self, failing=()):
        super().__init__()
        self.failing = set(failing)

    def record_win(self, user_id, reward):
        if user_id in self.failing:
            raise UserRegistryError(f"cannot credit {user_id}")
        return super().record_win(user_id, reward)


# Fixtures
@pytest.fixture
def assets():
    """Three tracked assets."""
    return [
        Asset(symbol="BTC", feed_key="bitcoin", name="Bitcoin"),
        Asset(symbol="ETH", feed_key="ethereum", name="Ethereum"),
        Asset(symbol="LINK", feed_key="chainlink", name="Chainlink"),
    ]


@pytest.fixture
def feed():
    """Price feed with all three assets priced."""
    return FakePriceFeed({"bitcoin": 100.0, "ethereum": 50.0, "chainlink": 10.0})


@pytest.fixture
def price_cache(feed):
    return PriceCache(feed)


@pytest.fixture
def registry():
    return RoundRegistry(round_duration_seconds=ROUND_SECONDS)


@pytest.fixture
def user_registry():
    return InMemoryUserRegistry()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def broadcaster(channel):
    return BroadcastAdapter(channel, reward_per_win=REWARD)


@pytest.fixture
def resolution_engine(registry, price_cache, user_registry):
    return ResolutionEngine(registry, price_cache, user_registry, reward_per_win=REWARD)


@pytest.fixture
def service(assets, registry, price_cache, user_registry):
    return PredictionService(assets, registry, price_cache, user_registry)


@pytest.fixture
def scheduler(assets, price_cache, registry, resolution_engine, broadcaster):
    """Scheduler whose jobs are called directly (never started)."""
    return RoundScheduler(
        assets=assets,
        price_cache=price_cache,
        registry=registry,
        resolution_engine=resolution_engine,
        broadcaster=broadcaster,
        refresh_interval=30,
        creation_interval=60,
        expiry_interval=5,
        digest_interval=120,
        retry_delay=10,
        snapshot_max_age=90,
        retention_seconds=3600,
    )


@pytest.fixture
def command_handler(service):
    return CommandHandler(service, reward_per_win=REWARD, round_duration_seconds=ROUND_SECONDS)


@pytest.fixture
def open_rounds(assets, price_cache, registry):
    """Prices cached at T0 and one open round per asset."""
    price_cache.refresh(assets, now=T0)
    return {a.symbol: registry.create_round(a, price_cache.get(a.symbol).price, now=T0) for a in assets}


@pytest.fixture
def test_client(service, command_handler, scheduler):
    """Test client wired to the fixture engine. The app lifespan is not run."""
    from arena.api.main import app
    from arena.api import dependencies

    app.dependency_overrides[dependencies.get_prediction_service] = lambda: service
    app.dependency_overrides[dependencies.get_optional_prediction_service] = lambda: service
    app.dependency_overrides[dependencies.get_command_handler] = lambda: command_handler
    app.dependency_overrides[dependencies.get_scheduler] = lambda: scheduler

    yield TestClient(app)

    # Clear overrides after test
    app.dependency_overrides.clear()


@pytest.fixture
def live_rounds(assets, price_cache, registry):
    """Rounds opened at wall-clock time, for endpoints that use the real clock."""
    now = datetime.now(timezone.utc)
    price_cache.refresh(assets, now=now)
    return {a.symbol: registry.create_round(a, price_cache.get(a.symbol).price, now=now) for a in assets}
