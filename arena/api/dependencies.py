"""Dependency injection for FastAPI endpoints."""

import asyncio
from typing import Optional
from functools import lru_cache

from fastapi import HTTPException, status
from loguru import logger

from arena.api.websocket import manager
from arena.bot.commands import CommandHandler
from arena.collector.coingecko_client import CoinGeckoClient
from arena.engine.price_cache import PriceCache
from arena.engine.resolution import ResolutionEngine
from arena.engine.round_registry import RoundRegistry
from arena.engine.service import PredictionService
from arena.notify.broadcast import BroadcastAdapter
from arena.notify.channels import (
    FanoutChannel,
    LoggingChannel,
    NotificationChannel,
    TelegramChannel,
    WebSocketChannel,
)
from arena.scheduler import RoundScheduler
from arena.users.registry import InMemoryUserRegistry, SqlUserRegistry, UserRegistry
from arena.utils.database import init_db
from config.settings import settings


# Global instances (initialized on startup)
_provider: Optional[CoinGeckoClient] = None
_telegram_channel: Optional[TelegramChannel] = None
_prediction_service: Optional[PredictionService] = None
_command_handler: Optional[CommandHandler] = None
_scheduler: Optional[RoundScheduler] = None


def build_user_registry() -> UserRegistry:
    """User registry backend selected by USER_STORE."""
    if settings.USER_STORE == "sql":
        init_db()
        logger.info(f"SqlUserRegistry initialized ({settings.DATABASE_URL})")
        return SqlUserRegistry()

    logger.info("InMemoryUserRegistry initialized")
    return InMemoryUserRegistry()


def build_channel(loop: Optional[asyncio.AbstractEventLoop] = None) -> NotificationChannel:
    """Fan-out over every configured channel; log-only when none is configured."""
    global _telegram_channel

    channels = []

    if settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_CHAT_ID:
        _telegram_channel = TelegramChannel()
        channels.append(_telegram_channel)
        logger.info("Telegram channel enabled")
    else:
        logger.warning("Telegram not configured, round announcements will not reach a chat")

    if loop is not None:
        channels.append(WebSocketChannel(manager, loop))

    if not channels:
        return LoggingChannel()
    return FanoutChannel(channels)


def init_dependencies(loop: Optional[asyncio.AbstractEventLoop] = None):
    """
    Initialize global dependencies.

    This should be called during application startup.

    Args:
        loop: API event loop, used to push events to WebSocket clients
    """
    global _provider, _prediction_service, _command_handler, _scheduler

    try:
        logger.info("Initializing API dependencies...")

        assets = settings.assets()
        logger.info(f"Tracking {len(assets)} assets: {', '.join(a.symbol for a in assets)}")

        _provider = CoinGeckoClient()
        price_cache = PriceCache(_provider)
        registry = RoundRegistry(
            round_duration_seconds=settings.ROUND_DURATION_SECONDS,
            prediction_cutoff_seconds=settings.PREDICTION_CUTOFF_SECONDS,
        )
        user_registry = build_user_registry()

        resolution_engine = ResolutionEngine(
            registry=registry,
            price_cache=price_cache,
            user_registry=user_registry,
            reward_per_win=settings.REWARD_PER_WIN,
        )
        broadcaster = BroadcastAdapter(build_channel(loop), reward_per_win=settings.REWARD_PER_WIN)

        _prediction_service = PredictionService(assets, registry, price_cache, user_registry)
        _command_handler = CommandHandler(
            _prediction_service,
            reward_per_win=settings.REWARD_PER_WIN,
            round_duration_seconds=settings.ROUND_DURATION_SECONDS,
        )
        _scheduler = RoundScheduler(
            assets=assets,
            price_cache=price_cache,
            registry=registry,
            resolution_engine=resolution_engine,
            broadcaster=broadcaster,
        )

        logger.info("All API dependencies initialized successfully")

    except Exception as e:
        logger.error(f"Failed to initialize dependencies: {e}")
        raise


def shutdown_dependencies():
    """
    Cleanup dependencies on application shutdown.
    """
    global _provider, _telegram_channel, _prediction_service, _command_handler, _scheduler

    logger.info("Shutting down API dependencies...")

    if _scheduler is not None and _scheduler.scheduler is not None:
        _scheduler.stop()
    if _provider is not None:
        _provider.close()
    if _telegram_channel is not None:
        _telegram_channel.close()

    # Clear global references
    _provider = None
    _telegram_channel = None
    _prediction_service = None
    _command_handler = None
    _scheduler = None

    logger.info("API dependencies shutdown complete")


def get_prediction_service() -> PredictionService:
    """
    Get PredictionService instance.

    Raises:
        HTTPException: If the service is not initialized
    """
    if _prediction_service is None:
        logger.error("PredictionService not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Prediction service not available"
        )
    return _prediction_service


def get_command_handler() -> CommandHandler:
    """
    Get CommandHandler instance.

    Raises:
        HTTPException: If the handler is not initialized
    """
    if _command_handler is None:
        logger.error("CommandHandler not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat commands not available"
        )
    return _command_handler


def get_optional_prediction_service() -> Optional[PredictionService]:
    """Get PredictionService instance, or None before startup (WebSocket use)."""
    return _prediction_service


def get_scheduler() -> Optional[RoundScheduler]:
    """Get RoundScheduler instance (None before startup)."""
    return _scheduler


@lru_cache()
def get_settings():
    """
    Get application settings (cached).

    Returns:
        Settings instance
    """
    return settings
