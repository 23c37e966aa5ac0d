"""
Notification channels.

A channel is a fire-and-forget text sink. `send` raises NotificationError
on delivery failure; callers decide whether to swallow it.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from arena.engine.errors import NotificationError
from config.settings import settings


class NotificationChannel(ABC):
    """Outbound message sink."""

    @abstractmethod
    def send(self, message: str, event: Optional[Dict[str, Any]] = None) -> None:
        """
        Deliver a message.

        Args:
            message: Human-readable text
            event: Optional structured form of the message ({"type": ..., ...})

        Raises:
            NotificationError: If delivery failed
        """


class LoggingChannel(NotificationChannel):
    """Writes messages to the log. Used when no real channel is configured."""

    def send(self, message: str, event: Optional[Dict[str, Any]] = None) -> None:
        kind = event.get("type", "message") if event else "message"
        logger.info(f"[broadcast:{kind}] {message}")


class TelegramChannel(NotificationChannel):
    """Posts messages to a Telegram chat through the Bot API."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Args:
            bot_token: Bot token (defaults to settings)
            chat_id: Default target chat (defaults to settings)
            timeout: Request timeout in seconds
            transport: Custom httpx transport (used by tests)
        """
        self.bot_token = bot_token or settings.TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id or settings.TELEGRAM_CHAT_ID
        if not self.bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required for TelegramChannel")

        self.client = httpx.Client(
            base_url=f"https://api.telegram.org/bot{self.bot_token}",
            timeout=timeout,
            transport=transport,
        )

    def send(
        self,
        message: str,
        event: Optional[Dict[str, Any]] = None,
        chat_id: Optional[str] = None,
    ) -> None:
        target = chat_id or self.chat_id
        if not target:
            raise NotificationError("No Telegram chat id configured")

        try:
            response = self.client.post(
                "/sendMessage",
                json={
                    "chat_id": target,
                    "text": message,
                    "parse_mode": "HTML",
                    "disable_web_page_preview": True,
                },
            )
        except httpx.HTTPError as e:
            raise NotificationError(f"Telegram request failed: {e}") from e

        if response.status_code != 200:
            raise NotificationError(f"Telegram API returned {response.status_code}: {response.text[:200]}")

    def close(self) -> None:
        self.client.close()


class WebSocketChannel(NotificationChannel):
    """
    Forwards events to connected WebSocket clients.

    `send` is called from scheduler threads, so the broadcast coroutine is
    handed to the API event loop and not awaited.
    """

    def __init__(self, manager, loop: asyncio.AbstractEventLoop):
        """
        Args:
            manager: Connection manager exposing `async broadcast(dict)`
            loop: Event loop the WebSocket connections live on
        """
        self.manager = manager
        self.loop = loop

    def send(self, message: str, event: Optional[Dict[str, Any]] = None) -> None:
        if self.loop.is_closed():
            raise NotificationError("WebSocket event loop is closed")

        payload = dict(event) if event else {"type": "message"}
        payload["message"] = message
        asyncio.run_coroutine_threadsafe(self.manager.broadcast(payload), self.loop)


class FanoutChannel(NotificationChannel):
    """Sends to every child channel; fails only if all of them fail."""

    def __init__(self, channels: List[NotificationChannel]):
        self.channels = list(channels)

    def send(self, message: str, event: Optional[Dict[str, Any]] = None) -> None:
        errors = []
        for channel in self.channels:
            try:
                channel.send(message, event)
            except Exception as e:
                logger.warning(f"{type(channel).__name__} failed: {e}")
                errors.append(f"{type(channel).__name__}: {e}")

        if self.channels and len(errors) == len(self.channels):
            raise NotificationError("; ".join(errors))
