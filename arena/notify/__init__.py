"""Outbound notifications: channels and the round broadcast adapter."""

from arena.notify.channels import (
    NotificationChannel,
    LoggingChannel,
    TelegramChannel,
    WebSocketChannel,
    FanoutChannel,
)
from arena.notify.broadcast import BroadcastAdapter

__all__ = [
    'NotificationChannel',
    'LoggingChannel',
    'TelegramChannel',
    'WebSocketChannel',
    'FanoutChannel',
    'BroadcastAdapter',
]
