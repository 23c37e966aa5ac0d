"""Tests for the broadcast adapter and notification channels."""
import asyncio
import json
from unittest.mock import MagicMock

import httpx
import pytest

from arena.engine.errors import NotificationError
from arena.engine.models import Direction
from arena.notify.broadcast import BroadcastAdapter, format_duration, format_price
from arena.notify.channels import FanoutChannel, LoggingChannel, TelegramChannel, WebSocketChannel
from tests.conftest import RecordingChannel, REWARD, T0


class TestFormatting:
    """Test message formatting helpers."""

    def test_format_price(self):
        """Test precision adapts to price magnitude."""
        assert format_price(43250.5) == "$43,250.50"
        assert format_price(0.12345) == "$0.1235"

    def test_format_duration(self):
        """Test duration text."""
        assert format_duration(300) == "5 minutes"
        assert format_duration(60) == "1 minute"
        assert format_duration(95) == "1m 35s"
        assert format_duration(42) == "42s"


class TestBroadcastAdapter:
    """Test announcements."""

    def test_announce_open(self, broadcaster, channel, open_rounds):
        """Test round-open announcement content and event."""
        assert broadcaster.announce_open(open_rounds["BTC"]) is True

        message = channel.messages[0]
        assert "NEW PREDICTION ROUND" in message
        assert "BTC" in message
        assert "$100.00" in message
        assert "5 minutes" in message
        assert channel.events[0]["type"] == "round_opened"
        assert channel.events[0]["round"]["id"] == open_rounds["BTC"].id

    def test_announce_resolved(self, broadcaster, channel, feed, price_cache, assets, registry, resolution_engine, open_rounds):
        """Test result announcement content."""
        btc = open_rounds["BTC"]
        registry.record_prediction(btc.id, "alice", Direction.UP, now=T0)
        registry.record_prediction(btc.id, "bob", Direction.DOWN, now=T0)
        feed.prices["bitcoin"] = 105.0
        price_cache.refresh(assets, now=btc.end_time)
        outcome = resolution_engine.resolve(btc.id, now=btc.end_time)

        assert broadcaster.announce_resolved(outcome) is True

        message = channel.messages[0]
        assert "ROUND COMPLETED" in message
        assert "$100.00 → $105.00" in message
        assert "UP 5.00%" in message
        assert "1/2" in message
        assert channel.events[0]["direction"] == "up"
        assert channel.events[0]["winners"] == 1

    def test_announce_digest(self, broadcaster, channel, price_cache, open_rounds):
        """Test digest lists rounds and prices."""
        rounds = list(open_rounds.values())

        assert broadcaster.announce_digest(rounds, price_cache.all(), 4, now=T0) is True

        message = channel.messages[0]
        assert "Live rounds: 3" in message
        assert "Players: 4" in message
        assert "Current Prices" in message
        assert "ETH: $50.00" in message

    def test_channel_failure_is_swallowed(self, channel, open_rounds):
        """Test a failing channel returns False and never raises."""
        channel.fail = True
        broadcaster = BroadcastAdapter(channel, reward_per_win=REWARD)

        assert broadcaster.announce_open(open_rounds["BTC"]) is False
        assert broadcaster.get_stats() == {"sent": 0, "failed": 1}

    def test_unexpected_channel_error_is_swallowed(self, open_rounds):
        """Test non-notification exceptions are swallowed too."""
        broken = MagicMock()
        broken.send.side_effect = RuntimeError("socket closed")
        broadcaster = BroadcastAdapter(broken, reward_per_win=REWARD)

        assert broadcaster.announce_open(open_rounds["BTC"]) is False


class TestTelegramChannel:
    """Test the Telegram Bot API channel."""

    def test_send_posts_message(self):
        """Test sendMessage is called with chat id and HTML parse mode."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        telegram = TelegramChannel(bot_token="123:abc", chat_id="-100", transport=httpx.MockTransport(handler))
        telegram.send("hello")

        assert requests[0].url.path == "/bot123:abc/sendMessage"
        body = json.loads(requests[0].content)
        assert body["chat_id"] == "-100"
        assert body["text"] == "hello"
        assert body["parse_mode"] == "HTML"

    def test_send_to_explicit_chat(self):
        """Test the chat id override."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        telegram = TelegramChannel(bot_token="123:abc", chat_id="-100", transport=httpx.MockTransport(handler))
        telegram.send("hi", chat_id="42")

        assert json.loads(requests[0].content)["chat_id"] == "42"

    def test_error_status_raises(self):
        """Test non-200 responses raise NotificationError."""
        transport = httpx.MockTransport(lambda request: httpx.Response(403, text="Forbidden"))
        telegram = TelegramChannel(bot_token="123:abc", chat_id="-100", transport=transport)

        with pytest.raises(NotificationError):
            telegram.send("hello")

    def test_network_error_raises(self):
        """Test transport errors raise NotificationError."""
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        telegram = TelegramChannel(bot_token="123:abc", chat_id="-100", transport=httpx.MockTransport(handler))

        with pytest.raises(NotificationError):
            telegram.send("hello")


class TestCompositeChannels:
    """Test fan-out, logging and WebSocket channels."""

    def test_fanout_tolerates_partial_failure(self):
        """Test fan-out succeeds when at least one channel delivers."""
        good, bad = RecordingChannel(), RecordingChannel()
        bad.fail = True

        FanoutChannel([bad, good]).send("msg", {"type": "digest"})

        assert good.messages == ["msg"]

    def test_fanout_raises_when_all_fail(self):
        """Test fan-out raises when every channel fails."""
        bad = RecordingChannel()
        bad.fail = True

        with pytest.raises(NotificationError):
            FanoutChannel([bad]).send("msg")

    def test_logging_channel(self):
        """Test the log-only channel accepts messages."""
        LoggingChannel().send("msg", {"type": "round_opened"})

    def test_websocket_channel_schedules_broadcast(self):
        """Test events are handed to the event loop with the message attached."""
        manager = MagicMock()
        loop = asyncio.new_event_loop()
        received = []

        async def broadcast(payload):
            received.append(payload)

        manager.broadcast = broadcast
        try:
            WebSocketChannel(manager, loop).send("text", {"type": "round_opened"})
            loop.run_until_complete(asyncio.sleep(0.01))
        finally:
            loop.close()

        assert received == [{"type": "round_opened", "message": "text"}]

    def test_websocket_channel_closed_loop(self):
        """Test a closed loop raises NotificationError."""
        loop = asyncio.new_event_loop()
        loop.close()

        with pytest.raises(NotificationError):
            WebSocketChannel(MagicMock(), loop).send("text")
