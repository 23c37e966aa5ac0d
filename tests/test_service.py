"""Tests for the prediction service."""
from datetime import timedelta
from unittest.mock import patch

import pytest

from arena.engine.errors import (
    InvalidDirectionError,
    NoActiveRoundError,
    RoundNotActiveError,
    UnknownAssetError,
    UserRegistryError,
)
from arena.engine.models import Direction
from tests.conftest import T0


class TestSubmitPrediction:
    """Test PredictionService.submit_prediction."""

    def test_submit_prediction(self, service, registry, user_registry, open_rounds):
        """Test a prediction lands in the asset's active round."""
        receipt = service.submit_prediction("alice", "btc", "UP", now=T0 + timedelta(seconds=60))

        assert receipt.round_id == open_rounds["BTC"].id
        assert receipt.symbol == "BTC"
        assert receipt.direction is Direction.UP
        assert receipt.replaced is False
        assert receipt.seconds_left == 240
        assert registry.get(receipt.round_id).predictions["alice"].direction is Direction.UP
        assert user_registry.get("alice").prediction_count == 1

    def test_replacement_does_not_count_twice(self, service, registry, user_registry, open_rounds):
        """Test changing a prediction keeps one entry and one count."""
        service.submit_prediction("alice", "BTC", "up", now=T0)
        receipt = service.submit_prediction("alice", "BTC", "down", now=T0)

        assert receipt.replaced is True
        assert registry.get(receipt.round_id).predictions["alice"].direction is Direction.DOWN
        assert user_registry.get("alice").prediction_count == 1

    def test_separate_rounds_count_separately(self, service, user_registry, open_rounds):
        """Test entering two rounds counts two predictions."""
        service.submit_prediction("alice", "BTC", "up", now=T0)
        service.submit_prediction("alice", "ETH", "down", now=T0)

        assert user_registry.get("alice").prediction_count == 2

    def test_invalid_direction(self, service, open_rounds):
        """Test directions other than up/down are rejected."""
        with pytest.raises(InvalidDirectionError):
            service.submit_prediction("alice", "BTC", "sideways", now=T0)

    def test_unknown_asset(self, service, open_rounds):
        """Test untracked symbols are rejected."""
        with pytest.raises(UnknownAssetError):
            service.submit_prediction("alice", "DOGE", "up", now=T0)

    def test_no_active_round(self, service):
        """Test tracked assets without a round are rejected with a wait message."""
        with pytest.raises(NoActiveRoundError) as exc_info:
            service.submit_prediction("alice", "BTC", "up", now=T0)

        assert "wait for the next round" in str(exc_info.value)

    def test_expired_round(self, service, open_rounds):
        """Test predictions after the end time are rejected."""
        with pytest.raises(RoundNotActiveError):
            service.submit_prediction("alice", "BTC", "up", now=open_rounds["BTC"].end_time)

    def test_user_registry_failure_keeps_prediction(self, service, registry, user_registry, open_rounds):
        """Test a user store outage does not reject the prediction."""
        with patch.object(user_registry, "get_or_create", side_effect=UserRegistryError("down")):
            receipt = service.submit_prediction("alice", "BTC", "up", now=T0)

        assert "alice" in registry.get(receipt.round_id).predictions


class TestReadModels:
    """Test read-side helpers."""

    def test_active_rounds_and_prices(self, service, open_rounds):
        """Test listing active rounds and prices."""
        assert {r.symbol for r in service.active_rounds()} == {"BTC", "ETH", "LINK"}
        assert [p.symbol for p in service.prices()] == ["BTC", "ETH", "LINK"]
        assert service.price("eth").price == 50.0

    def test_open_predictions_for(self, service, open_rounds):
        """Test the rounds a user is in."""
        service.submit_prediction("alice", "BTC", "up", now=T0)

        assert [r.symbol for r in service.open_predictions_for("alice")] == ["BTC"]
        assert service.open_predictions_for("bob") == []

    def test_engine_stats(self, service, open_rounds):
        """Test combined statistics."""
        service.submit_prediction("alice", "BTC", "up", now=T0)

        stats = service.engine_stats()

        assert stats["tracked_assets"] == ["BTC", "ETH", "LINK"]
        assert stats["rounds"]["active_rounds"] == 3
        assert stats["prices"]["size"] == 3
        assert stats["total_users"] == 1
