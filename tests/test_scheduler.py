"""Tests for the round scheduler jobs."""
from datetime import timedelta
from unittest.mock import MagicMock, patch

from arena.engine.errors import PriceFeedError
from arena.engine.models import Direction
from tests.conftest import T0, ROUND_SECONDS


class TestCreationSweep:
    """Test job_create_rounds."""

    def test_creates_one_round_per_asset(self, scheduler, price_cache, assets, registry, channel):
        """Test every asset with a fresh price gets a round and an announcement."""
        price_cache.refresh(assets, now=T0)

        created = scheduler.job_create_rounds(now=T0)

        assert {r.symbol for r in created} == {"BTC", "ETH", "LINK"}
        assert len(registry.list_active()) == 3
        assert [e["type"] for e in channel.events] == ["round_opened"] * 3

    def test_second_sweep_creates_nothing(self, scheduler, price_cache, assets, registry):
        """Test assets with an Active round are skipped."""
        price_cache.refresh(assets, now=T0)
        scheduler.job_create_rounds(now=T0)

        assert scheduler.job_create_rounds(now=T0 + timedelta(seconds=60)) == []
        assert len(registry.list_active()) == 3

    def test_no_round_without_price(self, scheduler, registry):
        """Test nothing is created before the first refresh."""
        assert scheduler.job_create_rounds(now=T0) == []
        assert registry.list_active() == []

    def test_stale_price_is_not_used(self, scheduler, price_cache, assets, registry):
        """Test snapshots older than the max age do not open rounds."""
        price_cache.refresh(assets, now=T0)

        assert scheduler.job_create_rounds(now=T0 + timedelta(seconds=91)) == []

    def test_partial_refresh_skips_missing_asset(self, scheduler, feed, price_cache, assets, registry):
        """Test an asset missing from the first refresh gets no round this cycle."""
        feed.prices = {"bitcoin": 100.0, "ethereum": 50.0}
        price_cache.refresh(assets, now=T0)

        created = scheduler.job_create_rounds(now=T0)

        assert {r.symbol for r in created} == {"BTC", "ETH"}
        assert registry.get_active_for_asset("LINK") is None

    def test_broadcast_failure_does_not_block_creation(self, scheduler, price_cache, assets, registry, channel):
        """Test rounds are created even when announcements fail."""
        channel.fail = True
        price_cache.refresh(assets, now=T0)

        created = scheduler.job_create_rounds(now=T0)

        assert len(created) == 3
        assert scheduler.job_stats["creation_sweep"]["errors"] == 0


class TestExpirySweep:
    """Test job_sweep_expired."""

    def test_resolves_and_announces(self, scheduler, feed, price_cache, assets, registry, user_registry, channel, open_rounds):
        """Test expired rounds with a fresh price are resolved and announced."""
        btc = open_rounds["BTC"]
        registry.record_prediction(btc.id, "alice", Direction.UP, now=T0)
        end = T0 + timedelta(seconds=ROUND_SECONDS)
        feed.prices["bitcoin"] = 105.0
        price_cache.refresh(assets, now=end)

        outcomes = scheduler.job_sweep_expired(now=end)

        assert {o.round.symbol for o in outcomes} == {"BTC", "ETH", "LINK"}
        assert registry.list_active() == []
        assert user_registry.get("alice").win_count == 1
        assert [e["type"] for e in channel.events].count("round_resolved") == 3

    def test_deferred_rounds_stay_active(self, scheduler, feed, registry, channel, open_rounds):
        """Test rounds stay Active when no end price can be fetched."""
        end = T0 + timedelta(seconds=ROUND_SECONDS)
        feed.error = PriceFeedError("down")

        assert scheduler.job_sweep_expired(now=end) == []
        assert len(registry.list_active()) == 3
        assert channel.events == []

    def test_fetches_end_price_within_one_sweep(self, scheduler, feed, price_cache, assets, registry, user_registry, open_rounds):
        """Test a sweep resolves rounds whose last cached price predates the end."""
        end = T0 + timedelta(seconds=ROUND_SECONDS)
        registry.record_prediction(open_rounds["BTC"].id, "alice", Direction.UP, now=T0)
        price_cache.refresh(assets, now=end - timedelta(seconds=1))
        feed.prices["bitcoin"] = 105.0

        outcomes = scheduler.job_sweep_expired(now=end + timedelta(seconds=scheduler.expiry_interval))

        assert {o.round.symbol for o in outcomes} == {"BTC", "ETH", "LINK"}
        assert registry.list_active() == []
        assert registry.get(open_rounds["BTC"].id).end_price == 105.0
        assert user_registry.get("alice").win_count == 1

    def test_end_price_fetch_only_requests_pending_assets(self, scheduler, feed, price_cache, assets, open_rounds):
        """Test assets already priced since their end are not fetched again."""
        end = T0 + timedelta(seconds=ROUND_SECONDS)
        price_cache.refresh(assets[:2], now=end)
        feed.calls.clear()

        outcomes = scheduler.job_sweep_expired(now=end + timedelta(seconds=1))

        assert feed.calls == [["chainlink"]]
        assert len(outcomes) == 3

    def test_partial_end_price_fetch_defers_missing_asset(self, scheduler, feed, registry, open_rounds):
        """Test an asset the provider misses stays Active for the next sweep."""
        end = T0 + timedelta(seconds=ROUND_SECONDS)
        del feed.prices["chainlink"]

        outcomes = scheduler.job_sweep_expired(now=end)

        assert {o.round.symbol for o in outcomes} == {"BTC", "ETH"}
        assert [r.symbol for r in registry.list_active()] == ["LINK"]

    def test_nothing_expired(self, scheduler, registry, open_rounds):
        """Test the sweep is a no-op before any round ends."""
        assert scheduler.job_sweep_expired(now=T0 + timedelta(seconds=10)) == []
        assert len(registry.list_active()) == 3

    def test_retention_eviction(self, scheduler, price_cache, assets, registry, open_rounds):
        """Test resolved rounds are evicted after the retention window."""
        end = T0 + timedelta(seconds=ROUND_SECONDS)
        price_cache.refresh(assets, now=end)
        scheduler.job_sweep_expired(now=end)
        assert len(registry) == 3

        scheduler.job_sweep_expired(now=end + timedelta(seconds=3600))
        assert len(registry) == 0

    def test_zero_retention_evicts_after_broadcast(self, scheduler, price_cache, assets, registry, open_rounds):
        """Test zero retention evicts right after the result is announced."""
        scheduler.retention_seconds = 0
        end = T0 + timedelta(seconds=ROUND_SECONDS)
        price_cache.refresh(assets, now=end)

        scheduler.job_sweep_expired(now=end)

        assert len(registry) == 0

    def test_resolution_error_is_isolated(self, scheduler, price_cache, assets, registry, open_rounds):
        """Test a failing resolution does not stop the other rounds."""
        end = T0 + timedelta(seconds=ROUND_SECONDS)
        price_cache.refresh(assets, now=end)
        real_resolve = scheduler.resolution_engine.resolve
        btc_id = open_rounds["BTC"].id

        def flaky(round_id, now=None):
            if round_id == btc_id:
                raise RuntimeError("boom")
            return real_resolve(round_id, now=now)

        with patch.object(scheduler.resolution_engine, "resolve", side_effect=flaky):
            outcomes = scheduler.job_sweep_expired(now=end)

        assert {o.round.symbol for o in outcomes} == {"ETH", "LINK"}
        assert registry.get(btc_id).is_active


class TestPriceRefreshJob:
    """Test job_refresh_prices and the one-shot retry."""

    def test_refresh_updates_cache(self, scheduler, price_cache):
        """Test the job fills the cache."""
        scheduler.job_refresh_prices()

        assert len(price_cache) == 3
        assert scheduler.job_stats["price_refresh"]["runs"] == 1

    def test_failed_refresh_schedules_single_retry(self, scheduler, feed):
        """Test a failed refresh schedules exactly one retry job."""
        feed.error = PriceFeedError("down")
        scheduler.scheduler = MagicMock()

        scheduler.job_refresh_prices()

        scheduler.scheduler.add_job.assert_called_once()
        kwargs = scheduler.scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == "price_refresh_retry"
        assert kwargs["replace_existing"] is True

    def test_retry_does_not_reschedule(self, scheduler, feed):
        """Test the retry itself never schedules another retry."""
        feed.error = PriceFeedError("down")
        scheduler.scheduler = MagicMock()

        scheduler.job_retry_refresh()

        scheduler.scheduler.add_job.assert_not_called()

    def test_retry_keeps_separate_stats(self, scheduler):
        """Test retry runs are counted apart from the interval job."""
        scheduler.job_retry_refresh()

        assert scheduler.job_stats["price_refresh_retry"]["runs"] == 1
        assert scheduler.job_stats["price_refresh"]["runs"] == 0

    def test_successful_refresh_schedules_nothing(self, scheduler):
        """Test no retry is scheduled after a good refresh."""
        scheduler.scheduler = MagicMock()

        scheduler.job_refresh_prices()

        scheduler.scheduler.add_job.assert_not_called()


class TestDigestJob:
    """Test job_broadcast_digest."""

    def test_skipped_without_predictions(self, scheduler, channel, open_rounds):
        """Test no digest is sent when nobody has an open prediction."""
        assert scheduler.job_broadcast_digest(now=T0) is False
        assert channel.messages == []

    def test_sent_with_predictions(self, scheduler, registry, channel, open_rounds):
        """Test the digest summarizes open rounds and players."""
        registry.record_prediction(open_rounds["BTC"].id, "alice", Direction.UP, now=T0)

        assert scheduler.job_broadcast_digest(now=T0) is True
        assert channel.events[-1]["type"] == "digest"
        assert channel.events[-1]["players"] == 1
        assert "LIVE PREDICTION UPDATE" in channel.messages[-1]


class TestJobIsolation:
    """Test that job failures are caught and counted."""

    def test_job_exception_counted(self, scheduler):
        """Test an exception inside a job bumps its error counter only."""
        with patch.object(scheduler.registry, "list_expired", side_effect=RuntimeError("boom")):
            assert scheduler.job_sweep_expired(now=T0) == []

        assert scheduler.job_stats["expiry_sweep"]["errors"] == 1
        assert scheduler.job_stats["creation_sweep"]["errors"] == 0

    def test_other_jobs_keep_running(self, scheduler, price_cache, registry):
        """Test a failing sweep does not affect refresh and creation."""
        with patch.object(scheduler.registry, "list_expired", side_effect=RuntimeError("boom")):
            scheduler.job_sweep_expired()

        scheduler.job_refresh_prices()
        created = scheduler.job_create_rounds()

        assert len(created) == 3


class TestSchedulerManagement:
    """Test start/stop/status."""

    def test_status_when_stopped(self, scheduler):
        """Test status reports not running before start."""
        status = scheduler.get_status()

        assert status["running"] is False
        assert set(status["job_stats"]) == {
            "price_refresh", "price_refresh_retry", "creation_sweep", "expiry_sweep", "live_digest",
        }

    def test_start_and_stop(self, scheduler, registry):
        """Test start registers all jobs and primes rounds, stop shuts down."""
        scheduler.start()
        try:
            status = scheduler.get_status()
            job_ids = {job["id"] for job in status["jobs"]}

            assert status["running"] is True
            assert {"price_refresh", "creation_sweep", "expiry_sweep", "live_digest"} <= job_ids
            assert len(registry.list_active()) == 3
        finally:
            scheduler.stop()

        assert scheduler.scheduler is None
