"""
APScheduler Configuration for the Prediction Arena

Manages all scheduled jobs:
- Price refresh: pull the latest prices into the cache (one-shot retry on failure)
- Creation sweep: open a round for every asset without one
- Expiry sweep: resolve expired rounds, announce results, evict old rounds
- Live digest: periodic summary of open rounds and prices

Every job catches its own errors so one failing job never stops the others.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR
from loguru import logger

from config.settings import settings
from arena.engine.errors import AlreadyActiveError
from arena.engine.models import Asset, Round
from arena.engine.price_cache import PriceCache
from arena.engine.resolution import ResolutionEngine, ResolutionOutcome
from arena.engine.round_registry import RoundRegistry
from arena.notify.broadcast import BroadcastAdapter


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoundScheduler:
    """
    Scheduler driving the round lifecycle.

    Job Schedule (defaults):
    - Every 30s: Price refresh
    - Every 60s: Round creation sweep
    - Every 5s: Expiry sweep
    - Every 2m: Live digest broadcast
    """

    def __init__(
        self,
        assets: List[Asset],
        price_cache: PriceCache,
        registry: RoundRegistry,
        resolution_engine: ResolutionEngine,
        broadcaster: BroadcastAdapter,
        refresh_interval: Optional[int] = None,
        creation_interval: Optional[int] = None,
        expiry_interval: Optional[int] = None,
        digest_interval: Optional[int] = None,
        retry_delay: Optional[float] = None,
        snapshot_max_age: Optional[float] = None,
        retention_seconds: Optional[float] = None,
    ):
        """
        Initialize scheduler.

        Intervals default to the values in settings.
        """
        self.assets = list(assets)
        self.price_cache = price_cache
        self.registry = registry
        self.resolution_engine = resolution_engine
        self.broadcaster = broadcaster

        self.refresh_interval = refresh_interval or settings.PRICE_REFRESH_INTERVAL_SECONDS
        self.creation_interval = creation_interval or settings.CREATION_SWEEP_INTERVAL_SECONDS
        self.expiry_interval = expiry_interval or settings.EXPIRY_SWEEP_INTERVAL_SECONDS
        self.digest_interval = digest_interval or settings.DIGEST_INTERVAL_SECONDS
        self.retry_delay = retry_delay if retry_delay is not None else settings.REFRESH_RETRY_DELAY_SECONDS
        self.snapshot_max_age = snapshot_max_age or settings.SNAPSHOT_MAX_AGE_SECONDS
        self.retention_seconds = (
            retention_seconds if retention_seconds is not None else settings.ROUND_RETENTION_SECONDS
        )

        # Scheduler instance
        self.scheduler: Optional[BackgroundScheduler] = None

        # Job execution tracking
        self.job_stats = {
            "price_refresh": {"runs": 0, "errors": 0, "last_run": None},
            "price_refresh_retry": {"runs": 0, "errors": 0, "last_run": None},
            "creation_sweep": {"runs": 0, "errors": 0, "last_run": None},
            "expiry_sweep": {"runs": 0, "errors": 0, "last_run": None},
            "live_digest": {"runs": 0, "errors": 0, "last_run": None},
        }

        logger.info(f"RoundScheduler initialized for {len(self.assets)} assets")

    def _begin(self, job_name: str) -> None:
        self.job_stats[job_name]["runs"] += 1
        self.job_stats[job_name]["last_run"] = _utcnow()

    # ========== JOB DEFINITIONS ==========

    def job_refresh_prices(self, allow_retry: bool = True) -> None:
        """
        Refresh the price cache.

        If no asset could be refreshed, a single retry is scheduled after
        the retry delay. The retry itself never schedules another one.
        """
        # Retry runs may overlap the interval job
        job_name = "price_refresh" if allow_retry else "price_refresh_retry"

        try:
            self._begin(job_name)
            results = self.price_cache.refresh(self.assets)

            updated = sum(1 for r in results.values() if r.ok)
            if updated == 0 and self.assets:
                logger.warning("Price refresh returned no data")
                if allow_retry:
                    self._schedule_retry()

        except Exception as e:
            logger.error(f"Price refresh job failed: {e}")
            self.job_stats[job_name]["errors"] += 1

    def job_retry_refresh(self) -> None:
        """One-shot retry of a failed price refresh."""
        logger.info("Retrying price refresh")
        self.job_refresh_prices(allow_retry=False)

    def _schedule_retry(self) -> None:
        if self.scheduler is None:
            logger.debug("Scheduler not running, skipping refresh retry")
            return

        run_date = _utcnow() + timedelta(seconds=self.retry_delay)
        self.scheduler.add_job(
            self.job_retry_refresh,
            trigger=DateTrigger(run_date=run_date),
            id="price_refresh_retry",
            name="Price Refresh Retry",
            replace_existing=True,
        )
        logger.info(f"Scheduled price refresh retry in {self.retry_delay:g}s")

    def job_create_rounds(self, now: Optional[datetime] = None) -> List[Round]:
        """
        Open a round for each asset that has none and a fresh snapshot.

        Returns:
            Rounds created in this sweep
        """
        job_name = "creation_sweep"
        created: List[Round] = []

        try:
            self._begin(job_name)
            now = now or _utcnow()

            for asset in self.assets:
                if self.registry.get_active_for_asset(asset.symbol) is not None:
                    continue

                snapshot = self.price_cache.get_fresh(asset.symbol, self.snapshot_max_age, now=now)
                if snapshot is None:
                    logger.debug(f"No fresh price for {asset.symbol}, skipping round creation")
                    continue

                try:
                    new_round = self.registry.create_round(asset, snapshot.price, now=now)
                except AlreadyActiveError as e:
                    logger.debug(f"Skipping {asset.symbol}: {e}")
                    continue

                created.append(new_round)
                self.broadcaster.announce_open(new_round)

            if created:
                logger.info(f"Creation sweep opened {len(created)} rounds")

        except Exception as e:
            logger.error(f"Creation sweep failed: {e}")
            self.job_stats[job_name]["errors"] += 1

        return created

    def job_sweep_expired(self, now: Optional[datetime] = None) -> List[ResolutionOutcome]:
        """
        Resolve expired rounds, announce the results and evict old rounds.

        Expired rounds with no price since their end get one fetched first.
        Rounds still without an end price stay Active and are retried next sweep.

        Returns:
            Outcomes resolved in this sweep
        """
        job_name = "expiry_sweep"
        outcomes: List[ResolutionOutcome] = []

        try:
            self._begin(job_name)
            now = now or _utcnow()

            expired_rounds = self.registry.list_expired(now)
            self._refresh_end_prices(expired_rounds, now)

            seen = set()
            for expired in expired_rounds:
                if expired.id in seen:
                    continue
                seen.add(expired.id)

                try:
                    outcome = self.resolution_engine.resolve(expired.id, now=now)
                except Exception as e:
                    logger.error(f"Failed to resolve {expired.id}: {e}")
                    continue

                if outcome is None:
                    continue

                outcomes.append(outcome)
                self.broadcaster.announce_resolved(outcome)
                if self.retention_seconds <= 0:
                    self.registry.evict(expired.id)

            self.registry.evict_expired_retention(self.retention_seconds, now=now)

        except Exception as e:
            logger.error(f"Expiry sweep failed: {e}")
            self.job_stats[job_name]["errors"] += 1

        return outcomes

    def _refresh_end_prices(self, expired_rounds: List[Round], now: datetime) -> None:
        """
        Fetch prices for expired rounds the cache cannot settle yet.

        Only assets without a snapshot since their round end are requested.
        Assets the provider misses stay deferred until a later sweep.
        """
        pending = {
            r.symbol for r in expired_rounds
            if self.price_cache.get_since(r.symbol, r.end_time) is None
        }
        if not pending:
            return

        targets = [a for a in self.assets if a.symbol in pending]
        try:
            results = self.price_cache.refresh(targets, now=now)
        except Exception as e:
            logger.error(f"End price refresh failed for {sorted(pending)}: {e}")
            return

        missing = sorted(s for s, r in results.items() if not r.ok)
        if missing:
            logger.warning(f"No end price for {missing}, resolution deferred")

    def job_broadcast_digest(self, now: Optional[datetime] = None) -> bool:
        """
        Broadcast a live summary. Skipped when nobody has an open prediction.

        Returns:
            True if a digest was delivered
        """
        job_name = "live_digest"

        try:
            self._begin(job_name)

            active = self.registry.list_active()
            if not any(r.predictions for r in active):
                logger.debug("No open predictions, skipping digest")
                return False

            players = self.registry.stats()["players"]
            return self.broadcaster.announce_digest(active, self.price_cache.all(), players, now=now)

        except Exception as e:
            logger.error(f"Digest job failed: {e}")
            self.job_stats[job_name]["errors"] += 1
            return False

    # ========== SCHEDULER MANAGEMENT ==========

    def start(self) -> None:
        """Start the scheduler with all configured jobs."""
        if self.scheduler is not None:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting round scheduler...")

        self.scheduler = BackgroundScheduler(timezone=timezone.utc)

        # Add event listeners
        self.scheduler.add_listener(
            self._job_executed_listener,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR,
        )

        self.scheduler.add_job(
            self.job_refresh_prices,
            trigger=IntervalTrigger(seconds=self.refresh_interval),
            id="price_refresh",
            name="Price Refresh",
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"✓ Scheduled: Price refresh every {self.refresh_interval}s")

        self.scheduler.add_job(
            self.job_create_rounds,
            trigger=IntervalTrigger(seconds=self.creation_interval),
            id="creation_sweep",
            name="Round Creation Sweep",
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"✓ Scheduled: Round creation every {self.creation_interval}s")

        self.scheduler.add_job(
            self.job_sweep_expired,
            trigger=IntervalTrigger(seconds=self.expiry_interval),
            id="expiry_sweep",
            name="Expiry Sweep",
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"✓ Scheduled: Expiry sweep every {self.expiry_interval}s")

        self.scheduler.add_job(
            self.job_broadcast_digest,
            trigger=IntervalTrigger(seconds=self.digest_interval),
            id="live_digest",
            name="Live Digest",
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"✓ Scheduled: Live digest every {self.digest_interval}s")

        # Prime the cache and open the first rounds immediately
        self.job_refresh_prices()
        self.job_create_rounds()

        self.scheduler.start()
        logger.success("Scheduler started successfully!")

        self._print_next_run_times()

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler is None:
            logger.warning("Scheduler not running")
            return

        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=True)
        self.scheduler = None
        logger.success("Scheduler stopped")

    def _job_executed_listener(self, event) -> None:
        """
        Listen for job execution events.

        Args:
            event: APScheduler event
        """
        if event.exception:
            logger.error(f"Job {event.job_id} failed: {event.exception}")
        else:
            logger.trace(f"Job {event.job_id} completed successfully")

    def _print_next_run_times(self) -> None:
        """Log next run times for all jobs."""
        if self.scheduler is None:
            return

        logger.info("Next scheduled run times:")
        for job in self.scheduler.get_jobs():
            next_run = job.next_run_time
            if next_run:
                logger.info(f"  {job.name:25s} -> {next_run.strftime('%Y-%m-%d %H:%M:%S %Z')}")

    def get_status(self) -> Dict:
        """
        Get scheduler status and statistics.

        Returns:
            Dictionary with status information
        """
        job_stats = {
            name: {
                **stats,
                "last_run": stats["last_run"].isoformat() if stats["last_run"] else None,
            }
            for name, stats in self.job_stats.items()
        }

        if self.scheduler is None:
            return {"running": False, "jobs": [], "job_stats": job_stats}

        jobs_info = []
        for job in self.scheduler.get_jobs():
            jobs_info.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run": (
                        job.next_run_time.isoformat()
                        if job.next_run_time
                        else None
                    ),
                }
            )

        return {
            "running": True,
            "tracked_assets": [a.symbol for a in self.assets],
            "jobs": jobs_info,
            "job_stats": job_stats,
        }

    def pause(self) -> None:
        """Pause all jobs."""
        if self.scheduler:
            self.scheduler.pause()
            logger.info("Scheduler paused")

    def resume(self) -> None:
        """Resume all jobs."""
        if self.scheduler:
            self.scheduler.resume()
            logger.info("Scheduler resumed")
