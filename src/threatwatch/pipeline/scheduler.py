# Pipeline Module - Ingestion Scheduler
#
# Drives event sources on the cadence of the active mode:
#   - synthetic: fixed-interval tick, one generated event per tick
#   - live: immediate fetch cycle, then one every live interval; each
#     cycle fans out over all feeds in parallel (ThreadPoolExecutor),
#     waits for all, then inserts the combined batch one item at a time
#     with a stagger delay between items
#
# Timers are APScheduler interval jobs.  Only one job exists at a time;
# a mode switch removes it before installing the next one.  Job ids carry
# the generation so a run of the old job that is still executing never
# counts against the new job's instance limit.
#
# Every mode switch or shutdown bumps a generation token and sets the
# cancel event of the previous generation.  Work carries the generation
# it started under and is dropped if that is no longer current, so
# staggered insertions of a cancelled cycle never land.
#
# A cooldown guard rejects fetch cycles that start less than
# ``fetch_cooldown`` seconds after the last completed fetch, however the
# trigger was fired.

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..core.audit_log import AuditEventType, AuditSeverity, get_audit_logger
from ..events.models import SecurityEvent
from ..sources.base import EventSource

logger = logging.getLogger(__name__)

JOB_ID = "threatwatch_ingest"

DEFAULT_SYNTHETIC_INTERVAL = 3.0
DEFAULT_LIVE_INTERVAL = 60.0
DEFAULT_STAGGER_DELAY = 0.5
DEFAULT_FETCH_COOLDOWN = 30.0
DEFAULT_FETCH_DEADLINE = 50.0


class IngestionMode(str, Enum):
    SYNTHETIC = "synthetic"
    LIVE = "live"
    STOPPED = "stopped"


class FeedResult:
    """Outcome of one feed within a fetch cycle."""

    def __init__(self, feed_name: str):
        self.feed_name = feed_name
        self.events: List[SecurityEvent] = []
        self.error: Optional[str] = None
        self.duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feed": self.feed_name,
            "success": self.success,
            "events_count": len(self.events),
            "error": self.error,
            "duration_ms": round(self.duration_ms, 1),
        }


class FetchCycleReport:
    """Summary of one live fetch cycle."""

    def __init__(self, generation: int):
        self.generation = generation
        self.started = datetime.now(timezone.utc).isoformat()
        self.feed_results: List[FeedResult] = []
        self.total_fetched: int = 0
        self.delivered: int = 0
        self.discarded: int = 0
        self.finished: Optional[str] = None

    @property
    def feeds_succeeded(self) -> int:
        return sum(1 for r in self.feed_results if r.success)

    @property
    def feeds_failed(self) -> int:
        return sum(1 for r in self.feed_results if not r.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generation": self.generation,
            "started": self.started,
            "finished": self.finished,
            "feeds_succeeded": self.feeds_succeeded,
            "feeds_failed": self.feeds_failed,
            "total_fetched": self.total_fetched,
            "delivered": self.delivered,
            "discarded": self.discarded,
            "feed_results": [r.to_dict() for r in self.feed_results],
        }


class IngestionScheduler:
    """Mode-switching scheduler feeding events into the pipeline.

    Usage::

        sched = IngestionScheduler(coordinator.ingest, SyntheticSource(),
                                   [URLhausFeed(), BlocklistFeed()])
        sched.start(IngestionMode.SYNTHETIC)
        sched.set_mode(IngestionMode.LIVE)
        sched.shutdown()

    Args:
        deliver: Called with each event that should enter the pipeline.
        synthetic: Source used in synthetic mode.
        feeds: Sources polled in live mode.
        synthetic_interval: Seconds between synthetic ticks.
        live_interval: Seconds between live fetch cycles.
        stagger_delay: Seconds between inserting items of one batch.
        fetch_cooldown: Minimum seconds between completed fetches.
        fetch_deadline: Seconds to wait for all feeds of a cycle; feeds
                        still running after that contribute nothing.
        max_workers: Thread pool size for the feed fan-out.
        clock: Monotonic clock used by the cooldown guard.
    """

    def __init__(
        self,
        deliver: Callable[[SecurityEvent], Any],
        synthetic: EventSource,
        feeds: Sequence[EventSource] = (),
        synthetic_interval: float = DEFAULT_SYNTHETIC_INTERVAL,
        live_interval: float = DEFAULT_LIVE_INTERVAL,
        stagger_delay: float = DEFAULT_STAGGER_DELAY,
        fetch_cooldown: float = DEFAULT_FETCH_COOLDOWN,
        fetch_deadline: float = DEFAULT_FETCH_DEADLINE,
        max_workers: int = 4,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._deliver = deliver
        self._synthetic = synthetic
        self._feeds: List[EventSource] = list(feeds)
        self.synthetic_interval = synthetic_interval
        self.live_interval = live_interval
        self.stagger_delay = stagger_delay
        self.fetch_cooldown = fetch_cooldown
        self.fetch_deadline = fetch_deadline
        self._max_workers = max_workers
        self._clock = clock

        self._lock = threading.RLock()
        self._scheduler: Optional[BackgroundScheduler] = None
        self._job_id: Optional[str] = None
        self._mode = IngestionMode.STOPPED
        self._generation = 0
        self._cancel = threading.Event()

        self._last_fetch_completed: Optional[float] = None
        self._fetch_generation: Optional[int] = None
        self._last_report: Optional[FetchCycleReport] = None

        # Counters
        self._ticks = 0
        self._cycles_run = 0
        self._cycles_rejected = 0
        self._delivered = 0
        self._discarded = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def mode(self) -> IngestionMode:
        with self._lock:
            return self._mode

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, mode: IngestionMode = IngestionMode.SYNTHETIC) -> None:
        """Start the background scheduler in ``mode``."""
        self.set_mode(mode)

    def set_mode(self, mode: IngestionMode) -> bool:
        """Switch ingestion mode.

        Cancels the active timer and any in-flight staggered insertions,
        then installs the timer for ``mode``.  Retained data is untouched.

        Returns:
            False when ``mode`` is already active (nothing changes).
        """
        mode = IngestionMode(mode)
        with self._lock:
            if mode == self._mode:
                return False
            if mode == IngestionMode.STOPPED:
                self.shutdown()
                return True

            previous = self._mode
            self._invalidate()
            self._ensure_scheduler()
            self._remove_job()
            self._mode = mode
            generation = self._generation
            self._job_id = f"{JOB_ID}-{generation}"

            if mode == IngestionMode.SYNTHETIC:
                self._scheduler.add_job(
                    self._synthetic_job,
                    trigger=IntervalTrigger(seconds=self.synthetic_interval),
                    args=[generation],
                    id=self._job_id,
                    name="Synthetic event tick",
                    replace_existing=True,
                    max_instances=1,
                    coalesce=True,
                )
            else:
                self._scheduler.add_job(
                    self._live_job,
                    trigger=IntervalTrigger(seconds=self.live_interval),
                    args=[generation],
                    id=self._job_id,
                    name="Live feed fetch cycle",
                    replace_existing=True,
                    max_instances=1,
                    coalesce=True,
                    misfire_grace_time=None,
                    next_run_time=datetime.now(timezone.utc),
                )

        logger.info(
            "Ingestion mode %s -> %s (generation %d)",
            previous.value, mode.value, generation,
        )
        return True

    def shutdown(self) -> None:
        """Stop the timer and cancel in-flight work."""
        with self._lock:
            self._invalidate()
            self._remove_job()
            if self._scheduler is not None:
                self._scheduler.shutdown(wait=False)
                self._scheduler = None
            if self._mode != IngestionMode.STOPPED:
                logger.info("Ingestion scheduler stopped")
            self._mode = IngestionMode.STOPPED

    def _ensure_scheduler(self) -> None:
        if self._scheduler is None:
            self._scheduler = BackgroundScheduler(daemon=True, timezone="UTC")
            self._scheduler.start()

    def _remove_job(self) -> None:
        if self._job_id is None:
            return
        if self._scheduler is not None and self._scheduler.get_job(self._job_id):
            self._scheduler.remove_job(self._job_id)
        self._job_id = None

    def _invalidate(self) -> None:
        """Retire the current generation and wake its staggered waits."""
        self._cancel.set()
        self._cancel = threading.Event()
        self._generation += 1

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def _synthetic_job(self, generation: int) -> None:
        try:
            self.tick(generation)
        except Exception:
            logger.exception("Synthetic tick failed")

    def _live_job(self, generation: int) -> None:
        try:
            self.run_fetch_cycle(generation)
        except Exception:
            logger.exception("Live fetch cycle failed")

    def tick(self, generation: Optional[int] = None) -> int:
        """Pull one synthetic batch into the pipeline.

        Returns the number of events delivered.
        """
        with self._lock:
            gen = self._generation if generation is None else generation
            if gen != self._generation:
                return 0
            self._ticks += 1

        delivered = 0
        for event in self._synthetic.next_batch():
            if not self._deliver_one(event, gen):
                break
            delivered += 1
        return delivered

    def run_fetch_cycle(self, generation: Optional[int] = None) -> Optional[FetchCycleReport]:
        """Fetch all feeds concurrently and insert the combined batch.

        Returns:
            The cycle report, or None when the cycle was rejected (stale
            generation, cycle already in flight, or cooldown not elapsed).
        """
        with self._lock:
            gen = self._generation if generation is None else generation
            if gen != self._generation:
                return None
            if self._fetch_generation == gen:
                self._cycles_rejected += 1
                logger.info("Fetch cycle rejected: previous cycle still running")
                return None
            now = self._clock()
            if (
                self._last_fetch_completed is not None
                and now - self._last_fetch_completed < self.fetch_cooldown
            ):
                self._cycles_rejected += 1
                logger.info(
                    "Fetch cycle rejected: last fetch %.1fs ago (cooldown %.1fs)",
                    now - self._last_fetch_completed, self.fetch_cooldown,
                )
                return None
            self._fetch_generation = gen
            cancel = self._cancel

        report = FetchCycleReport(gen)
        try:
            report.feed_results = self._fetch_all(self._feeds)
            with self._lock:
                self._last_fetch_completed = self._clock()
                self._cycles_run += 1

            batch: List[SecurityEvent] = []
            for result in report.feed_results:
                batch.extend(result.events)
            report.total_fetched = len(batch)

            self._deliver_staggered(batch, gen, cancel, report)
        finally:
            with self._lock:
                if self._fetch_generation == gen:
                    self._fetch_generation = None

        report.finished = datetime.now(timezone.utc).isoformat()
        self._finalize(report)
        return report

    # ------------------------------------------------------------------
    # Fan-out / fan-in
    # ------------------------------------------------------------------

    def _fetch_all(self, feeds: List[EventSource]) -> List[FeedResult]:
        """Run all feeds in parallel; results keep the feed order."""
        if not feeds:
            return []

        pool = ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(feeds)),
            thread_name_prefix="feed-fetch",
        )
        try:
            futures = [(f, pool.submit(self._run_single_feed, f)) for f in feeds]
            deadline = time.monotonic() + self.fetch_deadline
            results: List[FeedResult] = []
            for feed, future in futures:
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    results.append(future.result(timeout=remaining))
                except FutureTimeout:
                    timed_out = FeedResult(feed.name)
                    timed_out.error = f"timed out after {self.fetch_deadline:.1f}s"
                    logger.warning("Feed %s %s", feed.name, timed_out.error)
                    results.append(timed_out)
            return results
        finally:
            # Late feeds keep running in the background; their results are dropped.
            pool.shutdown(wait=False)

    @staticmethod
    def _run_single_feed(feed: EventSource) -> FeedResult:
        """Run one feed, catching any exception."""
        result = FeedResult(feed.name)
        start = time.monotonic()
        try:
            result.events = list(feed.next_batch())
            error = getattr(feed, "last_error", None)
            if error and not result.events:
                result.error = error
        except Exception as exc:
            result.error = str(exc)
            logger.warning("Feed %s failed: %s", feed.name, exc)
        result.duration_ms = (time.monotonic() - start) * 1000
        return result

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _deliver_staggered(
        self,
        batch: List[SecurityEvent],
        generation: int,
        cancel: threading.Event,
        report: FetchCycleReport,
    ) -> None:
        for i, event in enumerate(batch):
            if i and self.stagger_delay > 0 and cancel.wait(self.stagger_delay):
                self._discard(report, len(batch) - i)
                return
            if not self._deliver_one(event, generation):
                self._discard(report, len(batch) - i)
                return
            report.delivered += 1

    def _discard(self, report: FetchCycleReport, count: int) -> None:
        report.discarded += count
        with self._lock:
            self._discarded += count
        logger.info(
            "Discarded %d stale events from generation %d", count, report.generation
        )

    def _deliver_one(self, event: SecurityEvent, generation: int) -> bool:
        """Deliver unless the generation went stale; holds the lock while writing."""
        with self._lock:
            if generation != self._generation:
                return False
            self._deliver(event)
            self._delivered += 1
            return True

    def _finalize(self, report: FetchCycleReport) -> None:
        self._last_report = report
        logger.info(
            "Fetch cycle complete: %d fetched, %d delivered, %d discarded, "
            "%d/%d feeds ok",
            report.total_fetched,
            report.delivered,
            report.discarded,
            report.feeds_succeeded,
            report.feeds_succeeded + report.feeds_failed,
        )
        get_audit_logger().log_event(
            event_type=AuditEventType.FETCH_CYCLE,
            severity=AuditSeverity.INFO,
            message="Live fetch cycle completed",
            details=report.to_dict(),
            source="scheduler",
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_last_report(self) -> Optional[Dict[str, Any]]:
        if self._last_report is None:
            return None
        return self._last_report.to_dict()

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            last = self._last_fetch_completed
            return {
                "mode": self._mode.value,
                "running": self.is_running,
                "generation": self._generation,
                "ticks": self._ticks,
                "cycles_run": self._cycles_run,
                "cycles_rejected": self._cycles_rejected,
                "delivered": self._delivered,
                "discarded": self._discarded,
                "seconds_since_fetch": (
                    None if last is None else round(self._clock() - last, 1)
                ),
                "feeds": [f.get_stats() for f in self._feeds],
                "last_report": self.get_last_report(),
            }
