# Pipeline Module - Pipeline Coordinator
#
# Owns the whole pipeline: threat index, correlation engine, retention
# store, event sources and the ingestion scheduler.  It is the single
# writer of pipeline state; readers (API, CLI) only ever receive
# immutable snapshots.
#
#   scheduler -> ingest(event) -> engine.classify -> store.record
#                                                 -> audit decision

import logging
import threading
from typing import Any, Dict, List, Optional, Sequence

from ..core.audit_log import AuditEventType, AuditSeverity, get_audit_logger
from ..core.config import PipelineSettings
from ..events.models import SecurityEvent
from ..intel.models import IntelLookup
from ..intel.query import IntelQuery
from ..intel.threat_index import ThreatIndex
from ..sources.base import EventSource
from ..sources.blocklist import BlocklistFeed
from ..sources.feed import BACKOFF_MULTIPLIER, INITIAL_BACKOFF_SEC, MAX_RETRY_AFTER_SEC
from ..sources.synthetic import SyntheticSource
from ..sources.urlhaus import URLhausFeed
from .correlation import Correlation, CorrelationEngine, Verdict
from .retention import PipelineSnapshot, RetentionStore
from .scheduler import IngestionMode, IngestionScheduler

logger = logging.getLogger(__name__)

_DECISION_AUDIT = {
    Verdict.AUTO_BLOCKED: AuditEventType.AUTO_REMEDIATION,
    Verdict.FEED_REVIEW: AuditEventType.FEED_MATCH,
    Verdict.MANUAL_REVIEW: AuditEventType.MANUAL_REVIEW,
}


def build_feeds(settings: PipelineSettings) -> List[EventSource]:
    """Create the reference feed sources from settings."""
    return [
        URLhausFeed(
            base_url=settings.urlhaus_base,
            limit=settings.urlhaus_limit,
            poll_interval=settings.live_interval,
            timeout=settings.fetch_timeout,
            max_retries=settings.fetch_retries,
        ),
        BlocklistFeed(
            base_url=settings.blocklist_base,
            limit=settings.blocklist_limit,
            poll_interval=settings.live_interval,
            timeout=settings.fetch_timeout,
            max_retries=settings.fetch_retries,
        ),
    ]


def fetch_deadline(settings: PipelineSettings) -> float:
    """Upper bound for one feed's fetch including retries and backoff.

    A wait between attempts is at most the longer of the backoff step
    and the Retry-After cap.
    """
    waits = sum(
        max(INITIAL_BACKOFF_SEC * BACKOFF_MULTIPLIER ** i, MAX_RETRY_AFTER_SEC)
        for i in range(settings.fetch_retries - 1)
    )
    return settings.fetch_timeout * settings.fetch_retries + waits


class PipelineCoordinator:
    """Single owner of the correlation pipeline.

    Usage::

        pipeline = PipelineCoordinator(PipelineSettings.from_env())
        pipeline.start()                      # settings.mode
        pipeline.set_mode("live")
        snap = pipeline.snapshot()
        pipeline.lookup("203.0.113.42")
        pipeline.shutdown()

    Args:
        settings: Pipeline settings (defaults when None).
        index: Threat index; the built-in reference table when None.
        synthetic: Synthetic source override.
        feeds: Live feed sources; built from settings when None.
        clock: Monotonic clock for the scheduler's cooldown guard.
    """

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        index: Optional[ThreatIndex] = None,
        synthetic: Optional[EventSource] = None,
        feeds: Optional[Sequence[EventSource]] = None,
        clock=None,
    ):
        self.settings = (settings or PipelineSettings()).validate()
        self.index = index or ThreatIndex()
        self.engine = CorrelationEngine(self.index)
        self.store = RetentionStore(
            max_events=self.settings.max_events,
            max_alerts=self.settings.max_alerts,
        )
        self.intel = IntelQuery(self.index)
        self._ingest_lock = threading.Lock()

        scheduler_kwargs: Dict[str, Any] = {}
        if clock is not None:
            scheduler_kwargs["clock"] = clock
        self.scheduler = IngestionScheduler(
            deliver=self.ingest,
            synthetic=synthetic or SyntheticSource(interval=self.settings.synthetic_interval),
            feeds=list(feeds) if feeds is not None else build_feeds(self.settings),
            synthetic_interval=self.settings.synthetic_interval,
            live_interval=self.settings.live_interval,
            stagger_delay=self.settings.stagger_delay,
            fetch_cooldown=self.settings.fetch_cooldown,
            fetch_deadline=fetch_deadline(self.settings),
            **scheduler_kwargs,
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def ingest(self, event: SecurityEvent) -> Correlation:
        """Classify one event and record it with its alert and metrics."""
        with self._ingest_lock:
            correlation = self.engine.classify(event)
            self.store.record(correlation)

        audit_type = _DECISION_AUDIT.get(correlation.verdict)
        if audit_type is not None:
            alert = correlation.alert
            get_audit_logger().log_decision(
                event_type=audit_type,
                event_id=correlation.event.event_id,
                indicator=correlation.event.source_ip,
                message=alert.title if alert else correlation.verdict.value,
                details={
                    "alert_id": alert.alert_id if alert else None,
                    "severity": correlation.event.severity.value,
                    "reputation": correlation.indicator.reputation.value,
                    "score": correlation.indicator.score,
                    "actions": list(alert.actions) if alert else [],
                    "feed": correlation.event.feed,
                },
            )
        logger.debug(
            "Event %s (%s) -> %s",
            correlation.event.event_id,
            correlation.event.event_type.value,
            correlation.verdict.value,
        )
        return correlation

    def snapshot(self) -> PipelineSnapshot:
        return self.store.snapshot()

    def lookup(self, indicator: str) -> IntelLookup:
        """Operator intel query; independent of ingestion."""
        return self.intel.lookup(indicator)

    # ------------------------------------------------------------------
    # Mode control
    # ------------------------------------------------------------------

    @property
    def mode(self) -> IngestionMode:
        return self.scheduler.mode

    def start(self, mode: Optional[str] = None) -> None:
        mode = IngestionMode(mode or self.settings.mode)
        get_audit_logger().log_event(
            event_type=AuditEventType.PIPELINE_START,
            severity=AuditSeverity.INFO,
            message="Pipeline starting",
            details={"mode": mode.value},
            throttle=False,
        )
        self.scheduler.start(mode)

    def set_mode(self, mode: str) -> bool:
        """Switch between synthetic and live ingestion.

        Raises:
            ValueError: ``mode`` is not ``synthetic`` or ``live``.
        """
        target = IngestionMode(mode)
        if target == IngestionMode.STOPPED:
            raise ValueError("use shutdown() to stop the pipeline")
        previous = self.scheduler.mode
        changed = self.scheduler.set_mode(target)
        if changed:
            get_audit_logger().log_event(
                event_type=AuditEventType.MODE_CHANGED,
                severity=AuditSeverity.INFO,
                message=f"Ingestion mode changed to {target.value}",
                details={"from": previous.value, "to": target.value},
                throttle=False,
            )
        return changed

    def shutdown(self) -> None:
        was_running = self.scheduler.mode != IngestionMode.STOPPED
        self.scheduler.shutdown()
        if was_running:
            get_audit_logger().log_event(
                event_type=AuditEventType.PIPELINE_STOP,
                severity=AuditSeverity.INFO,
                message="Pipeline stopped",
                details=self.store.metrics().to_dict(),
                throttle=False,
            )

    def status(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "scheduler": self.scheduler.stats(),
            "retention": self.store.stats(),
            "metrics": self.store.metrics().to_dict(),
            "indicators": len(self.index),
        }
