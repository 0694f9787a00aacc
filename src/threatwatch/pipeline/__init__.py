# Pipeline Module - Ingestion, Correlation and Retention
#
# Scheduler -> CorrelationEngine -> RetentionStore, owned by the
# PipelineCoordinator.

from .coordinator import PipelineCoordinator, build_feeds
from .correlation import (
    AUTO_RESPONSE_ACTIONS,
    FEED_MONITORING_ACTIONS,
    Correlation,
    CorrelationEngine,
    Verdict,
)
from .retention import DuplicateRecordError, PipelineSnapshot, RetentionStore
from .scheduler import (
    FeedResult,
    FetchCycleReport,
    IngestionMode,
    IngestionScheduler,
)

__all__ = [
    "PipelineCoordinator",
    "build_feeds",
    "Correlation",
    "CorrelationEngine",
    "Verdict",
    "AUTO_RESPONSE_ACTIONS",
    "FEED_MONITORING_ACTIONS",
    "RetentionStore",
    "PipelineSnapshot",
    "DuplicateRecordError",
    "IngestionScheduler",
    "IngestionMode",
    "FeedResult",
    "FetchCycleReport",
]
