# Core Module - Audit Logging
#
# Append-only structured audit trail for pipeline decisions.
# Every auto-remediation, manual-review escalation, mode switch and feed
# failure is written as one JSON line (structlog) into a daily file, so
# operators can reconstruct why the pipeline blocked an indicator.

import logging
import os
import socket
import sys
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

from .log_throttle import LogThrottler

AUDIT_LOGGER_NAME = "threatwatch.audit"


class AuditEventType(str, Enum):
    """Types of pipeline events written to the audit log."""
    # Lifecycle
    PIPELINE_START = "pipeline.start"
    PIPELINE_STOP = "pipeline.stop"
    MODE_CHANGED = "pipeline.mode_changed"

    # Correlation decisions
    AUTO_REMEDIATION = "decision.auto_remediation"
    FEED_MATCH = "decision.feed_match"
    MANUAL_REVIEW = "decision.manual_review"

    # Feeds
    FEED_FETCH_FAILED = "feed.fetch_failed"
    FETCH_CYCLE = "feed.fetch_cycle"


class AuditSeverity(str, Enum):
    """
    Severity of an audit entry.

    - INFO: routine activity (mode switch, completed fetch cycle)
    - INVESTIGATE: something needs a look (feed failure, feed match)
    - ALERT: the pipeline acted on its own (indicator blocked)
    - CRITICAL: a human decision is required
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only JSON audit logger.

    Entries carry an id, UTC timestamp, event type, severity, message,
    details and the host context.  Identical non-critical messages from
    the same source are throttled.
    """

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        throttler: Optional[LogThrottler] = None,
    ):
        """
        Args:
            log_dir: Directory for audit files (default: ./audit_logs)
            throttler: Throttler for repeated messages
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._throttler = throttler or LogThrottler()
        self._lock = threading.Lock()

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=False,
        )

        self._handler = self._setup_file_handler()
        self.logger = structlog.get_logger(AUDIT_LOGGER_NAME)

    @property
    def log_file(self) -> Path:
        return Path(self._handler.baseFilename)

    def _setup_file_handler(self) -> logging.FileHandler:
        """Attach a daily file handler to the audit logger."""
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(message)s"))

        audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        for old in list(audit_logger.handlers):
            audit_logger.removeHandler(old)
            old.close()
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        audit_logger.propagate = False
        return file_handler

    def log_event(
        self,
        event_type: AuditEventType,
        severity: AuditSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        source: str = "pipeline",
        throttle: bool = True,
    ) -> Optional[str]:
        """
        Write one audit entry.

        Args:
            event_type: Entry type
            severity: Entry severity
            message: Human-readable description
            details: Extra structured context
            source: Origin used for throttling (feed name, component)
            throttle: False writes the entry unconditionally

        Returns:
            The entry id, or None when the entry was throttled.
        """
        note = None
        if throttle:
            should_log, note = self._throttler.should_log(
                source=source, message=message, severity=severity.value
            )
            if not should_log:
                return None

        entry_id = str(uuid4())
        entry = {
            "entry_id": entry_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "source": source,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": details or {},
            "host_context": self._host_context(),
        }
        if note:
            entry["throttle_note"] = note

        with self._lock:
            self.logger.info("audit_event", **entry)
        return entry_id

    def log_decision(
        self,
        event_type: AuditEventType,
        event_id: str,
        indicator: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """Write a correlation decision for one event."""
        severity = {
            AuditEventType.AUTO_REMEDIATION: AuditSeverity.ALERT,
            AuditEventType.MANUAL_REVIEW: AuditSeverity.CRITICAL,
        }.get(event_type, AuditSeverity.INVESTIGATE)
        body = dict(details or {})
        body.update({"event_id": event_id, "indicator": indicator})
        return self.log_event(
            event_type=event_type,
            severity=severity,
            message=message,
            details=body,
            source="correlation",
            throttle=False,
        )

    def reset_throttle(self, source: str) -> None:
        """Let the next entry from ``source`` through unthrottled."""
        self._throttler.reset_source(source)

    def close(self) -> None:
        audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        audit_logger.removeHandler(self._handler)
        self._handler.close()

    @staticmethod
    def _host_context() -> Dict[str, Any]:
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }


# Global logger instance
_audit_logger: Optional[AuditLogger] = None
_audit_lock = threading.Lock()


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    with _audit_lock:
        if _audit_logger is None:
            _audit_logger = AuditLogger()
        return _audit_logger


def set_audit_logger(logger: Optional[AuditLogger]) -> None:
    """Replace the global audit logger (None resets it)."""
    global _audit_logger
    with _audit_lock:
        _audit_logger = logger
