# Sources Module - External Feed Base
#
# Shared HTTP plumbing for threat-feed adapters: read-only GET with a
# per-request timeout, retry with exponential backoff on 429 / 5xx /
# transport errors, and Retry-After awareness.
#
# A feed that cannot be reached, answers non-2xx, or returns a payload
# that does not match its schema contributes an empty batch.  The
# failure is logged, counted and audited, never raised to the scheduler.

import logging
import time
from abc import abstractmethod
from typing import Dict, List, Optional

import httpx

from ..core.audit_log import AuditEventType, AuditSeverity, get_audit_logger
from ..events.models import SecurityEvent
from .base import EventSource

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 10.0
DEFAULT_MAX_RETRIES = 2
INITIAL_BACKOFF_SEC = 1.0
BACKOFF_MULTIPLIER = 2.0
MAX_RETRY_AFTER_SEC = 30.0
USER_AGENT = "threatwatch/0.1"


class FeedFetchError(Exception):
    """Raised when a feed request fails after all retries."""


class FeedPayloadError(ValueError):
    """Raised when a feed payload does not match the expected schema."""


class FeedSource(EventSource):
    """Base class for sources backed by one external HTTP feed.

    Subclasses provide ``url`` and ``parse()``; ``next_batch()`` wraps
    the request and turns every failure into an empty batch.

    Args:
        name: Feed name, also written into each event's metadata.
        base_url: Feed base URL (direct or through a reverse proxy).
        poll_interval: Cadence hint in seconds.
        timeout: Per-request timeout in seconds.
        max_retries: Attempts per fetch, including the first one.
    """

    accept = "application/json"

    def __init__(
        self,
        name: str,
        base_url: str,
        poll_interval: float = 60.0,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        super().__init__(name, poll_interval)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Subclass interface
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def url(self) -> str:
        """Full URL fetched on every cycle."""

    @abstractmethod
    def parse(self, response: httpx.Response) -> List[SecurityEvent]:
        """Map a successful response to events.

        Raises FeedPayloadError (or ValueError) when the payload as a
        whole is unusable.  Individual malformed records are skipped.
        """

    # ------------------------------------------------------------------
    # EventSource interface
    # ------------------------------------------------------------------

    def next_batch(self) -> List[SecurityEvent]:
        try:
            response = self._request(self.url)
            events = self.parse(response)
        except (FeedFetchError, ValueError) as exc:
            self._report_failure(exc)
            return []

        if self.last_error is not None:
            logger.info("Feed %s recovered", self.name)
            get_audit_logger().reset_throttle(f"feed:{self.name}")
        self.last_error = None
        self.record_fetch(len(events))
        logger.info("Feed %s returned %d events", self.name, len(events))
        return events

    def health_check(self) -> bool:
        """Return True if the feed endpoint answers 2xx."""
        try:
            self._request(self.url)
            return True
        except FeedFetchError:
            return False

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _request(self, url: str, params: Optional[Dict[str, str]] = None) -> httpx.Response:
        """Execute a GET with retry + exponential backoff."""
        backoff = INITIAL_BACKOFF_SEC
        last_error = "no attempt made"

        for attempt in range(1, self.max_retries + 1):
            final = attempt == self.max_retries
            try:
                resp = httpx.request(
                    "GET",
                    url,
                    headers={"Accept": self.accept, "User-Agent": USER_AGENT},
                    params=params,
                    timeout=self.timeout,
                    follow_redirects=True,
                )
            except httpx.HTTPError as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                if not final:
                    logger.warning(
                        "%s request failed (%s), retrying in %.1fs (attempt %d/%d)",
                        self.name, last_error, backoff, attempt, self.max_retries,
                    )
                    time.sleep(backoff)
                    backoff *= BACKOFF_MULTIPLIER
                continue

            if 200 <= resp.status_code < 300:
                return resp

            last_error = f"HTTP {resp.status_code}"
            if resp.status_code == 429 and not final:
                retry_after = resp.headers.get("Retry-After")
                try:
                    wait = float(retry_after) if retry_after else backoff
                except ValueError:
                    wait = backoff
                wait = min(wait, MAX_RETRY_AFTER_SEC)
                logger.warning(
                    "%s rate limited (429), retrying in %.1fs (attempt %d/%d)",
                    self.name, wait, attempt, self.max_retries,
                )
                time.sleep(wait)
                backoff *= BACKOFF_MULTIPLIER
                continue

            if resp.status_code >= 500 and not final:
                logger.warning(
                    "%s server error %d, retrying in %.1fs (attempt %d/%d)",
                    self.name, resp.status_code, backoff, attempt, self.max_retries,
                )
                time.sleep(backoff)
                backoff *= BACKOFF_MULTIPLIER
                continue

            if resp.status_code < 500 and resp.status_code != 429:
                # Client errors will not improve on retry
                break

        raise FeedFetchError(
            f"{self.name} request failed after {attempt} attempt(s): {last_error}"
        )

    def _report_failure(self, exc: Exception) -> None:
        self.record_error()
        self.last_error = str(exc)
        logger.warning("Feed %s contributed no events: %s", self.name, exc)
        get_audit_logger().log_event(
            event_type=AuditEventType.FEED_FETCH_FAILED,
            severity=AuditSeverity.INVESTIGATE,
            message=f"Feed {self.name} fetch failed",
            details={"feed": self.name, "url": self.url, "error": str(exc)},
            source=f"feed:{self.name}",
        )
