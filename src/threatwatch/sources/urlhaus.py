# Sources Module - URLhaus URL-Reputation Feed
#
# Polls the abuse.ch URLhaus "recent URLs" endpoint (free, no API key)
# and maps each malicious-URL record to a MALWARE_URL_DETECTED event.
#
# Payload shape:
#   {"query_status": "ok",
#    "urls": [{"url", "date_added", "threat", "tags", "reporter",
#              "url_status", ...}, ...]}

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import httpx

from ..events.models import (
    EventOrigin,
    EventStatus,
    EventType,
    SecurityEvent,
    Severity,
)
from .feed import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_SEC, FeedPayloadError, FeedSource

logger = logging.getLogger(__name__)

URLHAUS_API_URL = "https://urlhaus-api.abuse.ch"
DEFAULT_LIMIT = 10
URL_DISPLAY_LENGTH = 80

# Threat tags that escalate an event to critical
_CRITICAL_THREATS = frozenset({"malware_download"})


def _truncate(value: str, length: int = URL_DISPLAY_LENGTH) -> str:
    return value if len(value) <= length else value[:length] + "..."


def _extract_host(url: str) -> Optional[str]:
    """Return the host component of an absolute URL, or None if malformed."""
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not host:
        return None
    return host


def _normalize_tags(tags: Any) -> List[str]:
    if not tags:
        return []
    if isinstance(tags, str):
        return [t.strip() for t in tags.split(",") if t.strip()]
    if isinstance(tags, list):
        return [str(t).strip() for t in tags if str(t).strip()]
    return []


class URLhausFeed(FeedSource):
    """URLhaus recent malicious-URL feed.

    Usage::

        feed = URLhausFeed(limit=10)
        events = feed.next_batch()   # [] if URLhaus is unreachable
    """

    def __init__(
        self,
        base_url: str = URLHAUS_API_URL,
        limit: int = DEFAULT_LIMIT,
        poll_interval: float = 60.0,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        super().__init__(
            "urlhaus",
            base_url,
            poll_interval=poll_interval,
            timeout=timeout,
            max_retries=max_retries,
        )
        self.limit = limit

    @property
    def url(self) -> str:
        return f"{self.base_url}/v1/urls/recent/limit/{self.limit}/"

    def parse(self, response: httpx.Response) -> List[SecurityEvent]:
        data = response.json()
        if not isinstance(data, dict):
            raise FeedPayloadError("URLhaus payload is not a JSON object")

        status = data.get("query_status")
        if status == "no_results":
            return []
        if status != "ok":
            raise FeedPayloadError(f"URLhaus query_status: {status!r}")

        records = data.get("urls")
        if not isinstance(records, list):
            raise FeedPayloadError("URLhaus payload has no 'urls' list")

        events: List[SecurityEvent] = []
        for record in records[:self.limit]:
            event = self._to_event(record)
            if event is not None:
                events.append(event)
        return events

    def _to_event(self, record: Dict[str, Any]) -> Optional[SecurityEvent]:
        """Map one URLhaus record, or None when the record is malformed."""
        if not isinstance(record, dict):
            logger.debug("Skipping non-object URLhaus record: %r", record)
            return None

        url = str(record.get("url") or "").strip()
        host = _extract_host(url)
        if host is None:
            logger.debug("Skipping URLhaus record with malformed URL: %r", url)
            return None

        threat = str(record.get("threat") or "")
        tags = _normalize_tags(record.get("tags"))
        severity = Severity.CRITICAL if threat in _CRITICAL_THREATS else Severity.HIGH
        status = (
            EventStatus.DETECTED
            if record.get("url_status") == "online"
            else EventStatus.ARCHIVED
        )

        return SecurityEvent(
            event_type=EventType.MALWARE_URL_DETECTED,
            severity=severity,
            description=f"Malicious URL detected: {threat or 'unknown threat'}",
            source_ip=host,
            dest_ip="external",
            user="n/a",
            status=status,
            automated=True,
            origin=EventOrigin.FEED,
            metadata={
                "feed": self.name,
                "url": _truncate(url),
                "tags": ", ".join(tags),
                "reporter": str(record.get("reporter") or "anonymous"),
                "date_added": str(record.get("date_added") or ""),
                "threat": threat,
            },
        )
