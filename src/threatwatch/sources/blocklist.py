# Sources Module - blocklist.de IPv4 Blocklist Feed
#
# Fetches the plaintext blocklist (one address per line), keeps lines
# that are strict dotted-quad IPv4 addresses, and turns the first K into
# INTRUSION_ATTEMPT events that are already blocked upstream.

import logging
import random
import re
from typing import List, Optional

import httpx

from ..events.models import (
    EventOrigin,
    EventStatus,
    EventType,
    SecurityEvent,
    Severity,
)
from .feed import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_SEC, FeedSource

logger = logging.getLogger(__name__)

BLOCKLIST_URL = "https://lists.blocklist.de"
BLOCKLIST_PATH = "/lists/all.txt"
DEFAULT_LIMIT = 5

_OCTET = r"(?:25[0-5]|2[0-4][0-9]|1[0-9][0-9]|[1-9]?[0-9])"
IPV4_PATTERN = re.compile(rf"^{_OCTET}(?:\.{_OCTET}){{3}}$")

# Range of the synthetic attempt counter attached to each event
MIN_ATTEMPTS = 10
MAX_ATTEMPTS = 499


def is_dotted_quad(line: str) -> bool:
    return bool(IPV4_PATTERN.match(line))


class BlocklistFeed(FeedSource):
    """blocklist.de aggregated attacker IPs."""

    accept = "text/plain"

    def __init__(
        self,
        base_url: str = BLOCKLIST_URL,
        limit: int = DEFAULT_LIMIT,
        poll_interval: float = 60.0,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(
            "blocklist",
            base_url,
            poll_interval=poll_interval,
            timeout=timeout,
            max_retries=max_retries,
        )
        self.limit = limit
        self._rng = rng or random.Random()

    @property
    def url(self) -> str:
        return f"{self.base_url}{BLOCKLIST_PATH}"

    def parse(self, response: httpx.Response) -> List[SecurityEvent]:
        addresses: List[str] = []
        skipped = 0
        for raw in response.text.splitlines():
            line = raw.strip()
            if not line:
                continue
            if not is_dotted_quad(line):
                skipped += 1
                continue
            addresses.append(line)
            if len(addresses) >= self.limit:
                break

        if skipped:
            logger.debug("Blocklist: skipped %d non-IPv4 lines", skipped)
        return [self._to_event(ip) for ip in addresses]

    def _to_event(self, ip: str) -> SecurityEvent:
        attempts = self._rng.randint(MIN_ATTEMPTS, MAX_ATTEMPTS)
        return SecurityEvent(
            event_type=EventType.INTRUSION_ATTEMPT,
            severity=Severity.CRITICAL,
            description="Blocklisted IP attempted connection",
            source_ip=ip,
            dest_ip="perimeter",
            user="n/a",
            status=EventStatus.BLOCKED,
            automated=True,
            origin=EventOrigin.FEED,
            metadata={
                "feed": self.name,
                "indicator": ip,
                "attempts": str(attempts),
            },
        )
