# Intel Module - Local Threat Index
#
# Key -> ThreatIndicator lookup seeded at construction.  Lookups never
# fail: an unknown indicator resolves to a clean record (score 10,
# category "Unknown").  The table is read-only after construction, so
# the index can be shared between the ingestion threads and operator
# queries without locking.

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from .models import Reputation, ThreatIndicator

SeedEntry = Union[ThreatIndicator, Dict[str, Any]]

DEFAULT_SEED: Dict[str, Dict[str, Any]] = {
    "192.168.1.100": {
        "reputation": "malicious",
        "score": 95,
        "category": "C2 Server",
        "country": "Unknown",
    },
    "10.0.0.50": {
        "reputation": "suspicious",
        "score": 65,
        "category": "Scanning Activity",
        "country": "CN",
    },
    "203.0.113.42": {
        "reputation": "malicious",
        "score": 88,
        "category": "Malware Distribution",
        "country": "RU",
    },
    "malware.exe": {
        "reputation": "malicious",
        "score": 100,
        "category": "Trojan",
        "family": "GenericKD",
    },
    "suspicious.dll": {
        "reputation": "suspicious",
        "score": 70,
        "category": "PUP",
        "family": "Adware",
    },
}


class ThreatIndex:
    """Read-only indicator reputation table.

    Args:
        seed: Mapping of indicator -> ThreatIndicator (or a plain dict
              accepted by ``ThreatIndicator.from_dict``).  ``None`` loads
              the built-in reference table.
    """

    def __init__(self, seed: Optional[Mapping[str, SeedEntry]] = None):
        if seed is None:
            seed = DEFAULT_SEED
        table: Dict[str, ThreatIndicator] = {}
        for indicator, entry in seed.items():
            key = indicator.strip()
            if not key:
                raise ValueError("Indicator keys must be non-empty")
            if not isinstance(entry, ThreatIndicator):
                entry = ThreatIndicator.from_dict(entry)
            table[key] = entry
        self._table = MappingProxyType(table)

    def lookup(self, indicator: Optional[str]) -> ThreatIndicator:
        """Return the record for ``indicator`` or the clean fallback."""
        if not indicator:
            return ThreatIndicator.clean()
        return self._table.get(indicator.strip(), ThreatIndicator.clean())

    def contains(self, indicator: Optional[str]) -> bool:
        return bool(indicator) and indicator.strip() in self._table

    def indicators(self) -> List[str]:
        return sorted(self._table)

    def by_reputation(self, reputation: Reputation) -> List[str]:
        return sorted(
            k for k, v in self._table.items() if v.reputation == reputation
        )

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, indicator: object) -> bool:
        return isinstance(indicator, str) and self.contains(indicator)
