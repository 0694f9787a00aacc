# Intel Module - Threat Indicator Data Models
#
# ThreatIndicator  - reputation record for one indicator (IP, host, file)
# IntelLookup      - operator-facing lookup result with provenance

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Reputation(str, Enum):
    """Classification of an indicator."""

    MALICIOUS = "malicious"
    SUSPICIOUS = "suspicious"
    CLEAN = "clean"


UNKNOWN_CATEGORY = "Unknown"
DEFAULT_CLEAN_SCORE = 10


@dataclass(frozen=True)
class ThreatIndicator:
    """Reputation record held by the ThreatIndex."""

    reputation: Reputation
    score: int
    category: str
    country: Optional[str] = None
    family: Optional[str] = None

    def __post_init__(self):
        if not 0 <= self.score <= 100:
            raise ValueError(f"score must be within 0-100, got {self.score}")

    @property
    def is_malicious(self) -> bool:
        return self.reputation == Reputation.MALICIOUS

    @classmethod
    def clean(cls) -> "ThreatIndicator":
        """Fallback record for indicators the index knows nothing about."""
        return cls(
            reputation=Reputation.CLEAN,
            score=DEFAULT_CLEAN_SCORE,
            category=UNKNOWN_CATEGORY,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThreatIndicator":
        """Build from a plain mapping.

        ``type`` is accepted as an alias of ``category``.
        Raises ValueError for an unknown reputation or out-of-range score.
        """
        category = data.get("category", data.get("type", UNKNOWN_CATEGORY))
        return cls(
            reputation=Reputation(data["reputation"]),
            score=int(data["score"]),
            category=category,
            country=data.get("country"),
            family=data.get("family"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["reputation"] = self.reputation.value
        return d


class Provenance(str, Enum):
    LOCAL_INDEX = "local index"
    NO_DATA = "no data"


@dataclass(frozen=True)
class IntelLookup:
    """Result of an operator intel query."""

    indicator: str
    reputation: Reputation
    score: int
    category: str
    provenance: Provenance
    looked_up_at: str
    country: Optional[str] = None
    family: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["reputation"] = self.reputation.value
        d["provenance"] = self.provenance.value
        return d
