# Intel Module - Operator Intel Query
#
# On-demand indicator lookup for operators.  Runs independently of the
# ingestion pipeline and only reads the ThreatIndex.

from datetime import datetime, timezone

from .models import IntelLookup, Provenance
from .threat_index import ThreatIndex


class IntelQuery:
    """Enrich ThreatIndex lookups with provenance and a lookup time."""

    def __init__(self, index: ThreatIndex):
        self._index = index

    def lookup(self, indicator: str) -> IntelLookup:
        indicator = (indicator or "").strip()
        record = self._index.lookup(indicator)
        provenance = (
            Provenance.LOCAL_INDEX
            if self._index.contains(indicator)
            else Provenance.NO_DATA
        )
        return IntelLookup(
            indicator=indicator,
            reputation=record.reputation,
            score=record.score,
            category=record.category,
            provenance=provenance,
            looked_up_at=datetime.now(timezone.utc).isoformat(),
            country=record.country,
            family=record.family,
        )
