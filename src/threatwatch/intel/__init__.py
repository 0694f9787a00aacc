# Intel Module - Threat Intelligence Lookup
#
# Provides the indicator reputation models, the local threat index used
# by the correlation engine, and the operator-facing intel query.

from .models import (
    IntelLookup,
    Provenance,
    Reputation,
    ThreatIndicator,
)
from .query import IntelQuery
from .threat_index import DEFAULT_SEED, ThreatIndex

__all__ = [
    "IntelLookup",
    "Provenance",
    "Reputation",
    "ThreatIndicator",
    "IntelQuery",
    "ThreatIndex",
    "DEFAULT_SEED",
]
