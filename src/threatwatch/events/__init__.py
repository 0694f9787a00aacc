# Events Module - security event and alert records shared by the
# sources, the correlation engine and the retention store.

from .models import (
    Alert,
    AlertStatus,
    EventOrigin,
    EventStatus,
    EventType,
    Metrics,
    SecurityEvent,
    Severity,
    new_record_id,
)

__all__ = [
    "Alert",
    "AlertStatus",
    "EventOrigin",
    "EventStatus",
    "EventType",
    "Metrics",
    "SecurityEvent",
    "Severity",
    "new_record_id",
]
