# Core Module - Shared Utilities
#
# Provides functionality shared across threatwatch modules:
# - Pipeline settings
# - Audit logging (with throttling of repeated entries)

from .audit_log import (
    AuditEventType,
    AuditLogger,
    AuditSeverity,
    get_audit_logger,
    set_audit_logger,
)
from .config import PipelineSettings
from .log_throttle import LogThrottler

__all__ = [
    # Settings
    "PipelineSettings",
    # Audit Logging
    "AuditEventType",
    "AuditLogger",
    "AuditSeverity",
    "get_audit_logger",
    "set_audit_logger",
    "LogThrottler",
]
