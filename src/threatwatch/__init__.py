# threatwatch - Main Package
#
# Security event correlation and automated response: synthetic and
# live-feed ingestion, threat-index correlation, bounded retention and
# operator intel lookup.

__version__ = "0.1.0"
__author__ = "threatwatch developers"
__description__ = "Security event correlation and automated response engine"

from .core import PipelineSettings, get_audit_logger
from .pipeline import PipelineCoordinator

__all__ = [
    "__version__",
    "PipelineSettings",
    "PipelineCoordinator",
    "get_audit_logger",
]
