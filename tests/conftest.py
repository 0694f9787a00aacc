"""
Shared pytest fixtures for the threatwatch test suite.

Autouse fixtures below isolate tests from the working directory:
  - Audit logger -> temp directory  (prevents test decisions in ./audit_logs)
  - API services -> reset           (no coordinator leaks between tests)
"""

import pytest


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path):
    """Point the global AuditLogger at a temp directory for every test.

    Without this, any test that (directly or indirectly) calls
    ``get_audit_logger().log_event(...)`` writes into the real
    ``./audit_logs/`` directory.
    """
    import threatwatch.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    logger = audit_mod.AuditLogger(log_dir=tmp_path / "audit_logs")
    audit_mod.set_audit_logger(logger)

    yield logger

    logger.close()
    audit_mod.set_audit_logger(old_logger)


@pytest.fixture(autouse=True)
def _reset_api_services():
    """Drop the coordinator registered by a previous API test."""
    from threatwatch.api.routes import services

    old = services.coordinator
    services.coordinator = None
    yield
    if services.coordinator is not None and services.coordinator is not old:
        services.coordinator.shutdown()
    services.coordinator = old


@pytest.fixture
def audit_logger(_isolate_audit_logs):
    return _isolate_audit_logs
