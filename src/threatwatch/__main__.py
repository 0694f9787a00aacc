# Main Entry Point
#
# Loads settings (environment / .env), builds the pipeline coordinator
# and serves the JSON API.  The coordinator starts ingestion on API
# startup in the requested mode.

import argparse
import logging
import sys
from pathlib import Path

from . import __version__
from .core import (
    AuditEventType,
    AuditLogger,
    AuditSeverity,
    PipelineSettings,
    get_audit_logger,
    set_audit_logger,
)
from .core.config import VALID_MODES


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="threatwatch",
        description="threatwatch - security event correlation and automated response",
    )

    parser.add_argument(
        "--mode",
        choices=VALID_MODES,
        default=None,
        help="Ingestion mode (default: THREATWATCH_MODE or synthetic)",
    )

    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="API host (default: 127.0.0.1)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="API port (default: 8000)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"threatwatch v{__version__}",
    )
    return parser


def main(argv=None):
    """Main entry point for threatwatch."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = PipelineSettings.from_env()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)
    if args.mode:
        settings.mode = args.mode

    if settings.audit_log_dir:
        set_audit_logger(AuditLogger(Path(settings.audit_log_dir)))

    from .api.main import start_api_server
    from .pipeline import PipelineCoordinator

    coordinator = PipelineCoordinator(settings)

    print(f"  threatwatch v{__version__} ({settings.mode} mode)")
    print(f"  Starting API server on {args.host}:{args.port}...")
    print("  Press Ctrl+C to stop")

    try:
        start_api_server(coordinator, host=args.host, port=args.port)
    except KeyboardInterrupt:
        print("\n\nShutting down...")
    except Exception as e:
        print(f"\n\nError: {str(e)}", file=sys.stderr)
        get_audit_logger().log_event(
            event_type=AuditEventType.PIPELINE_STOP,
            severity=AuditSeverity.CRITICAL,
            message=f"threatwatch crashed: {str(e)}",
            throttle=False,
        )
        sys.exit(1)
    finally:
        coordinator.shutdown()


if __name__ == "__main__":
    main()
