# ReQueue Dashboard - Main Entry Point
#
# Runs the dashboard server in the foreground. Settings come from the
# environment (and a .env file in the working directory); --host and
# --port override them.

import sys
import argparse
import logging

from . import __version__
from .config import DashboardConfig
from .core import configure_audit_logger, EventType, EventSeverity
from .exceptions import ConfigError


def main():
    """
    Main entry point for the ReQueue Dashboard.
    """
    parser = argparse.ArgumentParser(
        description="ReQueue Dashboard - real-time queue management and monitoring",
    )

    parser.add_argument(
        "--host",
        default=None,
        help="Bind address (default: $HOST or 0.0.0.0)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Listen port (default: $PORT or 3000)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"ReQueue Dashboard v{__version__}"
    )

    args = parser.parse_args()

    try:
        config = DashboardConfig.from_env()
        if args.host is not None:
            config.host = args.host
        if args.port is not None:
            config.port = args.port
        config.validate()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    audit = configure_audit_logger(config.audit_log_dir)

    print("=" * 60)
    print(f"  ReQueue Dashboard v{__version__}")
    print("=" * 60)
    print()
    print(f"  Dashboard:  http://localhost:{config.port}")
    print(f"  API:        http://localhost:{config.port}/api")
    if config.features.websocket:
        print(f"  WebSocket:  ws://localhost:{config.port}/ws")
    print(f"  Health:     http://localhost:{config.port}/api/health")
    print(f"  Redis:      {config.redis.host}:{config.redis.port} (DB: {config.redis.db})")
    print()
    print("  Press Ctrl+C to stop")
    print("=" * 60)
    print()

    from .api.main import start_api_server

    try:
        start_api_server(config)
    except KeyboardInterrupt:
        print("\n\nShutting down dashboard...")
        audit.log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.INFO,
            message="ReQueue Dashboard stopped (user interrupt)"
        )
    except Exception as e:
        print(f"\n\nError: {str(e)}")
        audit.log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.CRITICAL,
            message=f"ReQueue Dashboard crashed: {str(e)}"
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
