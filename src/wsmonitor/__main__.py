"""
=============================================================================
MONITOR CLI ENTRY POINT
=============================================================================

Command-line interface for running the monitor.

=============================================================================
USAGE
=============================================================================

    # One target, default port 8080
    python -m wsmonitor -t api=https://api.example.com

    # Several targets, custom port, log every check
    python -m wsmonitor -p 9000 --verbose \\
        -t api=https://api.example.com -t web=https://example.com

    # Targets from a JSON file
    python -m wsmonitor -f targets.json

    # Everything from the environment
    MONITOR_TARGETS=api=https://api.example.com MONITOR_PORT=9000 \\
        python -m wsmonitor

Command-line flags override environment variables. Targets given with
-t are added after those from -f; if neither is given, MONITOR_TARGETS
is used.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import LOG_FORMATS, MonitorConfig, load_targets, parse_target
from .reporting import setup_logging
from .server import MonitorServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wsmonitor",
        description="Poll HTTP endpoints and push their status to WebSocket observers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m wsmonitor -t api=https://api.example.com       # One target
  python -m wsmonitor -f targets.json --port 9000          # Targets from file
  python -m wsmonitor -t api=https://api.io --verbose      # Log every check
  python -m wsmonitor -t api=https://api.io -i 10          # Check every 10s
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 0.0.0.0)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8080)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # MONITORING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--interval", "-i",
        type=float,
        default=None,
        help="Seconds between scheduled sweeps (default: 30)"
    )

    parser.add_argument(
        "--target", "-t",
        action="append",
        default=[],
        metavar="NAME=URL",
        help="Endpoint to monitor; repeat for more"
    )

    parser.add_argument(
        "--targets-file", "-f",
        default=None,
        metavar="PATH",
        help="JSON file with targets ({name: url} or [{name, url}])"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log every check, not only alerts and recoveries"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Event log format (default: text)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"PyWSMonitor {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace) -> MonitorConfig:
    """
    Translate parsed arguments into a MonitorConfig.

    Environment variables supply the base; any flag that was given wins.

    Raises:
        ValueError: A target or the targets file is malformed.
        OSError: The targets file cannot be read.
    """
    config = MonitorConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.interval is not None:
        config.sweep_interval = args.interval
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format
    if args.verbose:
        config.quiet = False

    targets = []
    if args.targets_file:
        targets.extend(load_targets(args.targets_file))
    targets.extend(parse_target(value) for value in args.target)
    if targets:
        config.targets = targets

    return config


def main(argv=None):
    """
    Main CLI entry point.

    1. Parse arguments, merge them over the environment
    2. Configure logging
    3. Run the monitor (blocks until Ctrl+C)

    Any startup failure (bad target, port in use) prints one line to
    stderr and exits with status 1.
    """
    args = build_parser().parse_args(argv)

    try:
        config = build_config(args)
        setup_logging(config.log_level)
        server = MonitorServer(config)
        server.run()
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
