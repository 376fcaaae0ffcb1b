"""
=============================================================================
WSMONITOR - Endpoint Monitor With a Hand-Written WebSocket Push Channel
=============================================================================

This package polls a fixed list of HTTP endpoints on a timer, keeps an
Up/Down/Unknown state per endpoint, and pushes every result to browser
observers over WebSocket. The WebSocket side (handshake, frame codec,
event loop) is built directly on sockets and selectors.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      WSMONITOR ARCHITECTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   targets ──HEAD──► HttpProbe ──► HealthTracker ──► StatusEvent     │
    │                                                        │            │
    │                                  ┌─────────────────────┤            │
    │                                  ▼                     ▼            │
    │                           StatusReporter        messages_for_event  │
    │                           (console policy)             │            │
    │                                                        ▼            │
    │   browser ◄──text frame── MonitorServer.broadcast ◄── JSON          │
    │   browser ──{"action": "force_check"}──► forced sweep               │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    wsmonitor/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m wsmonitor)
    ├── server.py            # MonitorServer: the reactor
    ├── config.py            # MonitorConfig dataclass, target loading
    ├── reporting.py         # Logging setup and console policy
    ├── core/                # Sockets, observers, readiness
    ├── health/              # Targets, probe, state machine
    └── protocol/            # Handshake, frames, JSON messages

=============================================================================
QUICK START
=============================================================================

    from wsmonitor import MonitorServer, MonitorConfig, Target

    config = MonitorConfig(
        port=8080,
        targets=[Target("api", "https://api.example.com")],
    )
    MonitorServer(config).run()

=============================================================================
"""

__version__ = "1.0.0"
__author__ = "PyWSMonitor Contributors"

from .server import MonitorServer, ReactorState, create_server
from .config import MonitorConfig, load_targets, parse_target, parse_targets
from .health import HealthTracker, HttpProbe, Status, StatusEvent, Target
from .reporting import StatusReporter, setup_logging

__all__ = [
    # Main classes
    "MonitorServer",
    "MonitorConfig",
    "create_server",
    "ReactorState",

    # Health
    "HealthTracker",
    "HttpProbe",
    "Status",
    "StatusEvent",
    "Target",

    # Configuration helpers
    "load_targets",
    "parse_target",
    "parse_targets",

    # Reporting
    "StatusReporter",
    "setup_logging",

    # Metadata
    "__version__",
]
