"""
=============================================================================
MONITOR CONFIGURATION
=============================================================================

Centralized configuration for the monitor.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   Priority (highest to lowest):                                     │
    │                                                                     │
    │   1. Command-line arguments                                         │
    │      └── python -m wsmonitor --port 9000 -t api=https://api.io      │
    │                                                                     │
    │   2. Environment variables                                          │
    │      └── MONITOR_PORT=9000 python -m wsmonitor                      │
    │                                                                     │
    │   3. Targets file                                                   │
    │      └── {"api": "https://api.io", "web": "https://www.io"}         │
    │                                                                     │
    │   4. Defaults (this dataclass)                                      │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from .health.models import Target


LOG_FORMATS = ("text", "json")


def parse_target(value: str) -> Target:
    """
    Parse a "name=url" pair.

    >>> parse_target("api=https://api.example.com")
    Target(name='api', url='https://api.example.com')
    """
    name, sep, url = value.partition("=")
    name, url = name.strip(), url.strip()
    if not sep or not name or not url:
        raise ValueError(f"Invalid target {value!r}: expected NAME=URL")
    return Target(name=name, url=url)


def parse_targets(value: str) -> List[Target]:
    """Parse a comma-separated list of "name=url" pairs."""
    return [parse_target(item) for item in value.split(",") if item.strip()]


def load_targets(path: Union[str, Path]) -> List[Target]:
    """
    Load targets from a JSON file.

    Two shapes are accepted:

        {"api": "https://api.example.com", "web": "https://example.com"}

        [{"name": "api", "url": "https://api.example.com"}, ...]

    Raises:
        ValueError: The file is not one of those shapes.
        OSError: The file cannot be read.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict):
        return [Target(name=str(name), url=str(url)) for name, url in data.items()]

    if isinstance(data, list):
        targets = []
        for item in data:
            if not isinstance(item, dict) or "name" not in item or "url" not in item:
                raise ValueError(f"Invalid target entry in {path}: {item!r}")
            targets.append(Target(name=str(item["name"]), url=str(item["url"])))
        return targets

    raise ValueError(f"Targets file {path} must hold a JSON object or list")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class MonitorConfig:
    """
    Configuration for the monitor.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK      host, port, backlog, buffer_size, send_timeout
    REACTOR      select_timeout, handshake_timeout, max_message_size
    CHECKS       sweep_interval, connect_timeout, probe_timeout, user_agent
    TARGETS      targets
    LOGGING      quiet, log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """Address observers connect to. All interfaces by default."""

    port: int = 8080

    backlog: int = 5
    """Pending connections the OS queues before refusing."""

    buffer_size: int = 4096
    """Bytes read from an observer per readiness event."""

    send_timeout: Optional[float] = 5.0
    """How long a single write may stall before the observer is dropped."""

    # ─────────────────────────────────────────────────────────────────────
    # REACTOR SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    select_timeout: float = 0.1
    """
    Longest the reactor waits for socket readiness.
    Bounds how late a scheduled sweep can start.
    """

    handshake_timeout: float = 5.0
    """Seconds a new connection has to send its upgrade request."""

    max_handshake_size: int = 8192

    max_message_size: int = 1024 * 1024
    """Largest frame an observer may send before being disconnected."""

    # ─────────────────────────────────────────────────────────────────────
    # CHECK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    sweep_interval: float = 30.0
    """Seconds between scheduled sweeps."""

    connect_timeout: float = 5.0
    probe_timeout: float = 10.0

    user_agent: str = "PyWSMonitor/1.0"

    targets: List[Target] = field(default_factory=list)

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    quiet: bool = True
    """
    Quiet mode: only alerts, recoveries and still-down notices reach the
    console. Verbose mode logs every check. Broadcasts are identical in
    both modes.
    """

    log_level: str = "INFO"

    log_format: str = "text"
    """'text' for humans, 'json' for log aggregators."""

    @property
    def manual_user_agent(self) -> str:
        return f"{self.user_agent} (Manual)"

    @classmethod
    def from_env(cls) -> "MonitorConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        MONITOR_HOST        Listen host (default: 0.0.0.0)
        MONITOR_PORT        Listen port (default: 8080)
        MONITOR_INTERVAL    Sweep interval in seconds (default: 30)
        MONITOR_TARGETS     name=url,name=url
        MONITOR_LOG_LEVEL   Logging level (default: INFO)
        MONITOR_QUIET       1/0, true/false (default: true)

        =====================================================================
        """
        return cls(
            host=os.getenv("MONITOR_HOST", "0.0.0.0"),
            port=int(os.getenv("MONITOR_PORT", "8080")),
            sweep_interval=float(os.getenv("MONITOR_INTERVAL", "30")),
            targets=parse_targets(os.getenv("MONITOR_TARGETS", "")),
            log_level=os.getenv("MONITOR_LOG_LEVEL", "INFO"),
            quiet=_env_bool("MONITOR_QUIET", True),
        )

    def validate(self) -> None:
        """
        Validate configuration values. Fails fast at startup.

        Raises:
            ValueError: Describing the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 2:
            raise ValueError("buffer_size must be >= 2")

        for name in ("select_timeout", "handshake_timeout", "sweep_interval",
                     "connect_timeout", "probe_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

        if self.send_timeout is not None and self.send_timeout <= 0:
            raise ValueError("send_timeout must be > 0")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}")

        if not self.targets:
            raise ValueError("At least one target is required")

        names = [t.name for t in self.targets]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate target names: {', '.join(duplicates)}")
