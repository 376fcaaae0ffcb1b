"""
=============================================================================
CONSOLE REPORTING
=============================================================================

Decides which check results an operator sees. This is presentation
policy only: it never touches TargetState and never changes what is
broadcast to observers.

=============================================================================
WHAT GETS LOGGED
=============================================================================

    ┌──────────────────────────┬──────────────┬──────────────┬────────────┐
    │ Event                    │ Quiet mode   │ Verbose mode │ Level      │
    ├──────────────────────────┼──────────────┼──────────────┼────────────┤
    │ Up → Down                │ yes          │ yes          │ CRITICAL   │
    │ Down → Up                │ yes          │ yes          │ WARNING    │
    │ Down → Down, 10th check  │ yes          │ yes          │ WARNING    │
    │ Down → Down, otherwise   │ -            │ yes          │ INFO       │
    │ Up → Up, Unknown → *     │ -            │ yes          │ INFO       │
    │ Manual (forced) sweep    │ every target │ every target │ INFO       │
    └──────────────────────────┴──────────────┴──────────────┴────────────┘

Manual sweeps always print every target: somebody asked, so they get an
answer even in quiet mode.

=============================================================================
LOG FORMATS
=============================================================================

TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 🚨 CRITICAL: api went DOWN (https://api.example.com)                │
    │    HTTP: 0 | Error: ConnectTimeout: timed out                       │
    └─────────────────────────────────────────────────────────────────────┘

JSON:
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"event": "alert_down", "target": "api", "status": "down",          │
    │  "previous_status": "up", "http_code": 0, "response_time": null,    │
    │  "error": "ConnectTimeout: timed out", "down_checks": 1, ...}       │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import json
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from .health.models import EventKind, Status, StatusEvent


logger = logging.getLogger("wsmonitor.events")


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO"):
    """Configure root logging for the process."""
    numeric = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )

    logging.getLogger("wsmonitor").setLevel(numeric)
    # httpx logs every request at INFO; far too chatty at one probe per target
    logging.getLogger("httpx").setLevel(max(numeric, logging.WARNING))


@dataclass
class EventLog:
    """
    Structured log entry for one check.

    Built from a StatusEvent so text and JSON output carry the same facts.
    """

    event: str
    target: str
    url: str
    status: str
    previous_status: str
    http_code: int
    response_time: Optional[float]
    error: Optional[str]
    down_checks: int
    down_minutes: float
    forced: bool

    @classmethod
    def from_event(cls, event: StatusEvent, interval: float, forced: bool = False) -> "EventLog":
        detail = event.detail
        return cls(
            event=event.kind.value,
            target=event.target.name,
            url=event.target.url,
            status=event.new_status.value,
            previous_status=event.previous_status.value,
            http_code=detail.http_status,
            response_time=detail.latency_ms,
            error=detail.error,
            down_checks=event.consecutive_down_count,
            down_minutes=round(event.consecutive_down_count * interval / 60.0, 1),
            forced=forced,
        )

    def to_dict(self) -> dict:
        return {
            "event": self.event,
            "target": self.target,
            "url": self.url,
            "status": self.status,
            "previous_status": self.previous_status,
            "http_code": self.http_code,
            "response_time": self.response_time,
            "error": self.error,
            "down_checks": self.down_checks,
            "down_minutes": self.down_minutes,
            "forced": self.forced,
        }

    def to_text(self) -> str:
        if self.event == EventKind.ALERT_DOWN.value:
            return (
                f"🚨 CRITICAL: {self.target} went DOWN ({self.url})\n"
                f"   HTTP: {self.http_code} | Error: {self.error or 'Timeout/Connection'}"
            )
        if self.event == EventKind.ALERT_RECOVERED.value:
            return f"✅ RECOVERED: {self.target} is back up ({self.response_time}ms)"

        symbol = "✅" if self.status == Status.UP.value else "❌"
        if self.status == Status.UP.value:
            return f"{symbol} {self.target}: up ({self.response_time}ms)"
        return f"{symbol} {self.target}: down (HTTP: {self.http_code})"

    def to_still_down_text(self) -> str:
        return f"⚠️  {self.target} still down for {self.down_minutes:g} min ({self.down_checks} checks)"


class StatusReporter:
    """
    Console/log side of the monitor.

    Usage:
        reporter = StatusReporter(quiet=True, interval=30.0)
        for event in tracker.sweep():
            reporter.report(event)
    """

    def __init__(
        self,
        quiet: bool = True,
        interval: float = 30.0,
        log_format: str = "text",
        log: Optional[logging.Logger] = None,
    ):
        """
        Args:
            quiet: Suppress routine results (see table above).
            interval: Sweep interval, used to express down time in minutes.
            log_format: "text" or "json".
            log: Logger to write to. Defaults to "wsmonitor.events".
        """
        self.quiet = quiet
        self.interval = interval
        self.log_format = log_format
        self.log = log or logger

    def _emit(self, level: int, entry: EventLog, text: Optional[str] = None, **extra):
        if self.log_format == "json":
            self.log.log(level, json.dumps({**entry.to_dict(), **extra}, ensure_ascii=False))
        else:
            self.log.log(level, text if text is not None else entry.to_text())

    def report(self, event: StatusEvent, forced: bool = False) -> bool:
        """
        Log one event according to the policy.

        Returns:
            True if anything was logged.
        """
        entry = EventLog.from_event(event, self.interval, forced=forced)

        if event.kind is EventKind.ALERT_DOWN:
            self._emit(logging.CRITICAL, entry)
            return True

        if event.kind is EventKind.ALERT_RECOVERED:
            self._emit(logging.WARNING, entry)
            return True

        if event.still_down_notice and not forced:
            self._emit(logging.WARNING, entry, entry.to_still_down_text(), notice="still_down")
            return True

        if forced or not self.quiet:
            self._emit(logging.INFO, entry)
            return True

        return False

    def baseline(self, statuses: Mapping[str, Status]):
        """Log the startup baseline. Verbose mode only."""
        if self.quiet:
            return
        summary = ", ".join(f"{name}: {status.value}" for name, status in statuses.items())
        self.log.info(f"Baseline: {summary}")

    def manual_check(self, observer_id: str):
        self.log.info(f"🔄 Manual check requested by observer {observer_id}")
