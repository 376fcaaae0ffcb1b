"""
Data model for monitored endpoints.

    Target ──probe──► ProbeResponse ──tracker──► ProbeResult
                                                     │
                          TargetState ◄── update ────┤
                                                     ▼
                                                StatusEvent ──► observers

Targets and TargetStates live for the whole process. ProbeResponse,
ProbeResult and StatusEvent are transient: produced once per check,
consumed once, then dropped.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Status(Enum):
    """Availability of a target as last observed."""

    UNKNOWN = "unknown"   # Not checked yet
    UP = "up"
    DOWN = "down"


class EventKind(Enum):
    """How a check result is classified."""

    UPDATE = "update"            # Nothing operator-worthy happened
    ALERT_DOWN = "alert_down"    # Up → Down
    ALERT_RECOVERED = "alert_recovered"  # Down → Up


@dataclass(frozen=True)
class Target:
    """A named HTTP endpoint. Names are unique."""

    name: str
    url: str


@dataclass
class TargetState:
    """
    Mutable availability record for one Target.

    consecutive_down_count counts Down results in a row. Any Up result
    resets it to zero.
    """

    status: Status = Status.UNKNOWN
    consecutive_down_count: int = 0
    last_checked_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProbeResponse:
    """
    What the probe client saw, before any interpretation.

    completed is False when no HTTP response arrived (timeout, refused,
    DNS or TLS failure); http_status is 0 in that case.
    """

    completed: bool
    http_status: int = 0
    elapsed_ms: float = 0.0
    error: Optional[str] = None


@dataclass(frozen=True)
class ProbeResult:
    """
    The interpreted outcome of one check.

    latency_ms is set only when reachable; error only when not.
    """

    target_name: str
    reachable: bool
    http_status: int
    checked_at: datetime
    latency_ms: Optional[float] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class StatusEvent:
    """One check's classification plus everything needed to broadcast it."""

    kind: EventKind
    target: Target
    new_status: Status
    previous_status: Status
    detail: ProbeResult
    consecutive_down_count: int = 0
    still_down_notice: bool = field(default=False)

    @property
    def target_name(self) -> str:
        return self.target.name

    @property
    def status_changed(self) -> bool:
        return self.previous_status is not self.new_status

    @property
    def is_alert(self) -> bool:
        return self.kind is not EventKind.UPDATE
