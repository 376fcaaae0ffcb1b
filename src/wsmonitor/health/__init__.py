"""
Endpoint health: data model, HTTP probe and availability state machine.
"""

from .models import (
    EventKind,
    ProbeResponse,
    ProbeResult,
    Status,
    StatusEvent,
    Target,
    TargetState,
)
from .probe import HttpProbe, Probe
from .tracker import HealthTracker, classify, is_reachable

__all__ = [
    "EventKind",
    "ProbeResponse",
    "ProbeResult",
    "Status",
    "StatusEvent",
    "Target",
    "TargetState",
    "HttpProbe",
    "Probe",
    "HealthTracker",
    "classify",
    "is_reachable",
]
