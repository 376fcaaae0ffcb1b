"""
=============================================================================
HEALTH TRACKER
=============================================================================

Owns one TargetState per Target and turns each fresh probe into a
StatusEvent.

=============================================================================
TRANSITIONS
=============================================================================

    reachable = probe completed AND 200 <= http_status < 400

    ┌──────────────┬───────────┬─────────────────┬─────────────────────────┐
    │ previous     │ new       │ kind            │ consecutive_down_count  │
    ├──────────────┼───────────┼─────────────────┼─────────────────────────┤
    │ Up           │ Down      │ ALERT_DOWN      │ 1                       │
    │ Down         │ Up        │ ALERT_RECOVERED │ reset to 0              │
    │ Down         │ Down      │ UPDATE          │ +1 (notice every 10th)  │
    │ Up           │ Up        │ UPDATE          │ 0                       │
    │ Unknown      │ Up / Down │ UPDATE          │ 0 / 1                   │
    └──────────────┴───────────┴─────────────────┴─────────────────────────┘

The baseline pass at startup goes through the same update rule but
produces no events at all: with no previous status there is nothing to
compare against.

The still-down notice is display policy only. It is flagged on the event
for the reporter and never changes TargetState.

=============================================================================
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from .models import (
    EventKind,
    ProbeResponse,
    ProbeResult,
    Status,
    StatusEvent,
    Target,
    TargetState,
)
from .probe import Probe


logger = logging.getLogger(__name__)


STILL_DOWN_NOTICE_EVERY = 10


def is_reachable(response: ProbeResponse) -> bool:
    return response.completed and 200 <= response.http_status < 400


def classify(previous: Status, new: Status) -> EventKind:
    """Map a (previous, new) status pair to an event kind."""
    if previous is Status.UP and new is Status.DOWN:
        return EventKind.ALERT_DOWN
    if previous is Status.DOWN and new is Status.UP:
        return EventKind.ALERT_RECOVERED
    return EventKind.UPDATE


class HealthTracker:
    """
    Availability state machine for a fixed set of targets.

    Usage:
        tracker = HealthTracker(targets, probe=HttpProbe())
        tracker.baseline()            # Once, before serving observers
        for event in tracker.sweep():
            broadcast(event)
    """

    def __init__(
        self,
        targets: Iterable[Target],
        probe: Probe,
        forced_probe: Optional[Probe] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            targets: Targets to monitor. Names must be unique.
            probe: Callable taking a URL and returning a ProbeResponse.
            forced_probe: Probe used for manual sweeps. Defaults to probe.
            clock: Timestamp source for checked_at.
        """
        self.targets: List[Target] = list(targets)
        names = [t.name for t in self.targets]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate target names: {names}")

        self.probe = probe
        self.forced_probe = forced_probe or probe
        self._clock = clock
        self._states: Dict[str, TargetState] = {t.name: TargetState() for t in self.targets}

    def state_for(self, name: str) -> TargetState:
        return self._states[name]

    def snapshot(self) -> Dict[str, Status]:
        """Current status of every target, in target order."""
        return {t.name: self._states[t.name].status for t in self.targets}

    # ─────────────────────────────────────────────────────────────────────
    # CHECKS
    # ─────────────────────────────────────────────────────────────────────

    def _run_probe(self, target: Target, forced: bool) -> ProbeResult:
        probe = self.forced_probe if forced else self.probe
        response = probe(target.url)
        reachable = is_reachable(response)

        error = response.error
        if not reachable and not error:
            error = f"HTTP {response.http_status}"

        return ProbeResult(
            target_name=target.name,
            reachable=reachable,
            http_status=response.http_status,
            checked_at=self._clock(),
            latency_ms=response.elapsed_ms if reachable else None,
            error=None if reachable else error,
        )

    def _apply(self, result: ProbeResult) -> TargetState:
        state = self._states[result.target_name]
        if result.reachable:
            state.status = Status.UP
            state.consecutive_down_count = 0
        else:
            state.status = Status.DOWN
            state.consecutive_down_count += 1
        state.last_checked_at = result.checked_at
        return state

    def check(self, target: Target, forced: bool = False) -> StatusEvent:
        """
        Probe one target, update its state and classify the transition.

        Args:
            target: Target to check.
            forced: Use the manual-check probe.

        Returns:
            The StatusEvent for this check. Always carries the full result.
        """
        previous = self._states[target.name].status
        result = self._run_probe(target, forced)
        state = self._apply(result)

        still_down = (
            previous is Status.DOWN
            and state.status is Status.DOWN
            and state.consecutive_down_count % STILL_DOWN_NOTICE_EVERY == 0
        )

        return StatusEvent(
            kind=classify(previous, state.status),
            target=target,
            new_status=state.status,
            previous_status=previous,
            detail=result,
            consecutive_down_count=state.consecutive_down_count,
            still_down_notice=still_down,
        )

    def sweep(self, forced: bool = False) -> List[StatusEvent]:
        """Check every target in order."""
        return [self.check(target, forced=forced) for target in self.targets]

    def baseline(self) -> Dict[str, Status]:
        """
        Initial pass: record each target's status without emitting events.

        Returns:
            The resulting status snapshot.
        """
        for target in self.targets:
            self._apply(self._run_probe(target, forced=False))
        snapshot = self.snapshot()
        summary = ", ".join(f"{name}={status.value}" for name, status in snapshot.items())
        logger.debug(f"Baseline established: {summary}")
        return snapshot
