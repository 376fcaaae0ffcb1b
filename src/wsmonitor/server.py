"""
=============================================================================
MONITOR SERVER - The Reactor
=============================================================================

One thread, one loop, many sockets plus a timer.

=============================================================================
ONE ITERATION (tick)
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                            tick()                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │  1. WAIT       readiness over listener + every observer socket      │
    │                └── at most select_timeout (100 ms)                  │
    │                                                                     │
    │  2. ACCEPT     listener readable → accept one connection            │
    │                └── held as a pending observer until it upgrades     │
    │                                                                     │
    │  3. HANDSHAKE  pending observer readable → buffer its request       │
    │                ├── complete & valid → 101, register, initial_status │
    │                └── invalid / too slow → close, never registered     │
    │                                                                     │
    │  4. DRAIN      observer readable → read, decode frames              │
    │                ├── empty read / error → remove observer             │
    │                └── {"action": "force_check"} → forced sweep now     │
    │                                                                     │
    │  5. TIMER      sweep_interval elapsed → scheduled sweep             │
    │                └── probe each target, broadcast its event(s)        │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

The readiness wait is the ONLY place the loop sleeps, so the timer is
looked at every 100 ms no matter how busy or idle the observers are.

=============================================================================
WHAT BLOCKS, AND WHY THAT IS ACCEPTED
=============================================================================

Probes run synchronously inside the loop. A target that takes the full
10 s timeout delays every frame for that long. With a handful of
targets this is a fair trade for having no threads and no locks: every
socket and every piece of state is touched from this thread only.

=============================================================================
FAILURE ISOLATION
=============================================================================

    accept() fails            → log, carry on
    bad handshake             → close that socket, carry on
    read/write fails          → remove that observer, carry on
    malformed frame           → drop the bytes, carry on
    probe fails               → that IS the signal; broadcast it
    bind fails at startup     → OSError; the CLI exits with status 1

=============================================================================
"""

import logging
import time
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import MonitorConfig
from .core import ConnectionRegistry, Observer, ReadinessWaiter, SelectorWaiter, SocketServer
from .health import HealthTracker, HttpProbe, StatusEvent
from .protocol import (
    FORCE_CHECK,
    FrameError,
    HandshakeError,
    InvalidFrameError,
    Opcode,
    encode_frame,
    encode_message,
    initial_status,
    messages_for_event,
    negotiate,
    parse_action,
)
from .reporting import StatusReporter


logger = logging.getLogger(__name__)


class ReactorState(Enum):
    """What the reactor is doing right now."""
    IDLE = "idle"              # Waiting for readiness
    ACCEPTING = "accepting"    # Accepting / upgrading a connection
    DRAINING = "draining"      # Reading observer messages
    PROBING = "probing"        # Running a sweep
    TERMINATED = "terminated"  # Closed; the process is exiting


_LISTENER = "listener"


class MonitorServer:
    """
    Polls targets and pushes their status to WebSocket observers.

    =========================================================================
    USAGE
    =========================================================================

        config = MonitorConfig(targets=[Target("api", "https://api.io")])
        server = MonitorServer(config)
        server.run()                 # Blocks until Ctrl+C

    Tests drive the loop by hand:

        server.start()
        server.tick()                # One iteration
        server.close()

    =========================================================================
    OWNERSHIP
    =========================================================================

    The server instance owns all mutable state: the tracker's TargetState
    map, the connection registry, pending handshakes and the listening
    socket. Nothing is global; two servers in one process never share.

    =========================================================================
    """

    def __init__(
        self,
        config: MonitorConfig,
        tracker: Optional[HealthTracker] = None,
        reporter: Optional[StatusReporter] = None,
        waiter: Optional[ReadinessWaiter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            config: Monitor configuration. Validated immediately.
            tracker: Health tracker. Built from config with an HttpProbe
                     when omitted.
            reporter: Console policy. Built from config when omitted.
            waiter: Readiness facility. SelectorWaiter when omitted.
            clock: Monotonic time source for the sweep timer.
        """
        config.validate()  # Fail-fast on invalid config
        self.config = config

        self._probe: Optional[HttpProbe] = None
        if tracker is None:
            self._probe = HttpProbe(
                connect_timeout=config.connect_timeout,
                timeout=config.probe_timeout,
                user_agent=config.user_agent,
            )
            tracker = HealthTracker(
                config.targets,
                probe=self._probe,
                forced_probe=partial(self._probe.probe, user_agent=config.manual_user_agent),
            )
        self.tracker = tracker

        self.reporter = reporter or StatusReporter(
            quiet=config.quiet,
            interval=config.sweep_interval,
            log_format=config.log_format,
        )

        self.registry = ConnectionRegistry()
        self._socket_server = SocketServer(config)
        self._waiter = waiter or SelectorWaiter()
        self._pending: List[Observer] = []
        self._clock = clock

        self.state = ReactorState.IDLE
        self.last_sweep_time: Optional[float] = None
        self.sweeps_run = 0
        self._running = False

    # ─────────────────────────────────────────────────────────────────────
    # PROPERTIES
    # ─────────────────────────────────────────────────────────────────────

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending_handshakes(self) -> int:
        return len(self._pending)

    # ─────────────────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────────────────

    def start(self, banner: bool = False):
        """
        Bind the listener and establish the baseline.

        The baseline pass completes before the first accept(), so early
        connections simply wait in the listen backlog.

        Raises:
            OSError: The listening socket could not be bound.
        """
        listener = self._socket_server.open()
        self._waiter.register(listener, _LISTENER)

        if banner:
            self._print_startup_banner()

        self.state = ReactorState.PROBING
        statuses = self.tracker.baseline()
        self.reporter.baseline(statuses)

        self.last_sweep_time = self._clock()
        self.state = ReactorState.IDLE
        self._running = True

    def run(self):
        """
        Start the server and loop until interrupted (blocking).

        There is no graceful shutdown protocol: Ctrl+C ends the loop and
        every socket is closed on the way out.

        Raises:
            OSError: The listening socket could not be bound.
        """
        try:
            self.start(banner=True)
            while self._running:
                self.tick()
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self.close()

    def stop(self):
        """Ask run() to return after the current iteration."""
        self._running = False

    def close(self):
        """Close every observer, pending socket and the listener."""
        if self.state is ReactorState.TERMINATED:
            return

        for observer in self.registry.snapshot():
            self._waiter.unregister(observer.socket)
        self.registry.close_all()

        for observer in self._pending:
            self._waiter.unregister(observer.socket)
            observer.close()
        self._pending.clear()

        if self._socket_server.listener is not None:
            self._waiter.unregister(self._socket_server.listener)
        self._socket_server.close()
        self._waiter.close()

        if self._probe is not None:
            self._probe.close()

        self._running = False
        self.state = ReactorState.TERMINATED
        logger.info("Monitor stopped")

    def _print_startup_banner(self):
        host, port = self.address
        mode = "quiet (alerts only)" if self.config.quiet else "verbose"
        print()
        print("╔══════════════════════════════════════════════════════════════╗")
        print(f"  🚀 WebSocket monitor listening on ws://{host}:{port}")
        print(f"  🔍 Monitoring {len(self.tracker.targets)} target(s) every {self.config.sweep_interval:g}s")
        print(f"  ⚠️  Mode: {mode}")
        print("  Press Ctrl+C to stop")
        print("╚══════════════════════════════════════════════════════════════╝")
        print()

    # ─────────────────────────────────────────────────────────────────────
    # THE LOOP
    # ─────────────────────────────────────────────────────────────────────

    def tick(self):
        """
        Run one reactor iteration.

        =====================================================================
        ORDER OF WORK
        =====================================================================

        1. Wait (bounded) for readable sockets
        2. Accept / upgrade / drain each ready socket
        3. Expire pending handshakes that took too long
        4. Run the scheduled sweep if the interval has elapsed

        =====================================================================
        """
        self.state = ReactorState.IDLE
        ready = self._waiter.wait(self.config.select_timeout)

        for token in ready:
            if token == _LISTENER:
                self.state = ReactorState.ACCEPTING
                self._accept()
                continue

            observer: Observer = token
            if observer.is_closed:
                continue  # Removed earlier in this iteration

            if observer.handshake_complete:
                self.state = ReactorState.DRAINING
                self._drain(observer)
            else:
                self.state = ReactorState.ACCEPTING
                self._continue_handshake(observer)

        self._expire_handshakes()

        if self.sweep_due():
            self.run_sweep()
            self.last_sweep_time = self._clock()

        self.state = ReactorState.IDLE

    def sweep_due(self) -> bool:
        if self.last_sweep_time is None:
            return True
        return self._clock() - self.last_sweep_time >= self.config.sweep_interval

    # ─────────────────────────────────────────────────────────────────────
    # ACCEPT & HANDSHAKE
    # ─────────────────────────────────────────────────────────────────────

    def _accept(self):
        accepted = self._socket_server.accept()
        if accepted is None:
            return

        client_socket, client_address = accepted
        observer = Observer(
            socket=client_socket,
            address=client_address,
            buffer_size=self.config.buffer_size,
            send_timeout=self.config.send_timeout,
            max_handshake_size=self.config.max_handshake_size,
            max_message_size=self.config.max_message_size,
        )
        self._pending.append(observer)
        self._waiter.register(client_socket, observer)
        logger.debug(f"[{observer.id}] Accepted connection from {client_address[0]}:{client_address[1]}")

    def _continue_handshake(self, observer: Observer):
        chunk = observer.receive()
        if chunk is None:
            return
        if not chunk:
            self._discard_pending(observer, "closed before handshake")
            return

        try:
            received = observer.feed_handshake(chunk)
            if received is None:
                return  # Headers still incomplete
            request, leftover = received
            response = negotiate(request)
        except (HandshakeError, ValueError) as e:
            self._discard_pending(observer, f"handshake rejected: {e}")
            return

        if not observer.send(response):
            self._discard_pending(observer, "could not send handshake response")
            return

        self._pending.remove(observer)
        observer.mark_open()
        self.registry.add(observer)
        logger.info(f"📱 Observer connected from {observer.client_ip} ({len(self.registry)} active)")

        # Snapshot first: it must precede any event broadcast after connect
        if not self.send_message(observer, initial_status(self.tracker.snapshot())):
            return

        if leftover:
            self._process_bytes(observer, leftover)

    def _discard_pending(self, observer: Observer, reason: str):
        logger.debug(f"[{observer.id}] Dropping {observer.client_ip}: {reason}")
        self._waiter.unregister(observer.socket)
        if observer in self._pending:
            self._pending.remove(observer)
        observer.close()

    def _expire_handshakes(self):
        for observer in list(self._pending):
            if observer.age > self.config.handshake_timeout:
                self._discard_pending(observer, "handshake timeout")

    # ─────────────────────────────────────────────────────────────────────
    # DRAIN
    # ─────────────────────────────────────────────────────────────────────

    def _drain(self, observer: Observer):
        chunk = observer.receive()
        if chunk is None:
            return
        if not chunk:
            self.remove_observer(observer)
            return
        self._process_bytes(observer, chunk)

    def _process_bytes(self, observer: Observer, data: bytes):
        try:
            frames = observer.feed_frames(data)
        except InvalidFrameError as e:
            logger.debug(f"[{observer.id}] Ignoring malformed frame: {e}")
            return
        except FrameError as e:
            logger.warning(f"[{observer.id}] {e}; disconnecting")
            self.remove_observer(observer)
            return

        for frame in frames:
            if observer.is_closed:
                break
            if frame.opcode != Opcode.TEXT:
                continue
            self._handle_message(observer, frame.payload)

    def _handle_message(self, observer: Observer, payload: bytes):
        action = parse_action(payload)
        if action == FORCE_CHECK:
            self.reporter.manual_check(observer.id)
            self.run_sweep(forced=True)
        else:
            logger.debug(f"[{observer.id}] Ignoring message: {payload[:100]!r}")

    # ─────────────────────────────────────────────────────────────────────
    # SWEEPS & BROADCAST
    # ─────────────────────────────────────────────────────────────────────

    def run_sweep(self, forced: bool = False) -> List[StatusEvent]:
        """
        Check every target and broadcast each event as soon as it exists.

        Args:
            forced: Manual sweep. Uses the manual probe and logs every
                    target regardless of quiet mode. Does not move the
                    scheduled timer.

        Returns:
            The events, in target order.
        """
        previous_state = self.state
        self.state = ReactorState.PROBING

        events = []
        for target in self.tracker.targets:
            event = self.tracker.check(target, forced=forced)
            events.append(event)
            self.reporter.report(event, forced=forced)
            for message in messages_for_event(event):
                self.broadcast(message)

        self.sweeps_run += 1
        self.state = previous_state
        return events

    def broadcast(self, message: Dict[str, Any]) -> int:
        """
        Send one message to every registered observer.

        The frame is encoded once. A failed write removes only that
        observer; the rest still receive the message.

        Returns:
            Number of observers the message reached.
        """
        frame = encode_frame(encode_message(message))
        delivered = 0

        for observer in self.registry.snapshot():
            if observer.send_frame(frame):
                delivered += 1
            else:
                self.remove_observer(observer)

        return delivered

    def send_message(self, observer: Observer, message: Dict[str, Any]) -> bool:
        """Send one message to one observer, removing it on failure."""
        if observer.send_frame(encode_frame(encode_message(message))):
            return True
        self.remove_observer(observer)
        return False

    def remove_observer(self, observer: Observer):
        """Unregister and close an observer. Safe to call more than once."""
        self._waiter.unregister(observer.socket)
        removed = self.registry.remove(observer)
        observer.close()
        if removed:
            logger.info(f"📱 Observer disconnected ({len(self.registry)} active)")


def create_server(config: MonitorConfig, **kwargs) -> MonitorServer:
    """
    Factory function for creating server instances.

    Example:
        server = create_server(MonitorConfig(targets=[Target("a", "http://a")]))
        server.run()
    """
    return MonitorServer(config, **kwargs)
