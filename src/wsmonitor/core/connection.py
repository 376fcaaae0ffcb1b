"""
=============================================================================
OBSERVER CONNECTIONS
=============================================================================

This module wraps each accepted client socket with the state needed to
carry it from raw TCP to a live WebSocket observer.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

A single recv() may return half a handshake, one frame and a bit, or
three frames glued together. So every observer keeps two buffers:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       Observer Buffers                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │  handshake_buffer   bytes until the first \r\n\r\n                  │
    │                     └── then handed to the negotiator               │
    │                                                                     │
    │  frames             FrameBuffer for everything after the upgrade    │
    │                     └── yields complete frames only                 │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LIFECYCLE
=============================================================================

    accept()
       │
       ▼
    HANDSHAKING ──bad request / timeout──► CLOSED
       │
       │ 101 sent
       ▼
    OPEN ──empty read / I/O error──► CLOSED
       │
       └── receives frames, is written to on every broadcast

=============================================================================
"""

import socket
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..protocol.frames import Frame, FrameBuffer
from ..protocol.handshake import HEADER_TERMINATOR


logger = logging.getLogger(__name__)


class ObserverState(Enum):
    """Observer lifecycle states."""
    HANDSHAKING = "handshaking"  # Accepted, waiting for the upgrade request
    OPEN = "open"                # Upgraded, receiving broadcasts
    CLOSED = "closed"            # Socket released


@dataclass(eq=False)
class Observer:
    """
    A connected client, before and after the upgrade.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier for log lines.
        state: Current lifecycle state.
        created_at: Monotonic time the socket was accepted.
        last_activity: Monotonic time of the last successful read or write.
        messages_sent: Frames written to this observer.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ObserverState = ObserverState.HANDSHAKING
    created_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)
    messages_sent: int = 0

    buffer_size: int = 4096
    send_timeout: Optional[float] = 5.0
    max_handshake_size: int = 8192
    max_message_size: int = 1024 * 1024

    handshake_buffer: bytes = field(default=b"", repr=False)
    frames: FrameBuffer = field(init=False, repr=False)

    def __post_init__(self):
        # Reads only happen after the waiter reports readiness, so the
        # timeout effectively bounds sendall() alone.
        self.socket.settimeout(self.send_timeout)
        self.frames = FrameBuffer(max_size=self.max_message_size)

    # ─────────────────────────────────────────────────────────────────────
    # PROPERTIES
    # ─────────────────────────────────────────────────────────────────────

    @property
    def handshake_complete(self) -> bool:
        return self.state == ObserverState.OPEN

    @property
    def is_closed(self) -> bool:
        return self.state == ObserverState.CLOSED

    @property
    def client_ip(self) -> str:
        return self.address[0] if self.address else ""

    @property
    def age(self) -> float:
        """Seconds since accept."""
        return time.monotonic() - self.created_at

    def fileno(self) -> int:
        return self.socket.fileno()

    # ─────────────────────────────────────────────────────────────────────
    # READING
    # ─────────────────────────────────────────────────────────────────────

    def receive(self) -> Optional[bytes]:
        """
        Read whatever is available.

        Returns:
            The bytes read. Empty bytes mean the peer closed the connection
            or the connection failed; either way the observer is finished.
            None means there was nothing to read after all.
        """
        try:
            data = self.socket.recv(self.buffer_size)
        except (BlockingIOError, InterruptedError, socket.timeout):
            # Spurious wakeup: nothing to read after all
            return None
        except OSError as e:
            logger.debug(f"[{self.id}] Receive failed: {e}")
            return b""

        if data:
            self.last_activity = time.monotonic()
        return data

    def feed_handshake(self, chunk: bytes) -> Optional[Tuple[bytes, bytes]]:
        """
        Buffer handshake bytes.

        Returns:
            (request, leftover) once the blank line has arrived, else None.
            request runs through the blank line; leftover is whatever the
            client sent after it and belongs to the frame stream.

        Raises:
            ValueError: The request grew past max_handshake_size.
        """
        self.handshake_buffer += chunk

        end = self.handshake_buffer.find(HEADER_TERMINATOR)
        if end == -1:
            if len(self.handshake_buffer) > self.max_handshake_size:
                raise ValueError(f"Handshake too large: {len(self.handshake_buffer)} bytes")
            return None

        end += len(HEADER_TERMINATOR)
        request = self.handshake_buffer[:end]
        leftover = self.handshake_buffer[end:]
        self.handshake_buffer = b""
        return request, leftover

    def feed_frames(self, chunk: bytes) -> List[Frame]:
        """Buffer frame bytes and return every complete frame."""
        return self.frames.feed(chunk)

    # ─────────────────────────────────────────────────────────────────────
    # WRITING
    # ─────────────────────────────────────────────────────────────────────

    def send(self, data: bytes) -> bool:
        """
        Send bytes to the client.

        Uses sendall() so partial writes never leave half a frame on the
        wire.

        Returns:
            True if send succeeded, False if the connection is unusable.
        """
        if self.is_closed:
            return False

        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

        self.last_activity = time.monotonic()
        return True

    def send_frame(self, frame: bytes) -> bool:
        """Send one encoded frame and count it."""
        sent = self.send(frame)
        if sent:
            self.messages_sent += 1
        return sent

    # ─────────────────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────────────────

    def mark_open(self):
        self.state = ObserverState.OPEN

    def close(self):
        """
        Close the socket. Safe to call more than once.

        No draining: the reactor must not wait on a departing peer.
        """
        if self.state == ObserverState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already gone

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ObserverState.CLOSED
        logger.debug(f"[{self.id}] Closed after {self.messages_sent} messages")
