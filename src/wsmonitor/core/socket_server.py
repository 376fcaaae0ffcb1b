"""
=============================================================================
LISTENING SOCKET
=============================================================================

Creates the one socket every observer connects through.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create a TCP socket
    2. bind()      Reserve host:port         ◄── the only fatal failure
    3. listen()    Start queueing connections
    4. accept()    Called by the reactor whenever the listener is readable
    5. close()     On process exit

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── non-blocking, watched by
                    │   0.0.0.0:8080        │     the readiness waiter
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │ Observer  │         │ Observer  │         │ Observer  │
    └───────────┘         └───────────┘         └───────────┘

SO_REUSEADDR:
─────────────
Without it a restarted monitor sees "Address already in use" for as long
as the old socket lingers in TIME_WAIT.

NON-BLOCKING:
─────────────
The reactor only calls accept() after the waiter reports the listener as
readable, but another process or a reset connection can still leave the
queue empty. A non-blocking accept() then raises BlockingIOError instead
of stalling the whole loop.

=============================================================================
"""

import socket
import logging
from typing import Optional, Tuple

from ..config import MonitorConfig


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Owns the listening socket.

    Usage:
        server = SocketServer(config)
        listener = server.open()          # raises OSError if bind fails
        client, address = server.accept() # None when nothing is pending
        server.close()
    """

    def __init__(self, config: MonitorConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None

    @property
    def listener(self) -> Optional[socket.socket]:
        return self._socket

    @property
    def is_open(self) -> bool:
        return self._socket is not None

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port). Reflects the real port when port 0 was requested."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setblocking(False)
        return sock

    def open(self) -> socket.socket:
        """
        Create, bind and listen.

        Raises:
            OSError: The address could not be bound. Startup cannot continue.
        """
        sock = self._create_socket()

        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            sock.close()
            raise

        self._socket = sock
        host, port = self.address
        logger.info(f"Listening on {host}:{port}")
        return sock

    def accept(self) -> Optional[Tuple[socket.socket, tuple]]:
        """
        Accept one pending connection.

        Returns:
            (client_socket, address), or None if nothing was pending or the
            accept failed. Accept failures are transient and never fatal.
        """
        try:
            return self._socket.accept()
        except (BlockingIOError, InterruptedError):
            return None
        except OSError as e:
            logger.warning(f"Accept error: {e}")
            return None

    def close(self):
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None
            logger.info("Listening socket closed")
