"""
=============================================================================
CORE PACKAGE - Sockets, Observers and Readiness
=============================================================================

Low-level building blocks the reactor is assembled from:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        CORE COMPONENTS                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   SocketServer         Listening socket (bind, listen, accept)      │
    │   Observer             One client: buffers, send, close             │
    │   ConnectionRegistry   Upgraded observers in registration order     │
    │   ReadinessWaiter      "Which sockets are readable?" abstraction    │
    │   SelectorWaiter       ReadinessWaiter backed by selectors          │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

SINGLE-THREADED:
────────────────
Every socket and every piece of mutable state belongs to the one reactor
thread. Nothing here takes a lock because nothing here is shared.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Observer, ObserverState
from .registry import ConnectionRegistry
from .readiness import ReadinessWaiter, SelectorWaiter

__all__ = [
    "SocketServer",        # Listening socket
    "Observer",            # Wrapper for one client socket
    "ObserverState",       # Observer lifecycle states
    "ConnectionRegistry",  # Upgraded observers
    "ReadinessWaiter",     # Readiness wait interface
    "SelectorWaiter",      # selectors-based implementation
]
