"""
=============================================================================
READINESS WAITING
=============================================================================

The reactor never blocks on a single socket. It asks the OS "which of
these sockets have something for me?" and waits at most a fraction of a
second for the answer.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     One wait, many sockets                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   register(listener, "listener")                                    │
    │   register(observer_1, observer_1)                                  │
    │   register(observer_2, observer_2)                                  │
    │                                                                     │
    │   wait(0.1) ──► [observer_2]        data arrived on one socket      │
    │   wait(0.1) ──► []                  timeout, check the timer        │
    │   wait(0.1) ──► ["listener"]        new connection pending          │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

The ReadinessWaiter interface hides which OS facility does the waiting.
SelectorWaiter uses the stdlib selectors module, which picks epoll,
kqueue or select for the platform. Another implementation could sit on
an asyncio loop without the reactor noticing.

=============================================================================
"""

import selectors
import time
from typing import Any, Dict, List


class ReadinessWaiter:
    """
    Read-readiness over a changing set of file objects.

    Each registered file object carries a token; wait() returns the tokens
    of the ready ones.
    """

    def register(self, fileobj, token: Any):
        raise NotImplementedError

    def unregister(self, fileobj):
        raise NotImplementedError

    def wait(self, timeout: float) -> List[Any]:
        raise NotImplementedError

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class SelectorWaiter(ReadinessWaiter):
    """ReadinessWaiter on top of selectors.DefaultSelector."""

    def __init__(self, selector: selectors.BaseSelector = None):
        self._selector = selector or selectors.DefaultSelector()
        self._registered: Dict[int, Any] = {}

    def __len__(self) -> int:
        return len(self._registered)

    def register(self, fileobj, token: Any):
        self._selector.register(fileobj, selectors.EVENT_READ, data=token)
        self._registered[id(fileobj)] = token

    def unregister(self, fileobj):
        """Stop watching fileobj. Unknown file objects are ignored."""
        if self._registered.pop(id(fileobj), None) is None:
            return
        try:
            self._selector.unregister(fileobj)
        except (KeyError, ValueError):
            pass

    def wait(self, timeout: float) -> List[Any]:
        if not self._registered:
            # Some platforms reject select() with nothing to wait on
            time.sleep(timeout)
            return []
        events = self._selector.select(timeout=timeout)
        return [key.data for key, mask in events if mask & selectors.EVENT_READ]

    def close(self):
        self._selector.close()
        self._registered.clear()
