"""
Connection registry: the set of upgraded observers.

Only observers that completed the handshake live here. Broadcasts
iterate over snapshot(), a copy, so removing an observer halfway through
a broadcast never disturbs the loop doing the broadcasting.
"""

from typing import Iterator, List, Tuple

from .connection import Observer


class ConnectionRegistry:
    """Ordered set of observers, in registration order."""

    def __init__(self):
        self._observers: List[Observer] = []

    def __len__(self) -> int:
        return len(self._observers)

    def __contains__(self, observer: Observer) -> bool:
        return observer in self._observers

    def __iter__(self) -> Iterator[Observer]:
        return iter(self.snapshot())

    def add(self, observer: Observer) -> bool:
        """Register an observer. Returns False if it was already present."""
        if observer in self._observers:
            return False
        self._observers.append(observer)
        return True

    def remove(self, observer: Observer) -> bool:
        """
        Unregister an observer.

        Idempotent: removing an absent observer is a no-op and returns False.
        """
        try:
            self._observers.remove(observer)
        except ValueError:
            return False
        return True

    def snapshot(self) -> Tuple[Observer, ...]:
        return tuple(self._observers)

    def close_all(self):
        """Close every observer and empty the registry."""
        for observer in self.snapshot():
            observer.close()
        self._observers.clear()
