"""
Reconciler Kernel — Recently-seen window

Bounded membership set used to drop repeated deliveries. Delivery is
at-least-once, so the same event id may arrive more than once; the window
remembers the last `capacity` ids and forgets the oldest when full.
"""

from __future__ import annotations

from collections import OrderedDict


class RecentWindow:
    """Insertion-ordered set with FIFO eviction."""

    def __init__(self, capacity: int = 500) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._seen: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, key: str) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def check_and_add(self, key: str) -> bool:
        """
        Record `key` as seen.

        Returns True if the key is new, False if it was already in the window.
        A repeat does not refresh the key's position.
        """
        if key in self._seen:
            return False
        self._seen[key] = None
        while len(self._seen) > self.capacity:
            self._seen.popitem(last=False)
        return True

    def discard(self, key: str) -> None:
        self._seen.pop(key, None)

    def clear(self) -> None:
        self._seen.clear()
