"""
Subscriber Registry
===================

This module provides SubscriberRegistry, the per-call subscriber list behind
every mutation stream.

A registry lives for exactly one pending operation. It supports three
operations:

- ``append``: add a subscriber at the end (registration order is delivery order)
- ``remove``: drop a subscriber by identity, idempotent, safe at any time
- ``drain``: consume the subscribers present at settlement, once

After ``drain`` starts the registry is closed for good: appends are ignored and
removals are no-ops. Subscribers removed while the drain is still delivering
(for example disposed from an earlier subscriber's callback) are skipped.
"""

from typing import Generic, Iterator, List, TypeVar

T = TypeVar("T")


class SubscriberRegistry(Generic[T]):
    """
    Ordered, identity-based collection of subscribers with a one-shot drain.

    Usage:
        registry = SubscriberRegistry()
        registry.append(observer_a)
        registry.append(observer_b)
        registry.remove(observer_a)
        for observer in registry.drain():
            observer.on_next(value)
    """

    __slots__ = ("_entries", "_drained")

    def __init__(self) -> None:
        self._entries: List[T] = []
        self._drained = False

    @property
    def drained(self) -> bool:
        return self._drained

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, subscriber: object) -> bool:
        return any(entry is subscriber for entry in self._entries)

    def append(self, subscriber: T) -> bool:
        """
        Add a subscriber.

        Returns False when the registry has already been drained; the
        subscriber is then dropped and will never be invoked.
        """
        if self._drained:
            return False
        self._entries.append(subscriber)
        return True

    def remove(self, subscriber: T) -> bool:
        """Remove the first entry that *is* ``subscriber``. Idempotent."""
        for index, entry in enumerate(self._entries):
            if entry is subscriber:
                del self._entries[index]
                return True
        return False

    def drain(self) -> Iterator[T]:
        """
        Close the registry and yield its subscribers in registration order.

        Entries are popped one at a time, so a removal made while an earlier
        subscriber is being served still takes effect.
        """
        if self._drained:
            raise RuntimeError("SubscriberRegistry has already been drained")
        self._drained = True
        return self._consume()

    def _consume(self) -> Iterator[T]:
        while self._entries:
            yield self._entries.pop(0)
