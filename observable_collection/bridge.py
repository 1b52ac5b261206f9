"""
Result Bridge - Single-Shot Mutations as Multicast Streams
==========================================================

This module turns one pending asynchronous mutation into a ``reactivex``
Observable that any number of subscribers can share.

How it works:

1. A ResultBridge owns a fresh SubscriberRegistry and a PendingOperation.
2. ``launch()`` schedules the host mutation as an asyncio task and returns the
   stream right away. The call never blocks.
3. Subscribing appends the observer to the registry. Disposing the
   subscription removes it again (idempotent, safe after settlement).
4. When the mutation settles, the registry is drained exactly once. Each
   observer present at that moment receives ``on_next(result)`` followed by
   ``on_completed()``, or ``on_error(error)`` if the mutation failed or was
   cancelled. A subscriber whose ``on_next`` raises still gets ``on_completed``.

Subscribers that arrive after settlement are accepted but never called: the
registry is drained and never written to again. Callers must subscribe in the
same synchronous turn that started the mutation, before yielding to the event
loop.

A failure is only ever observable through ``on_error``. If nobody subscribed by
settlement time, the error is dropped.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, Set, TypeVar, Union

import reactivex
from reactivex import Observable, abc
from reactivex.disposable import Disposable

from .registry import SubscriberRegistry

T = TypeVar("T")


# ============================================================================
# SENTINEL VALUES
# ============================================================================


class _ABSENT:
    """Sentinel for 'not set yet' on a pending operation."""

    def __repr__(self):
        return "ABSENT"

    def __bool__(self):
        return False


ABSENT = _ABSENT()


# ============================================================================
# PENDING OPERATION
# ============================================================================


class MutationKind(Enum):
    """The mutating calls a bridge can carry."""

    INSERT = "insert"
    REMOVE = "remove"
    UPDATE = "update"
    UPSERT = "upsert"


@dataclass
class PendingOperation:
    """
    In-flight record of one asynchronous mutation and its single outcome.

    Created unsettled when the facade call is made. Settled exactly once by
    either ``resolve`` or ``reject``; immutable afterwards.
    """

    kind: MutationKind
    settled: bool = False
    result: Any = ABSENT
    error: Any = ABSENT

    @property
    def failed(self) -> bool:
        return self.settled and self.error is not ABSENT

    def resolve(self, result: Any) -> None:
        self._check_unsettled()
        self.result = result
        self.settled = True

    def reject(self, error: BaseException) -> None:
        self._check_unsettled()
        self.error = error
        self.settled = True

    def _check_unsettled(self) -> None:
        if self.settled:
            raise RuntimeError(f"{self.kind.value} operation has already settled")


# ============================================================================
# RESULT BRIDGE
# ============================================================================


class ResultBridge(Generic[T]):
    """
    Adapts one pending host mutation into a multicast Observable.

    Each bridge is used for exactly one call; bridges and their registries are
    never shared or reused.

    Example:
        ```python
        bridge = ResultBridge(MutationKind.INSERT, lambda: host.insert_async(doc))
        stream = bridge.launch()
        stream.subscribe(on_next=print, on_error=print)
        ```
    """

    # Strong references to running tasks until they finish
    _in_flight: Set["asyncio.Task[None]"] = set()

    def __init__(
        self,
        kind: MutationKind,
        call: Callable[[], Union[Awaitable[T], T]],
    ) -> None:
        self.operation = PendingOperation(kind)
        self._call = call
        self._registry: SubscriberRegistry[abc.ObserverBase[T]] = SubscriberRegistry()
        self._task: Optional["asyncio.Task[None]"] = None
        self.stream: Observable[T] = reactivex.create(self._subscribe)

    @property
    def subscriber_count(self) -> int:
        return len(self._registry)

    def launch(self) -> Observable[T]:
        """
        Schedule the host mutation on the running event loop.

        Returns the stream immediately. Raises RuntimeError when there is no
        running loop.
        """
        if self._task is not None:
            raise RuntimeError("ResultBridge has already been launched")

        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run())
        ResultBridge._in_flight.add(self._task)
        self._task.add_done_callback(ResultBridge._in_flight.discard)

        logging.debug(f"Launched {self.operation.kind.value} operation")
        return self.stream

    def _subscribe(
        self,
        observer: abc.ObserverBase[T],
        scheduler: Optional[abc.SchedulerBase] = None,
    ) -> abc.DisposableBase:
        # Silently dropped after settlement
        self._registry.append(observer)

        def unsubscribe() -> None:
            self._registry.remove(observer)

        return Disposable(unsubscribe)

    async def _run(self) -> None:
        try:
            outcome = self._call()
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except (Exception, asyncio.CancelledError) as e:
            # Cancellation settles as a failure
            self.operation.reject(e)
        else:
            self.operation.resolve(outcome)

        self._settle()

    def _settle(self) -> None:
        operation = self.operation
        kind = operation.kind.value

        if operation.failed and not len(self._registry):
            logging.debug(
                f"Discarding {kind} error with no subscribers: {operation.error!r}"
            )

        delivered = 0
        for observer in self._registry.drain():
            delivered += 1
            if operation.failed:
                _notify(kind, observer.on_error, operation.error)
            else:
                _notify(kind, observer.on_next, operation.result)
                _notify(kind, observer.on_completed)

        logging.debug(f"Settled {kind} operation for {delivered} subscriber(s)")


def _notify(kind: str, callback: Callable[..., None], *args: Any) -> None:
    """Call one observer method, logging instead of propagating its errors."""
    try:
        callback(*args)
    except Exception as e:
        logging.error(f"Error in {kind} subscriber callback: {e}")
