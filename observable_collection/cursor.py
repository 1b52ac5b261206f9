"""
Observable Cursor - Live Queries as Streams
===========================================

ObservableCursor adapts a host cursor into a ``reactivex`` Observable that
emits the full list of matching documents, first on subscription and then
every time the query's reactive dependencies change.

Each subscription owns one tracker Computation. Disposing the subscription
stops that computation; nothing else does. A failing ``fetch()`` is delivered
to ``on_error`` and ends the subscription.

Example:
    ```python
    todos = Collection("todos")
    subscription = todos.find({"done": False}).subscribe(render)
    ...
    subscription.dispose()
    ```
"""

import logging
from typing import Any, Callable, Generic, List, Optional, TypeVar

from reactivex import Observable, abc
from reactivex.disposable import Disposable

from .host import HostCursor
from .tracker import Computation, autorun, nonreactive

T = TypeVar("T")


class ObservableCursor(Observable, Generic[T]):
    """
    Stream of result-set snapshots for one host cursor.

    The facade's ``find`` returns this unmodified. Besides the Observable API it
    exposes the wrapped cursor and synchronous ``fetch``/``count`` passthroughs.
    """

    def __init__(self, cursor: HostCursor) -> None:
        super().__init__()
        self._cursor = cursor

    @classmethod
    def create(cls, cursor: HostCursor) -> "ObservableCursor[T]":
        return cls(cursor)

    @property
    def cursor(self) -> HostCursor:
        return self._cursor

    def fetch(self) -> List[T]:
        return self._cursor.fetch()

    def count(self) -> int:
        return self._cursor.count()

    def _subscribe_core(
        self,
        observer: abc.ObserverBase[List[T]],
        scheduler: Optional[abc.SchedulerBase] = None,
    ) -> abc.DisposableBase:
        def emit(computation: Computation) -> None:
            try:
                docs = self._cursor.fetch()
            except Exception as e:
                computation.stop()
                _deliver(observer.on_error, e)
                return

            # Reads made by the subscriber must not become query dependencies
            nonreactive(lambda: _deliver(observer.on_next, docs))

        computation = autorun(emit)
        return Disposable(computation.stop)


def _deliver(callback: Callable[[Any], None], value: Any) -> None:
    try:
        callback(value)
    except Exception as e:
        logging.error(f"Error in cursor subscriber callback: {e}")
