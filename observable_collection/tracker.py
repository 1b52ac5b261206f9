"""
Reactive Tracker - Dependency Tracking for Live Queries
=======================================================

This module provides the small reactive runtime the live-query side of the
bridge runs on: computations that re-execute whenever data they previously read
has changed.

Key pieces:

- **Dependency**: a source of change. Readers call ``depend()``; writers call
  ``changed()``.
- **Computation**: a function run with automatic dependency tracking. While it
  runs it is the *current* computation, so every ``depend()`` made during the
  run registers it. When any of those dependencies changes, the computation is
  invalidated and runs again.
- **autorun**: create a computation and run it immediately.

Reruns are synchronous. A computation invalidated while it is running is run
one more time after the current run finishes, never recursively.

Example:
    ```python
    dep = Dependency()
    seen = []

    computation = autorun(lambda c: (dep.depend(), seen.append(c.first_run)))
    dep.changed()  # reruns
    computation.stop()
    dep.changed()  # no longer reruns
    assert seen == [True, False]
    ```
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional


class Dependency:
    """
    A change source that computations can depend on.

    Dependents are held in registration order so invalidation order is stable.
    """

    __slots__ = ("_dependents",)

    def __init__(self) -> None:
        self._dependents: Dict[int, "Computation"] = {}

    @property
    def has_dependents(self) -> bool:
        return bool(self._dependents)

    def depend(self, computation: Optional["Computation"] = None) -> bool:
        """
        Register ``computation`` (default: the current one) as a dependent.

        Returns True if a new dependent was added.
        """
        computation = computation or Computation.current()
        if computation is None or computation.stopped:
            return False

        key = id(computation)
        if key in self._dependents:
            return False

        self._dependents[key] = computation
        computation._track(self)
        return True

    def changed(self) -> None:
        """Invalidate every dependent computation."""
        for computation in list(self._dependents.values()):
            computation.invalidate()

    def _forget(self, computation: "Computation") -> None:
        self._dependents.pop(id(computation), None)


class Computation:
    """
    A function run under dependency tracking.

    The function receives the computation itself, so it can check
    ``first_run`` or call ``stop()`` from inside.

    Attributes:
        first_run (bool): True during the first execution only
        stopped (bool): Once True the computation never runs again
        invalidated (bool): True between an invalidation and the next run
    """

    _local = threading.local()

    def __init__(
        self,
        func: Callable[["Computation"], Any],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self.func = func
        self.on_error = on_error
        self.first_run = True
        self.stopped = False
        self.invalidated = False
        self._running = False
        self._dependencies: Dict[int, Dependency] = {}

    @classmethod
    def current(cls) -> Optional["Computation"]:
        return getattr(cls._local, "current", None)

    @classmethod
    def _set_current(cls, computation: Optional["Computation"]) -> None:
        cls._local.current = computation

    def run(self) -> None:
        """Execute the function, tracking dependencies, until it settles."""
        if self.stopped or self._running:
            return

        while not self.stopped:
            self.invalidated = False
            self._release()
            self._execute()
            self.first_run = False
            if not self.invalidated:
                break

    def invalidate(self) -> None:
        """Mark this computation stale and rerun it unless it is mid-run."""
        if self.stopped:
            return
        self.invalidated = True
        if not self._running:
            self.run()

    def stop(self) -> None:
        """Stop the computation and detach it from every dependency."""
        if self.stopped:
            return
        self.stopped = True
        self._release()

    def _execute(self) -> None:
        previous = Computation.current()
        Computation._set_current(self)
        self._running = True
        try:
            self.func(self)
        except Exception as e:
            self.stop()
            if self.on_error is None:
                raise
            self.on_error(e)
        finally:
            self._running = False
            Computation._set_current(previous)

    def _track(self, dependency: Dependency) -> None:
        self._dependencies[id(dependency)] = dependency

    def _release(self) -> None:
        for dependency in self._dependencies.values():
            dependency._forget(self)
        self._dependencies.clear()


def autorun(
    func: Callable[[Computation], Any],
    on_error: Optional[Callable[[Exception], None]] = None,
) -> Computation:
    """Create a Computation and run it right away."""
    computation = Computation(func, on_error=on_error)
    try:
        computation.run()
    except Exception as e:
        logging.error(f"Computation failed on first run: {e}")
        raise
    return computation


def nonreactive(func: Callable[[], Any]) -> Any:
    """Call ``func`` with no current computation, so nothing it reads is tracked."""
    previous = Computation.current()
    Computation._set_current(None)
    try:
        return func()
    finally:
        Computation._set_current(previous)
