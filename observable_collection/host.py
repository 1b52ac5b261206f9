"""
Host Store Protocols
====================

Structural interfaces for the document store the bridge sits on top of. Any
object with the right methods works; nothing here needs to be subclassed.

- **HostCollection**: the store a Collection wraps. Mutations and
  ``find_one_async`` return awaitables that either produce a result or raise.
- **HostCursor**: the live query handle returned by ``HostCollection.find``.
  ``fetch()`` should register reactive dependencies with the current
  ``tracker.Computation`` so query streams re-emit on change.
- **Connection**: opens named collections; passed as the ``connection`` option.
"""

from typing import (
    Any,
    Awaitable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    runtime_checkable,
)

Document = Dict[str, Any]


@runtime_checkable
class HostCursor(Protocol):
    """Live query handle over a host collection."""

    def fetch(self) -> List[Any]:
        """Return the current matching documents."""
        ...

    def count(self) -> int:
        ...


@runtime_checkable
class HostCollection(Protocol):
    """The document store operations consumed by the facade."""

    def insert_async(self, doc: Document) -> Awaitable[Any]:
        ...

    def remove_async(self, selector: Any) -> Awaitable[int]:
        ...

    def update_async(
        self, selector: Any, modifier: Mapping[str, Any], options: Optional[Mapping[str, Any]] = None
    ) -> Awaitable[int]:
        ...

    def upsert_async(
        self, selector: Any, modifier: Mapping[str, Any], options: Optional[Mapping[str, Any]] = None
    ) -> Awaitable[Any]:
        ...

    def find(self, selector: Any = None, options: Optional[Mapping[str, Any]] = None) -> HostCursor:
        ...

    def find_one(self, selector: Any = None, options: Optional[Mapping[str, Any]] = None) -> Any:
        ...

    def find_one_async(
        self, selector: Any = None, options: Optional[Mapping[str, Any]] = None
    ) -> Awaitable[Any]:
        ...

    def allow(self, rules: Mapping[str, Any]) -> bool:
        ...

    def deny(self, rules: Mapping[str, Any]) -> bool:
        ...

    def raw_collection(self) -> Any:
        ...

    def raw_database(self) -> Any:
        ...


@runtime_checkable
class Connection(Protocol):
    """Target session/server that can open named collections."""

    def open_collection(self, name: Optional[str], options: Any) -> HostCollection:
        ...
