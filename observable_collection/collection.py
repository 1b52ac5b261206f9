"""
Collection - Stream Facade over a Host Document Store
=====================================================

Collection wraps a host document store and exposes it through ``reactivex``
streams:

- **Mutations** (``insert``, ``remove``, ``update``, ``upsert``) return a
  multicast Observable *synchronously*, before the mutation completes. The
  single outcome is delivered to everyone subscribed at settlement time.
- **Queries** (``find``) return an ObservableCursor that re-emits the result
  set whenever it changes.
- **Everything else** (``find_one``, ``allow``, ``deny``, driver handles) is a
  plain passthrough to the host.

Subscribe in the same synchronous turn as the call. The mutation runs as an
asyncio task, so a subscription made after the event loop has had a chance to
settle it receives nothing at all.

Example:
    ```python
    async def main():
        todos = Collection("todos")

        todos.insert({"title": "ship it"}).subscribe(
            on_next=lambda todo_id: print("inserted", todo_id),
            on_error=lambda error: print("failed", error),
        )

        todos.find({"done": False}).subscribe(render)
    ```

Each ``*_async`` method is a second name for the operation of the same name,
kept for callers written against the host store's async API.
"""

import copy
import logging
from typing import Any, Generic, Mapping, Optional, TypeVar, Union

from reactivex import Observable

from .bridge import MutationKind, ResultBridge
from .config import CollectionOptions
from .cursor import ObservableCursor
from .host import HostCollection
from .local import LocalCollection

T = TypeVar("T")

Selector = Any
Options = Optional[Mapping[str, Any]]


def open_host_collection(name: Optional[str], options: CollectionOptions) -> HostCollection:
    """Create the host store for a named Collection."""
    if options.connection is None:
        return LocalCollection(
            name,
            id_generation=options.id_generation,
            transform=options.transform,
            extra=options.extra,
        )
    return options.connection.open_collection(name, options)


class Collection(Generic[T]):
    """
    A host document collection exposed through reactive streams.

    Args:
        name_or_existing: A collection name (``None`` for an anonymous local
            collection) or an existing host collection to wrap.
        options: CollectionOptions or a plain mapping. Ignored when wrapping an
            existing host collection.
    """

    def __init__(
        self,
        name_or_existing: Union[str, HostCollection, None] = None,
        options: Union[CollectionOptions, Mapping[str, Any], None] = None,
    ) -> None:
        if name_or_existing is None or isinstance(name_or_existing, str):
            self.options = CollectionOptions.coerce(options)
            self._collection = open_host_collection(name_or_existing, self.options)
        else:
            if options:
                logging.debug("Options are ignored when wrapping an existing collection")
            self.options = CollectionOptions()
            self._collection = name_or_existing

    def __repr__(self) -> str:
        return f"Collection({self._collection!r})"

    @property
    def collection(self) -> HostCollection:
        """The wrapped host collection."""
        return self._collection

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def insert(self, doc: Mapping[str, Any]) -> Observable:
        """
        Insert a document.

        Emits the new document's ``_id`` (generated when ``doc`` has none),
        then completes.
        """
        return self._mutate(MutationKind.INSERT, "insert_async", doc)

    def insert_async(self, doc: Mapping[str, Any]) -> Observable:
        return self.insert(doc)

    def remove(self, selector: Selector) -> Observable:
        """Remove matching documents. Emits the number removed, then completes."""
        return self._mutate(MutationKind.REMOVE, "remove_async", selector)

    def remove_async(self, selector: Selector) -> Observable:
        return self.remove(selector)

    def update(self, selector: Selector, modifier: Mapping[str, Any], options: Options = None) -> Observable:
        """
        Modify matching documents.

        ``options`` may carry ``multi`` and ``upsert``. Emits the number of
        affected documents, then completes.
        """
        return self._mutate(MutationKind.UPDATE, "update_async", selector, modifier, options)

    def update_async(self, selector: Selector, modifier: Mapping[str, Any], options: Options = None) -> Observable:
        return self.update(selector, modifier, options)

    def upsert(self, selector: Selector, modifier: Mapping[str, Any], options: Options = None) -> Observable:
        """
        Update matching documents or insert one when none match.

        Emits the host's upsert result (``number_affected`` and, when a
        document was inserted, ``inserted_id``), then completes.
        """
        return self._mutate(MutationKind.UPSERT, "upsert_async", selector, modifier, options)

    def upsert_async(self, selector: Selector, modifier: Mapping[str, Any], options: Options = None) -> Observable:
        return self.upsert(selector, modifier, options)

    def _mutate(self, kind: MutationKind, method: str, *args: Any) -> Observable:
        """
        Launch ``method`` on the host with a snapshot of ``args``.

        The arguments are deep-copied here, at call time, so the caller may
        reuse or change its dicts before the task runs.
        """
        try:
            snapshot = copy.deepcopy(args)
        except Exception as e:
            error = e

            def call() -> Any:
                raise error

        else:

            def call() -> Any:
                return getattr(self._collection, method)(*snapshot)

        return ResultBridge(kind, call).launch()

    # ========================================================================
    # QUERIES
    # ========================================================================

    def find(self, selector: Selector = None, options: Options = None) -> ObservableCursor:
        """
        Live query. Emits the list of matching documents on subscription and
        again whenever the result may have changed.

        ``selector`` and ``options`` (sort, skip, limit, fields, reactive,
        transform) are handed to the host untouched.
        """
        cursor = self._collection.find(selector, options)
        return ObservableCursor.create(cursor)

    def find_async(self, selector: Selector = None, options: Options = None) -> ObservableCursor:
        return self.find(selector, options)

    def find_one(self, selector: Selector = None, options: Options = None) -> Optional[T]:
        """First matching document, or None."""
        return self._collection.find_one(selector, options)

    async def find_one_async(self, selector: Selector = None, options: Options = None) -> Optional[T]:
        return await self._collection.find_one_async(selector, options)

    # ========================================================================
    # PASSTHROUGHS
    # ========================================================================

    def allow(self, rules: Mapping[str, Any]) -> bool:
        """Register rules that let untrusted code write to the collection."""
        return self._collection.allow(rules)

    def deny(self, rules: Mapping[str, Any]) -> bool:
        """Register rules that override allow rules."""
        return self._collection.deny(rules)

    def raw_collection(self) -> Any:
        return self._collection.raw_collection()

    def raw_database(self) -> Any:
        return self._collection.raw_database()


def from_existing(collection: HostCollection) -> Collection:
    """Wrap an existing host collection, e.g. a users collection owned elsewhere."""
    return Collection(collection)
