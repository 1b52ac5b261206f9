"""
Local Collection - In-Memory Reference Host Store
=================================================

LocalCollection is an in-memory, insertion-ordered document store that
implements the HostCollection protocol. It is the store a Collection creates
when it is constructed from a name without a ``connection``.

Key Features:
- Mongo-style selectors, modifiers, sort/skip/limit and field projection
- Generated ``_id`` values (``"STRING"`` or ``"MONGO"`` strategy)
- Reactive cursors: ``fetch()`` registers a tracker dependency that is
  invalidated after every mutation that changed data
- Allow/deny rule registration with deny-then-allow checks

Documents are deep-copied on the way in and on the way out, so callers never
share state with the store.

Example:
    ```python
    todos = LocalCollection("todos")
    todo_id = todos.insert({"title": "write tests", "done": False})
    todos.update({"done": False}, {"$set": {"done": True}}, {"multi": True})
    todos.find({"done": True}).fetch()
    ```
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..config import ID_GENERATION_STRING, CollectionOptions
from ..errors import (
    CollectionError,
    DuplicateKeyError,
    InvalidDocumentError,
    InvalidRulesError,
    InvalidSelectorError,
)
from ..tracker import Dependency
from .ids import id_generator
from .modifier import apply_modifier, modified_fields, upsert_seed
from .selector import compile_selector, compile_sort, normalize_selector

Document = Dict[str, Any]

RULE_KINDS = ("insert", "update", "remove")
RULE_KEYS = RULE_KINDS + ("fetch", "transform")

_DEFAULT = object()


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of an upsert: how many documents changed and the new id, if any."""

    number_affected: int
    inserted_id: Optional[str] = None


# ============================================================================
# CURSOR
# ============================================================================


class LocalCursor:
    """
    A live query over a LocalCollection.

    The query is evaluated on every ``fetch()``; the cursor holds no results.
    """

    def __init__(
        self,
        collection: "LocalCollection",
        selector: Any = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        options = dict(options or {})
        self.collection = collection
        self.selector = normalize_selector(selector)
        self.sort = options.get("sort")
        self.skip = options.get("skip") or 0
        self.limit = options.get("limit")
        self.fields = options.get("fields")
        self.reactive = options.get("reactive", True)
        self.transform = options.get("transform", _DEFAULT)
        self._matcher = compile_selector(self.selector)
        self._sort_key = compile_sort(self.sort) if self.sort else None
        self._projection = _compile_projection(self.fields) if self.fields else None

    def fetch(self) -> List[Any]:
        """Current matching documents, projected and transformed."""
        return [self._present(doc) for doc in self._select()]

    def count(self) -> int:
        return len(self._select())

    def __iter__(self):
        return iter(self.fetch())

    def _select(self) -> List[Document]:
        if self.reactive:
            self.collection._dependency.depend()

        docs = [doc for doc in self.collection._docs.values() if self._matcher(doc)]
        if self._sort_key is not None:
            docs.sort(key=self._sort_key)
        if self.skip:
            docs = docs[self.skip :]
        if self.limit:
            docs = docs[: self.limit]
        return docs

    def _present(self, doc: Document) -> Any:
        doc = copy.deepcopy(doc)
        if self._projection is not None:
            doc = self._projection(doc)
        transform = self.collection.transform if self.transform is _DEFAULT else self.transform
        return transform(doc) if transform is not None else doc


def _compile_projection(fields: Mapping[str, Any]) -> Callable[[Document], Document]:
    flags = {key: bool(value) for key, value in fields.items()}
    include_id = flags.pop("_id", True)
    if not flags:
        return lambda doc: doc if include_id else {k: v for k, v in doc.items() if k != "_id"}

    modes = set(flags.values())
    if len(modes) > 1:
        raise InvalidSelectorError("Projection cannot mix inclusion and exclusion")

    if modes == {True}:

        def include(doc: Document) -> Document:
            picked = {key: doc[key] for key in flags if key in doc}
            if include_id and "_id" in doc:
                picked = {"_id": doc["_id"], **picked}
            return picked

        return include

    def exclude(doc: Document) -> Document:
        return {
            key: value
            for key, value in doc.items()
            if key not in flags and (include_id or key != "_id")
        }

    return exclude


# ============================================================================
# COLLECTION
# ============================================================================


class LocalCollection:
    """
    In-memory document store implementing the HostCollection protocol.

    Args:
        name: Collection name, or None for an anonymous collection
        id_generation: ``"STRING"`` or ``"MONGO"``
        transform: Applied to every document returned by ``find``/``find_one``
        connection: The LocalConnection that opened this collection, if any
        extra: Unrecognized options, kept verbatim in ``extra_options``
    """

    def __init__(
        self,
        name: Optional[str] = None,
        id_generation: str = ID_GENERATION_STRING,
        transform: Optional[Callable[[Document], Any]] = None,
        connection: Optional["LocalConnection"] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.name = name
        self.id_generation = id_generation
        self.transform = transform
        self.connection = connection
        self.extra_options = dict(extra or {})
        self._generate_id = id_generator(id_generation)
        self._docs: Dict[Any, Document] = {}
        self._dependency = Dependency()
        self._allow_rules: List[Mapping[str, Any]] = []
        self._deny_rules: List[Mapping[str, Any]] = []

    def __repr__(self) -> str:
        return f"LocalCollection({self.name!r}, {len(self._docs)} docs)"

    def __len__(self) -> int:
        return len(self._docs)

    # ------------------------------------------------------------------
    # Synchronous operations
    # ------------------------------------------------------------------

    def insert(self, doc: Mapping[str, Any]) -> Any:
        """Insert one document and return its ``_id``."""
        if not isinstance(doc, Mapping):
            raise InvalidDocumentError(f"Document must be a mapping, got {type(doc).__name__}")

        doc = copy.deepcopy(dict(doc))
        if "_id" not in doc:
            doc["_id"] = self._generate_id()
        doc_id = doc["_id"]
        if isinstance(doc_id, (dict, list)):
            raise InvalidDocumentError("_id must be a scalar value")
        if doc_id in self._docs:
            raise DuplicateKeyError(f"Duplicate _id {doc_id!r} in {self.name or 'local collection'}")

        self._docs[doc_id] = doc
        self._changed()
        return doc_id

    def remove(self, selector: Any) -> int:
        """Remove every matching document and return how many were removed."""
        matcher = compile_selector(selector)
        doomed = [doc_id for doc_id, doc in self._docs.items() if matcher(doc)]
        for doc_id in doomed:
            del self._docs[doc_id]
        if doomed:
            self._changed()
        return len(doomed)

    def update(
        self,
        selector: Any,
        modifier: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """
        Modify matching documents.

        Options:
            multi: update every match instead of the first one (default False)
            upsert: insert a document when nothing matches (default False)

        Returns the number of documents affected.
        """
        options = options or {}
        if options.get("upsert"):
            return self.upsert(selector, modifier, options).number_affected
        return self._apply(selector, modifier, bool(options.get("multi")))

    def upsert(
        self,
        selector: Any,
        modifier: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> UpsertResult:
        """Update matches, or insert a seeded document when there are none."""
        options = options or {}
        affected = self._apply(selector, modifier, bool(options.get("multi")))
        if affected:
            return UpsertResult(number_affected=affected)

        seed = upsert_seed(normalize_selector(selector), modifier)
        return UpsertResult(number_affected=1, inserted_id=self.insert(seed))

    def find(self, selector: Any = None, options: Optional[Mapping[str, Any]] = None) -> LocalCursor:
        return LocalCursor(self, selector, options)

    def find_one(self, selector: Any = None, options: Optional[Mapping[str, Any]] = None) -> Any:
        options = dict(options or {})
        options["limit"] = 1
        docs = LocalCursor(self, selector, options).fetch()
        return docs[0] if docs else None

    # ------------------------------------------------------------------
    # Asynchronous operations (HostCollection)
    # ------------------------------------------------------------------

    async def insert_async(self, doc: Mapping[str, Any]) -> Any:
        return self.insert(doc)

    async def remove_async(self, selector: Any) -> int:
        return self.remove(selector)

    async def update_async(
        self,
        selector: Any,
        modifier: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> int:
        return self.update(selector, modifier, options)

    async def upsert_async(
        self,
        selector: Any,
        modifier: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> UpsertResult:
        return self.upsert(selector, modifier, options)

    async def find_one_async(self, selector: Any = None, options: Optional[Mapping[str, Any]] = None) -> Any:
        return self.find_one(selector, options)

    # ------------------------------------------------------------------
    # Allow / deny
    # ------------------------------------------------------------------

    def allow(self, rules: Mapping[str, Any]) -> bool:
        self._allow_rules.append(self._check_rules(rules, "allow"))
        return True

    def deny(self, rules: Mapping[str, Any]) -> bool:
        self._deny_rules.append(self._check_rules(rules, "deny"))
        return True

    def is_permitted(
        self,
        kind: str,
        user_id: Optional[str],
        doc: Mapping[str, Any],
        field_names: Optional[List[str]] = None,
        modifier: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Check a write against the registered rules.

        Any deny rule returning True rejects the write; otherwise at least one
        allow rule must return True.
        """
        if kind not in RULE_KINDS:
            raise ValueError(f"Unknown rule kind {kind!r}")

        if kind == "update":
            if field_names is None and modifier is not None:
                field_names = modified_fields(modifier)
            extra_args = (field_names or [], modifier or {})
        else:
            extra_args = ()

        def passes(rules: Mapping[str, Any]) -> bool:
            predicate = rules[kind]
            return bool(predicate(user_id, self._rule_doc(rules, doc), *extra_args))

        if any(passes(rules) for rules in self._deny_rules if kind in rules):
            return False
        return any(passes(rules) for rules in self._allow_rules if kind in rules)

    def _rule_doc(self, rules: Mapping[str, Any], doc: Mapping[str, Any]) -> Any:
        doc = copy.deepcopy(dict(doc))
        transform = rules.get("transform", self.transform)
        return transform(doc) if transform is not None else doc

    @staticmethod
    def _check_rules(rules: Mapping[str, Any], kind: str) -> Mapping[str, Any]:
        if not isinstance(rules, Mapping):
            raise InvalidRulesError(f"{kind}() expects a mapping of rules")
        for key, value in rules.items():
            if key not in RULE_KEYS:
                raise InvalidRulesError(f"{kind}: invalid key {key!r}")
            if key in RULE_KINDS and not callable(value):
                raise InvalidRulesError(f"{kind}: value for {key!r} must be a function")
            if key == "fetch" and not (
                isinstance(value, (list, tuple)) and all(isinstance(f, str) for f in value)
            ):
                raise InvalidRulesError(f"{kind}: fetch must be a list of field names")
            if key == "transform" and value is not None and not callable(value):
                raise InvalidRulesError(f"{kind}: transform must be a function or None")
        return dict(rules)

    # ------------------------------------------------------------------
    # Driver handles
    # ------------------------------------------------------------------

    def raw_collection(self) -> Any:
        raise CollectionError("raw_collection() is not available on a local collection")

    def raw_database(self) -> Any:
        raise CollectionError("raw_database() is not available on a local collection")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(self, selector: Any, modifier: Mapping[str, Any], multi: bool) -> int:
        matcher = compile_selector(selector)
        targets = [doc_id for doc_id, doc in self._docs.items() if matcher(doc)]
        if not multi:
            targets = targets[:1]

        # Compute every new document first so a failing modifier changes nothing
        updated = {doc_id: apply_modifier(self._docs[doc_id], modifier) for doc_id in targets}
        self._docs.update(updated)
        if updated:
            self._changed()
        return len(updated)

    def _changed(self) -> None:
        logging.debug(f"{self!r} changed, invalidating dependents")
        self._dependency.changed()


class LocalConnection:
    """
    Opens named LocalCollections that share data by name.

    Pass an instance as the ``connection`` option to make several Collection
    facades operate on the same in-memory store. Anonymous collections are
    never shared.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, LocalCollection] = {}

    def open_collection(self, name: Optional[str], options: CollectionOptions) -> LocalCollection:
        if name is not None and name in self._collections:
            return self._collections[name]

        collection = LocalCollection(
            name,
            id_generation=options.id_generation,
            transform=options.transform,
            connection=self,
            extra=options.extra,
        )
        if name is not None:
            self._collections[name] = collection
        return collection

    def collection_names(self) -> List[str]:
        return list(self._collections)
