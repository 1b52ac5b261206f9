"""
Observable Collection - Reactive Document Collections as Streams

Wraps a reactive document store so that single-shot mutations and live queries
are consumed through ``reactivex`` Observables with multicast delivery.
"""

__version__ = "0.1.0"

# Stream facade
from .collection import Collection, from_existing, open_host_collection

# Bridge core
from .bridge import ABSENT, MutationKind, PendingOperation, ResultBridge
from .registry import SubscriberRegistry

# Live queries
from .cursor import ObservableCursor
from .tracker import Computation, Dependency, autorun, nonreactive

# Configuration
from .config import CollectionOptions

# Host protocols and the in-memory host
from .host import Connection, HostCollection, HostCursor
from .local import LocalCollection, LocalConnection, LocalCursor, UpsertResult

# Exceptions
from .errors import (
    CollectionError,
    ConfigError,
    DuplicateKeyError,
    InvalidDocumentError,
    InvalidModifierError,
    InvalidRulesError,
    InvalidSelectorError,
    MutationError,
)

__all__ = [
    # Facade
    "Collection",
    "from_existing",
    "open_host_collection",
    # Bridge core
    "ResultBridge",
    "PendingOperation",
    "MutationKind",
    "SubscriberRegistry",
    "ABSENT",
    # Live queries
    "ObservableCursor",
    "Computation",
    "Dependency",
    "autorun",
    "nonreactive",
    # Configuration
    "CollectionOptions",
    # Host
    "HostCollection",
    "HostCursor",
    "Connection",
    "LocalCollection",
    "LocalConnection",
    "LocalCursor",
    "UpsertResult",
    # Exceptions
    "CollectionError",
    "ConfigError",
    "MutationError",
    "DuplicateKeyError",
    "InvalidDocumentError",
    "InvalidSelectorError",
    "InvalidModifierError",
    "InvalidRulesError",
]
