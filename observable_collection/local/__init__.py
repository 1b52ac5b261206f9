"""
In-memory host store used when a Collection is created from a name.

- LocalCollection: document store with reactive cursors
- LocalCursor: live query handle over a LocalCollection
- LocalConnection: opens LocalCollections that share data by name
"""

from .collection import LocalCollection, LocalConnection, LocalCursor, UpsertResult

__all__ = [
    "LocalCollection",
    "LocalConnection",
    "LocalCursor",
    "UpsertResult",
]
