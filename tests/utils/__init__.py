"""
Test utilities for observable_collection.

Shared doubles and helpers for driving mutation streams and live queries.
"""

from .hosts import FakeCursor, FakeHost, Recorder, settle

__all__ = [
    "FakeCursor",
    "FakeHost",
    "Recorder",
    "settle",
]
