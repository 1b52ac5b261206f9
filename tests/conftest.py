"""
Shared pytest fixtures and configuration for observable_collection tests.
"""

import pytest

from observable_collection import LocalCollection
from observable_collection.local import selector
from tests.utils import FakeHost, Recorder


@pytest.fixture(autouse=True)
def reset_selector_cache():
    """Clear memoized selectors before each test to prevent state leakage."""
    selector.clear_cache()


@pytest.fixture
def host():
    """Provide a FakeHost whose mutations settle on demand."""
    return FakeHost()


@pytest.fixture
def local():
    """Provide a fresh, empty LocalCollection."""
    return LocalCollection("test")


@pytest.fixture
def recorder():
    """Provide a factory for stream event recorders."""
    return Recorder
