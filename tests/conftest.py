"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from recital.core.models import Item  # noqa: E402
from recital.db.memory_store import InMemoryStateStore  # noqa: E402
from recital.delivery.engine import StudyEngine  # noqa: E402
from recital.delivery.queue_builder import QueueConfig  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite store)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FakeClock:
    """Deterministic clock; call it to read, advance it explicitly."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def t0():
    """Reference time used across tests."""
    return datetime(2024, 3, 15, 9, 30)


@pytest.fixture
def clock(t0):
    return FakeClock(t0)


@pytest.fixture
def store():
    """Empty in-memory store."""
    return InMemoryStateStore()


@pytest.fixture
def sonnet_items():
    """Fourteen lines of a sonnet, in order."""
    return [Item(item_id=f"sonnet18-line{n:02d}", sequence=n) for n in range(1, 15)]


@pytest.fixture
def loaded_store(store, sonnet_items):
    store.register_items(sonnet_items)
    return store


@pytest.fixture
def engine(loaded_store, clock):
    """Engine over the loaded in-memory store with a small daily goal."""
    return StudyEngine(
        loaded_store,
        queue_config=QueueConfig(daily_goal=10, mixed_due_ratio=0.7),
        clock=clock,
    )
