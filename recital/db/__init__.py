"""
Persistence for the scheduling engine.

Components:
- ReviewStateStore: the protocol the engine consumes
- InMemoryStateStore: dict-backed implementation
- SqlStateStore: SQLAlchemy implementation (SQLite by default)
"""

from .memory_store import InMemoryStateStore
from .ports import ReviewStateStore
from .sql_store import SqlStateStore

__all__ = [
    "ReviewStateStore",
    "InMemoryStateStore",
    "SqlStateStore",
]
