"""
Striped per-key locks.

A fixed pool of locks shared by hash, so memory stays bounded however many
(learner, item) keys a long-running process touches. Two keys may share a
stripe; that only adds contention, never deadlock, because atomic() blocks
do not nest.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable

DEFAULT_STRIPES = 64


class KeyLocks:
    """Maps any hashable key onto one of `stripes` locks."""

    def __init__(self, stripes: int = DEFAULT_STRIPES):
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._locks = tuple(threading.Lock() for _ in range(stripes))

    def __len__(self) -> int:
        return len(self._locks)

    def for_key(self, key: Hashable) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]
