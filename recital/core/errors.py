"""
Engine Error Types.

All errors raised by the engine derive from RecitalError so callers can
catch the whole family at their boundary:

- ValidationError: bad input, rejected before any state mutation
- NotFoundError: unknown session, or a session that is not active
- StorageError: the review state store failed a read or write
- ConflictError: concurrent first-insert on the same (learner, item) key
"""

from __future__ import annotations


class RecitalError(Exception):
    """Base class for engine errors."""


class ValidationError(RecitalError):
    """Raised when an argument fails validation."""


class NotFoundError(RecitalError):
    """Raised when a session is unknown or not in the required state."""


class StorageError(RecitalError):
    """Raised when the review state store fails an operation."""


class ConflictError(StorageError):
    """Raised when two writers race on the same review state key."""
