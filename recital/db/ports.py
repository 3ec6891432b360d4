"""
Review State Store contract.

The engine never touches persistence directly; everything goes through an
object satisfying ReviewStateStore. Implementations raise StorageError (or
ConflictError) on failure and must not leave partial writes behind.

Implementations:
- InMemoryStateStore: dict-backed, for tests and embedding
- SqlStateStore: SQLAlchemy-backed, SQLite by default
"""

from __future__ import annotations

from collections.abc import Iterable
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Protocol

from recital.core.models import (
    HistoryFilter,
    Item,
    ReviewState,
    SessionSummary,
    StudyHistory,
    StudyResult,
    StudySession,
)


class ReviewStateStore(Protocol):
    """Protocol for durable per-(learner, item) scheduling storage."""

    # ---- Items ----------------------------------------------------------

    def register_items(self, items: Iterable[Item]) -> int:
        """Add or update items; returns how many were written."""
        ...

    def list_items(self) -> list[Item]:
        """All registered items ordered by (sequence, item_id)."""
        ...

    # ---- Review state ---------------------------------------------------

    def get_review_state(self, learner_id: str, item_id: str) -> ReviewState | None:
        """Get the state for a pair, or None before first exposure."""
        ...

    def upsert_review_state(self, state: ReviewState) -> None:
        """Insert or replace the state keyed by (learner_id, item_id)."""
        ...

    def get_due_items(
        self, learner_id: str, now: datetime, limit: int
    ) -> list[tuple[str, ReviewState]]:
        """Items with next_due_at <= now, most overdue first."""
        ...

    def get_unseen_items(self, learner_id: str, limit: int) -> list[str]:
        """Registered items without review state, by (sequence, item_id)."""
        ...

    def list_review_states(self, learner_id: str) -> list[ReviewState]:
        """All review states of a learner, ordered by item_id."""
        ...

    def count_due(self, learner_id: str, now: datetime) -> int:
        """Count items due at `now`."""
        ...

    def atomic(self, learner_id: str, item_id: str) -> AbstractContextManager[None]:
        """
        Scope a read-modify-write on one key.

        Writers on the same key are serialized; writes made inside the
        block commit together or not at all.
        """
        ...

    # ---- Results & sessions --------------------------------------------

    def append_study_result(self, result: StudyResult) -> None:
        """Append an immutable result record."""
        ...

    def create_session(self, session: StudySession) -> StudySession:
        """Persist a new session record."""
        ...

    def get_session(self, session_id: str) -> StudySession | None:
        """Load a session record, or None if unknown."""
        ...

    def finalize_session(self, session_id: str, summary: SessionSummary) -> None:
        """Mark a session completed with its end-of-session summary."""
        ...

    def query_history(
        self, learner_id: str, filters: HistoryFilter | None = None
    ) -> StudyHistory:
        """Sessions and results for a learner, oldest first."""
        ...
