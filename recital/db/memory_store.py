"""
In-memory Review State Store.

Dict-backed implementation of ReviewStateStore. Useful for tests and for
embedding the engine in a process that handles persistence elsewhere.
Writes made inside `atomic()` are buffered and applied only when the block
exits cleanly.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime

from loguru import logger

from recital.core.errors import StorageError
from recital.core.models import (
    HistoryFilter,
    Item,
    ReviewState,
    SessionStatus,
    SessionSummary,
    StudyHistory,
    StudyResult,
    StudySession,
)
from recital.db.locks import KeyLocks

Key = tuple[str, str]


def _copy_session(session: StudySession) -> StudySession:
    return replace(session, item_queue=list(session.item_queue))


class _Transaction:
    """Writes buffered inside one atomic() block."""

    def __init__(self) -> None:
        self.states: dict[Key, ReviewState] = {}
        self.results: list[StudyResult] = []


class InMemoryStateStore:
    """
    Thread-safe dict-backed store.

    Handles:
    - Item registry with canonical ordering
    - Review state per (learner, item)
    - Append-only result log and session records
    """

    def __init__(self) -> None:
        self._items: dict[str, Item] = {}
        self._states: dict[Key, ReviewState] = {}
        self._results: list[StudyResult] = []
        self._sessions: dict[str, StudySession] = {}

        self._data_lock = threading.RLock()
        self._key_locks = KeyLocks()
        self._local = threading.local()

    # =========================================================================
    # Transactions
    # =========================================================================

    @property
    def _tx(self) -> _Transaction | None:
        return getattr(self._local, "tx", None)

    @contextmanager
    def atomic(self, learner_id: str, item_id: str) -> Iterator[None]:
        """Serialize writers on one key and buffer their writes."""
        if self._tx is not None:
            raise StorageError("Nested atomic() blocks are not supported")

        with self._key_locks.for_key((learner_id, item_id)):
            tx = _Transaction()
            self._local.tx = tx
            try:
                yield
            except BaseException:
                logger.debug(f"Rolling back transaction for {learner_id}/{item_id}")
                raise
            else:
                with self._data_lock:
                    self._states.update(tx.states)
                    self._results.extend(tx.results)
            finally:
                self._local.tx = None

    # =========================================================================
    # Items
    # =========================================================================

    def register_items(self, items: Iterable[Item]) -> int:
        count = 0
        with self._data_lock:
            for item in items:
                self._items[item.item_id] = item
                count += 1
        return count

    # =========================================================================
    # Review State
    # =========================================================================

    def get_review_state(self, learner_id: str, item_id: str) -> ReviewState | None:
        key = (learner_id, item_id)
        tx = self._tx
        if tx is not None and key in tx.states:
            return tx.states[key]
        with self._data_lock:
            return self._states.get(key)

    def upsert_review_state(self, state: ReviewState) -> None:
        key = (state.learner_id, state.item_id)
        tx = self._tx
        if tx is not None:
            tx.states[key] = state
            return
        with self._data_lock:
            self._states[key] = state

    def get_due_items(
        self, learner_id: str, now: datetime, limit: int
    ) -> list[tuple[str, ReviewState]]:
        with self._data_lock:
            due = [
                s for (lid, _), s in self._states.items()
                if lid == learner_id and s.next_due_at <= now
            ]
        due.sort(key=lambda s: (s.next_due_at, s.item_id))
        return [(s.item_id, s) for s in due[:limit]]

    def get_unseen_items(self, learner_id: str, limit: int) -> list[str]:
        with self._data_lock:
            seen = {iid for (lid, iid) in self._states if lid == learner_id}
            unseen = [i for i in self._items.values() if i.item_id not in seen]
        unseen.sort(key=lambda i: (i.sequence, i.item_id))
        return [i.item_id for i in unseen[:limit]]

    def list_review_states(self, learner_id: str) -> list[ReviewState]:
        with self._data_lock:
            states = [s for (lid, _), s in self._states.items() if lid == learner_id]
        return sorted(states, key=lambda s: s.item_id)

    def count_due(self, learner_id: str, now: datetime) -> int:
        with self._data_lock:
            return sum(
                1 for (lid, _), s in self._states.items()
                if lid == learner_id and s.next_due_at <= now
            )

    def list_items(self) -> list[Item]:
        """All registered items in canonical order."""
        with self._data_lock:
            return sorted(self._items.values(), key=lambda i: (i.sequence, i.item_id))

    # =========================================================================
    # Results & Sessions
    # =========================================================================

    def append_study_result(self, result: StudyResult) -> None:
        tx = self._tx
        if tx is not None:
            tx.results.append(result)
            return
        with self._data_lock:
            self._results.append(result)

    def create_session(self, session: StudySession) -> StudySession:
        with self._data_lock:
            if session.session_id in self._sessions:
                raise StorageError(f"Session already exists: {session.session_id}")
            self._sessions[session.session_id] = _copy_session(session)
        return session

    def get_session(self, session_id: str) -> StudySession | None:
        with self._data_lock:
            stored = self._sessions.get(session_id)
            return _copy_session(stored) if stored else None

    def finalize_session(self, session_id: str, summary: SessionSummary) -> None:
        with self._data_lock:
            stored = self._sessions.get(session_id)
            if stored is None:
                raise StorageError(f"Cannot finalize unknown session: {session_id}")
            self._sessions[session_id] = replace(
                stored,
                status=SessionStatus.COMPLETED,
                ended_at=summary.ended_at,
                items_studied=summary.items_studied,
                correct_count=summary.correct_count,
                average_response_seconds=summary.average_response_seconds,
            )

    def query_history(
        self, learner_id: str, filters: HistoryFilter | None = None
    ) -> StudyHistory:
        f = filters or HistoryFilter()

        with self._data_lock:
            sessions = [
                _copy_session(s) for s in self._sessions.values()
                if s.learner_id == learner_id
                and (f.session_id is None or s.session_id == f.session_id)
                and (not f.completed_only or s.status == SessionStatus.COMPLETED)
                and (f.since is None or s.started_at >= f.since)
                and (f.until is None or s.started_at < f.until)
            ]
            results = [
                r for r in self._results
                if r.learner_id == learner_id
                and (f.session_id is None or r.session_id == f.session_id)
                and (f.item_id is None or r.item_id == f.item_id)
                and (f.since is None or r.recorded_at >= f.since)
                and (f.until is None or r.recorded_at < f.until)
            ]

        sessions.sort(key=lambda s: s.started_at)
        results.sort(key=lambda r: r.recorded_at)
        return StudyHistory(sessions=sessions, results=results)
