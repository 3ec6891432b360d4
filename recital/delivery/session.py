"""
Study Session Manager.

Governs the lifecycle of study sessions:

    CREATED -> ACTIVE -> COMPLETED

A session's queue is fixed when it starts; items that become due later are
not injected. Each submitted result advances the item's schedule inside a
single store transaction, and session counters move only after that
transaction commits.
"""

from __future__ import annotations

import threading
import uuid
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TypeVar

from loguru import logger

from recital.core.errors import NotFoundError, StorageError
from recital.core.models import (
    HistoryFilter,
    ReviewState,
    SessionStatus,
    SessionSummary,
    SessionType,
    StudyResult,
    StudySession,
)
from recital.core.validation import (
    require_identifier,
    require_rating,
    require_response_seconds,
)
from recital.db.ports import ReviewStateStore

from .queue_builder import QueueBuilder
from .scheduler import SM2Scheduler

T = TypeVar("T")


@dataclass
class _LiveSession:
    """In-memory state of an active session."""

    record: StudySession
    remaining: deque[str] = field(default_factory=deque)


class SessionManager:
    """
    Runs study sessions against a review state store.

    Storage failures are retried `retry_attempts` times (once by default)
    and then raised; nothing else is retried or swallowed.

    Active sessions are cached in memory until `end_session` is called. A
    session that is never ended stays cached for the life of the manager.
    Sessions active in the store but unknown to this manager (started by
    another process, or before a restart) are rebuilt on first use.
    """

    def __init__(
        self,
        store: ReviewStateStore,
        scheduler: SM2Scheduler | None = None,
        queue_builder: QueueBuilder | None = None,
        clock: Callable[[], datetime] | None = None,
        retry_attempts: int = 1,
    ):
        """
        Initialize the session manager.

        Args:
            store: Review state store
            scheduler: SM-2 scheduler (creates default if None)
            queue_builder: Queue builder (creates one over `store` if None)
            clock: Source of the current time (datetime.now if None)
            retry_attempts: Extra attempts for a failed storage operation
        """
        self.store = store
        self.scheduler = scheduler or SM2Scheduler()
        self.queue_builder = queue_builder or QueueBuilder(store)
        self.clock = clock or datetime.now
        self.retry_attempts = max(0, retry_attempts)

        self._live: dict[str, _LiveSession] = {}
        self._live_lock = threading.Lock()

    # =========================================================================
    # Storage retry
    # =========================================================================

    def _with_retry(self, operation: str, fn: Callable[[], T]) -> T:
        attempt = 0
        while True:
            try:
                return fn()
            except StorageError as e:
                if attempt >= self.retry_attempts:
                    logger.error(f"{operation} failed after {attempt + 1} attempt(s): {e}")
                    raise
                attempt += 1
                logger.warning(f"{operation} failed ({e}); retrying ({attempt}/{self.retry_attempts})")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_session(
        self,
        learner_id: str,
        session_type: SessionType | str,
        due_limit: int | None = None,
        new_limit: int | None = None,
        focus_items: Sequence[str] | None = None,
    ) -> StudySession:
        """
        Start a study session and fix its queue.

        Args:
            learner_id: Learner studying
            session_type: new, review, mixed or focused
            due_limit: Maximum due items (queue default if None)
            new_limit: Maximum new items (queue default if None)
            focus_items: Explicit items for focused sessions

        Returns:
            The ACTIVE StudySession
        """
        require_identifier("learner_id", learner_id)
        session_type = SessionType.parse(session_type)
        now = self.clock()

        record = StudySession(
            session_id=uuid.uuid4().hex,
            learner_id=learner_id,
            session_type=session_type,
            started_at=now,
        )

        queue = self._with_retry(
            "build_queue",
            lambda: self.queue_builder.build_queue(
                learner_id,
                session_type,
                due_limit=due_limit,
                new_limit=new_limit,
                now=now,
                focus_items=focus_items,
            ),
        )
        record.item_queue = list(queue)
        record.status = SessionStatus.ACTIVE

        self._with_retry("create_session", lambda: self.store.create_session(replace(record)))

        with self._live_lock:
            self._live[record.session_id] = _LiveSession(record=record, remaining=deque(queue))

        logger.info(
            f"Session {record.session_id} started: learner={learner_id}, "
            f"type={session_type.value}, items={len(queue)}"
        )
        return record

    def _restore(self, stored: StudySession) -> _LiveSession:
        """
        Rebuild an active session started by another manager or process.

        Counters come from the session's result history; items that already
        have a result are dropped from the remaining queue.
        """
        history = self._with_retry(
            "query_history",
            lambda: self.store.query_history(
                stored.learner_id, HistoryFilter(session_id=stored.session_id)
            ),
        )
        answered = {r.item_id for r in history.results}
        record = replace(
            stored,
            item_queue=list(stored.item_queue),
            items_studied=len(history.results),
            correct_count=sum(1 for r in history.results if r.was_correct),
        )
        restored = _LiveSession(
            record=record,
            remaining=deque(i for i in stored.item_queue if i not in answered),
        )

        with self._live_lock:
            live = self._live.setdefault(stored.session_id, restored)
        if live is restored:
            logger.info(
                f"Session {stored.session_id} restored from store: "
                f"{record.items_studied} results, {len(restored.remaining)} items left"
            )
        return live

    def _require_live(self, session_id: str) -> _LiveSession:
        require_identifier("session_id", session_id)
        with self._live_lock:
            live = self._live.get(session_id)
        if live is not None:
            return live

        stored = self._with_retry("get_session", lambda: self.store.get_session(session_id))
        if stored is None:
            raise NotFoundError(f"Unknown session: {session_id}")
        if stored.status != SessionStatus.ACTIVE:
            raise NotFoundError(
                f"Session {session_id} is not active (status={stored.status.value})"
            )
        return self._restore(stored)

    def get_next_item(self, session_id: str) -> str | None:
        """
        Take the next item from the session queue.

        Returns:
            Item ID, or None once the queue is exhausted
        """
        live = self._require_live(session_id)
        if not live.remaining:
            return None
        return live.remaining.popleft()

    def remaining_items(self, session_id: str) -> int:
        """Number of queued items not yet handed out."""
        return len(self._require_live(session_id).remaining)

    def submit_result(
        self,
        session_id: str,
        item_id: str,
        was_correct: bool,
        difficulty_rating: int,
        response_seconds: float | None = None,
    ) -> ReviewState:
        """
        Record an answer and advance the item's schedule.

        Submitting the same item twice records two results and advances
        the schedule twice; the engine does not deduplicate.

        Returns:
            The updated ReviewState

        Raises:
            NotFoundError: session unknown or not active
            ValidationError: bad rating, identifier or response time
            StorageError: the store failed after the retry
        """
        live = self._require_live(session_id)
        require_identifier("item_id", item_id)
        require_rating(difficulty_rating)
        response_seconds = require_response_seconds(response_seconds)

        learner_id = live.record.learner_id
        now = self.clock()
        result = StudyResult(
            session_id=session_id,
            item_id=item_id,
            learner_id=learner_id,
            was_correct=bool(was_correct),
            difficulty_rating=difficulty_rating,
            response_seconds=response_seconds,
            recorded_at=now,
        )

        def apply() -> ReviewState:
            with self.store.atomic(learner_id, item_id):
                prior = self.store.get_review_state(learner_id, item_id)
                new_state = self.scheduler.advance(
                    prior,
                    result.was_correct,
                    difficulty_rating,
                    now,
                    learner_id=learner_id,
                    item_id=item_id,
                )
                self.store.upsert_review_state(new_state)
                self.store.append_study_result(result)
            return new_state

        new_state = self._with_retry("submit_result", apply)

        # Counters only move once the transaction committed
        live.record.items_studied += 1
        if result.was_correct:
            live.record.correct_count += 1

        logger.debug(
            f"Session {session_id}: {item_id} correct={result.was_correct} "
            f"next_due={new_state.next_due_at:%Y-%m-%d}"
        )
        return new_state

    def end_session(self, session_id: str) -> StudySession:
        """
        Complete a session and write its summary.

        Ending a completed session returns the stored record unchanged.

        Raises:
            NotFoundError: unknown session
        """
        require_identifier("session_id", session_id)
        with self._live_lock:
            live = self._live.get(session_id)

        if live is None:
            stored = self._with_retry("get_session", lambda: self.store.get_session(session_id))
            if stored is None:
                raise NotFoundError(f"Unknown session: {session_id}")
            if stored.is_completed:
                return stored
            live = self._restore(stored)

        history = self._with_retry(
            "query_history",
            lambda: self.store.query_history(
                live.record.learner_id, HistoryFilter(session_id=session_id)
            ),
        )
        timed = [r.response_seconds for r in history.results if r.response_seconds is not None]
        average = sum(timed) / len(timed) if timed else None

        summary = SessionSummary(
            ended_at=self.clock(),
            items_studied=live.record.items_studied,
            correct_count=live.record.correct_count,
            average_response_seconds=average,
        )
        self._with_retry("finalize_session", lambda: self.store.finalize_session(session_id, summary))

        completed = replace(
            live.record,
            status=SessionStatus.COMPLETED,
            ended_at=summary.ended_at,
            items_studied=summary.items_studied,
            correct_count=summary.correct_count,
            average_response_seconds=summary.average_response_seconds,
        )
        with self._live_lock:
            self._live.pop(session_id, None)

        logger.info(
            f"Session {session_id} completed: {completed.items_studied} items, "
            f"accuracy {completed.accuracy * 100:.0f}%"
        )
        return completed

    def get_session(self, session_id: str) -> StudySession:
        """Get the live record of an active session, or the stored record."""
        require_identifier("session_id", session_id)
        with self._live_lock:
            live = self._live.get(session_id)
        if live is not None:
            return replace(live.record, item_queue=list(live.record.item_queue))

        stored = self._with_retry("get_session", lambda: self.store.get_session(session_id))
        if stored is None:
            raise NotFoundError(f"Unknown session: {session_id}")
        return stored
