"""
SQL Review State Store.

SQLAlchemy implementation of ReviewStateStore. Defaults to a SQLite file
under ~/.recital/ but accepts any SQLAlchemy URL.

Every public method runs in its own transaction, except inside `atomic()`,
where all calls on the same thread share one session that commits when the
block exits cleanly and rolls back otherwise.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime

from loguru import logger
from sqlalchemy import Engine, Select, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from recital.core.errors import ConflictError, StorageError
from recital.core.models import (
    HistoryFilter,
    Item,
    ReviewState,
    SessionStatus,
    SessionSummary,
    SessionType,
    StudyHistory,
    StudyResult,
    StudySession,
)
from recital.db.database import build_engine, build_session_factory, init_db
from recital.db.locks import KeyLocks
from recital.db.models import (
    ItemRecord,
    ReviewStateRecord,
    StudyResultRecord,
    StudySessionRecord,
)

# =============================================================================
# Row mapping
# =============================================================================


def _state_from_row(row: ReviewStateRecord) -> ReviewState:
    return ReviewState(
        learner_id=row.learner_id,
        item_id=row.item_id,
        next_due_at=row.next_due_at,
        interval_days=row.interval_days,
        repetition_number=row.repetition_number,
        ease_factor=row.ease_factor,
        consecutive_correct=row.consecutive_correct,
        total_reviews=row.total_reviews,
        last_studied_at=row.last_studied_at,
    )


def _session_from_row(row: StudySessionRecord) -> StudySession:
    return StudySession(
        session_id=row.session_id,
        learner_id=row.learner_id,
        session_type=SessionType(row.session_type),
        status=SessionStatus(row.status),
        started_at=row.started_at,
        ended_at=row.ended_at,
        items_studied=row.items_studied,
        correct_count=row.correct_count,
        average_response_seconds=row.average_response_seconds,
        item_queue=list(row.item_queue or []),
    )


def _result_from_row(row: StudyResultRecord) -> StudyResult:
    return StudyResult(
        session_id=row.session_id,
        item_id=row.item_id,
        learner_id=row.learner_id,
        was_correct=row.was_correct,
        difficulty_rating=row.difficulty_rating,
        response_seconds=row.response_seconds,
        recorded_at=row.recorded_at,
    )


# =============================================================================
# Store
# =============================================================================


class SqlStateStore:
    """
    SQLAlchemy-backed persistence for the engine.

    Handles:
    - Item registry (items)
    - SM-2 state per learner x item (review_states)
    - Session records and the append-only result log
    """

    DEFAULT_DATABASE_URL = "sqlite:///~/.recital/state.db"

    def __init__(self, database_url: str | None = None, engine: Engine | None = None):
        """
        Initialize the store and create tables if needed.

        Args:
            database_url: SQLAlchemy URL (defaults to ~/.recital/state.db)
            engine: Pre-built engine; takes precedence over database_url
        """
        self.engine = engine or build_engine(database_url or self.DEFAULT_DATABASE_URL)
        self._session_factory = build_session_factory(self.engine)
        self._key_locks = KeyLocks()
        self._local = threading.local()

        try:
            init_db(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not initialize schema: {e}") from e

        logger.info(f"SqlStateStore initialized at {self.engine.url.render_as_string()}")

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope, reusing the atomic() session if open."""
        current: Session | None = getattr(self._local, "session", None)
        if current is not None:
            yield current
            return

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise ConflictError(f"Conflicting write: {e.orig}") from e
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Store operation failed: {e}") from e
        except Exception:  # Rollback on any error before re-raising
            session.rollback()
            raise
        finally:
            session.close()

    def _in_atomic(self) -> bool:
        return getattr(self._local, "session", None) is not None

    @contextmanager
    def atomic(self, learner_id: str, item_id: str) -> Iterator[None]:
        """
        Serialize writers on one key and run their calls in one transaction.

        Threads share a striped lock per key; other processes are held off by
        the row lock `get_review_state` takes inside the block.
        """
        if self._in_atomic():
            raise StorageError("Nested atomic() blocks are not supported")

        with self._key_locks.for_key((learner_id, item_id)):
            session = self._session_factory()
            self._local.session = session
            try:
                yield
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ConflictError(
                    f"Concurrent write on {learner_id}/{item_id}: {e.orig}"
                ) from e
            except SQLAlchemyError as e:
                session.rollback()
                raise StorageError(f"Transaction failed for {learner_id}/{item_id}: {e}") from e
            except Exception:
                session.rollback()
                raise
            finally:
                self._local.session = None
                session.close()

    # =========================================================================
    # Items
    # =========================================================================

    def register_items(self, items: Iterable[Item]) -> int:
        count = 0
        with self._session_scope() as session:
            for item in items:
                session.merge(ItemRecord(item_id=item.item_id, sequence=item.sequence))
                count += 1
        logger.debug(f"Registered {count} items")
        return count

    def list_items(self) -> list[Item]:
        """All registered items in canonical order."""
        with self._session_scope() as session:
            rows = session.scalars(
                select(ItemRecord).order_by(ItemRecord.sequence, ItemRecord.item_id)
            ).all()
            return [Item(item_id=r.item_id, sequence=r.sequence) for r in rows]

    # =========================================================================
    # Review State
    # =========================================================================

    def get_review_state(self, learner_id: str, item_id: str) -> ReviewState | None:
        with self._session_scope() as session:
            stmt = self._review_state_query(learner_id, item_id)
            if self._in_atomic():
                # Row lock so other processes wait for this read-modify-write
                stmt = stmt.with_for_update()
            row = session.scalars(stmt).one_or_none()
            return _state_from_row(row) if row else None

    @staticmethod
    def _review_state_query(learner_id: str, item_id: str) -> Select:
        return select(ReviewStateRecord).where(
            ReviewStateRecord.learner_id == learner_id,
            ReviewStateRecord.item_id == item_id,
        )

    def upsert_review_state(self, state: ReviewState) -> None:
        with self._session_scope() as session:
            row = session.get(ReviewStateRecord, (state.learner_id, state.item_id))
            if row is None:
                row = ReviewStateRecord(learner_id=state.learner_id, item_id=state.item_id)
                session.add(row)

            row.next_due_at = state.next_due_at
            row.interval_days = state.interval_days
            row.repetition_number = state.repetition_number
            row.ease_factor = state.ease_factor
            row.consecutive_correct = state.consecutive_correct
            row.total_reviews = state.total_reviews
            row.last_studied_at = state.last_studied_at
            session.flush()

    def get_due_items(
        self, learner_id: str, now: datetime, limit: int
    ) -> list[tuple[str, ReviewState]]:
        stmt = (
            select(ReviewStateRecord)
            .where(
                ReviewStateRecord.learner_id == learner_id,
                ReviewStateRecord.next_due_at <= now,
            )
            .order_by(ReviewStateRecord.next_due_at, ReviewStateRecord.item_id)
            .limit(limit)
        )
        with self._session_scope() as session:
            return [(row.item_id, _state_from_row(row)) for row in session.scalars(stmt)]

    def get_unseen_items(self, learner_id: str, limit: int) -> list[str]:
        stmt = (
            select(ItemRecord.item_id)
            .outerjoin(
                ReviewStateRecord,
                (ReviewStateRecord.item_id == ItemRecord.item_id)
                & (ReviewStateRecord.learner_id == learner_id),
            )
            .where(ReviewStateRecord.item_id.is_(None))
            .order_by(ItemRecord.sequence, ItemRecord.item_id)
            .limit(limit)
        )
        with self._session_scope() as session:
            return list(session.scalars(stmt))

    def list_review_states(self, learner_id: str) -> list[ReviewState]:
        stmt = (
            select(ReviewStateRecord)
            .where(ReviewStateRecord.learner_id == learner_id)
            .order_by(ReviewStateRecord.item_id)
        )
        with self._session_scope() as session:
            return [_state_from_row(row) for row in session.scalars(stmt)]

    def count_due(self, learner_id: str, now: datetime) -> int:
        stmt = select(func.count()).select_from(ReviewStateRecord).where(
            ReviewStateRecord.learner_id == learner_id,
            ReviewStateRecord.next_due_at <= now,
        )
        with self._session_scope() as session:
            return session.scalar(stmt) or 0

    # =========================================================================
    # Results & Sessions
    # =========================================================================

    def append_study_result(self, result: StudyResult) -> None:
        with self._session_scope() as session:
            session.add(
                StudyResultRecord(
                    session_id=result.session_id,
                    item_id=result.item_id,
                    learner_id=result.learner_id,
                    was_correct=result.was_correct,
                    difficulty_rating=result.difficulty_rating,
                    response_seconds=result.response_seconds,
                    recorded_at=result.recorded_at,
                )
            )
            session.flush()

    def create_session(self, session_record: StudySession) -> StudySession:
        with self._session_scope() as session:
            session.add(
                StudySessionRecord(
                    session_id=session_record.session_id,
                    learner_id=session_record.learner_id,
                    session_type=session_record.session_type.value,
                    status=session_record.status.value,
                    started_at=session_record.started_at,
                    ended_at=session_record.ended_at,
                    items_studied=session_record.items_studied,
                    correct_count=session_record.correct_count,
                    average_response_seconds=session_record.average_response_seconds,
                    item_queue=list(session_record.item_queue),
                )
            )
        return session_record

    def get_session(self, session_id: str) -> StudySession | None:
        with self._session_scope() as session:
            row = session.get(StudySessionRecord, session_id)
            return _session_from_row(row) if row else None

    def finalize_session(self, session_id: str, summary: SessionSummary) -> None:
        with self._session_scope() as session:
            row = session.get(StudySessionRecord, session_id)
            if row is None:
                raise StorageError(f"Cannot finalize unknown session: {session_id}")
            row.status = SessionStatus.COMPLETED.value
            row.ended_at = summary.ended_at
            row.items_studied = summary.items_studied
            row.correct_count = summary.correct_count
            row.average_response_seconds = summary.average_response_seconds

    def query_history(
        self, learner_id: str, filters: HistoryFilter | None = None
    ) -> StudyHistory:
        f = filters or HistoryFilter()

        session_stmt = select(StudySessionRecord).where(
            StudySessionRecord.learner_id == learner_id
        )
        if f.session_id is not None:
            session_stmt = session_stmt.where(StudySessionRecord.session_id == f.session_id)
        if f.completed_only:
            session_stmt = session_stmt.where(
                StudySessionRecord.status == SessionStatus.COMPLETED.value
            )
        if f.since is not None:
            session_stmt = session_stmt.where(StudySessionRecord.started_at >= f.since)
        if f.until is not None:
            session_stmt = session_stmt.where(StudySessionRecord.started_at < f.until)
        session_stmt = session_stmt.order_by(StudySessionRecord.started_at)

        result_stmt = select(StudyResultRecord).where(StudyResultRecord.learner_id == learner_id)
        if f.session_id is not None:
            result_stmt = result_stmt.where(StudyResultRecord.session_id == f.session_id)
        if f.item_id is not None:
            result_stmt = result_stmt.where(StudyResultRecord.item_id == f.item_id)
        if f.since is not None:
            result_stmt = result_stmt.where(StudyResultRecord.recorded_at >= f.since)
        if f.until is not None:
            result_stmt = result_stmt.where(StudyResultRecord.recorded_at < f.until)
        result_stmt = result_stmt.order_by(StudyResultRecord.recorded_at, StudyResultRecord.id)

        with self._session_scope() as session:
            return StudyHistory(
                sessions=[_session_from_row(r) for r in session.scalars(session_stmt)],
                results=[_result_from_row(r) for r in session.scalars(result_stmt)],
            )

    def close(self) -> None:
        """Dispose of the engine's connection pool."""
        self.engine.dispose()
