"""
Integration tests for SqlStateStore against in-memory SQLite.

Tests:
- Review state round trip and upsert
- Due and unseen item queries
- Session create / finalize / history filters
- atomic() commit and rollback
- Error translation to StorageError
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import event
from sqlalchemy.dialects import postgresql

from recital.core.errors import StorageError
from recital.core.models import (
    HistoryFilter,
    Item,
    ReviewState,
    SessionStatus,
    SessionSummary,
    SessionType,
    StudyResult,
    StudySession,
)
from recital.db.sql_store import SqlStateStore

NOW = datetime(2024, 3, 15, 9, 30)


@pytest.fixture
def sql_store():
    store = SqlStateStore("sqlite://")
    store.register_items(
        [Item("prufrock-line01", 1), Item("prufrock-line02", 2), Item("prufrock-line03", 3)]
    )
    yield store
    store.close()


def state(item_id, due, **kwargs):
    return ReviewState(learner_id="alice", item_id=item_id, next_due_at=due, **kwargs)


class TestReviewState:
    def test_missing_state_is_none(self, sql_store):
        assert sql_store.get_review_state("alice", "prufrock-line01") is None

    def test_upsert_round_trip(self, sql_store):
        original = state(
            "prufrock-line01",
            NOW,
            interval_days=6,
            repetition_number=2,
            ease_factor=2.36,
            consecutive_correct=2,
            total_reviews=3,
            last_studied_at=NOW - timedelta(days=6),
        )
        sql_store.upsert_review_state(original)

        assert sql_store.get_review_state("alice", "prufrock-line01") == original

    def test_upsert_replaces(self, sql_store):
        sql_store.upsert_review_state(state("prufrock-line01", NOW, total_reviews=1))
        sql_store.upsert_review_state(state("prufrock-line01", NOW, total_reviews=2))

        assert sql_store.get_review_state("alice", "prufrock-line01").total_reviews == 2
        assert len(sql_store.list_review_states("alice")) == 1

    def test_due_items_never_in_future(self, sql_store):
        sql_store.upsert_review_state(state("prufrock-line01", NOW - timedelta(days=2)))
        sql_store.upsert_review_state(state("prufrock-line02", NOW + timedelta(minutes=1)))
        sql_store.upsert_review_state(state("prufrock-line03", NOW - timedelta(days=5)))

        due = sql_store.get_due_items("alice", NOW, limit=10)

        assert [item_id for item_id, _ in due] == ["prufrock-line03", "prufrock-line01"]
        assert all(s.next_due_at <= NOW for _, s in due)
        assert sql_store.count_due("alice", NOW) == 2

    def test_unseen_items_in_sequence_order(self, sql_store):
        sql_store.upsert_review_state(state("prufrock-line01", NOW))
        # Another learner's progress does not hide items from alice
        sql_store.upsert_review_state(
            ReviewState(learner_id="bob", item_id="prufrock-line02", next_due_at=NOW)
        )

        assert sql_store.get_unseen_items("alice", limit=10) == ["prufrock-line02", "prufrock-line03"]
        assert sql_store.get_unseen_items("alice", limit=1) == ["prufrock-line02"]

    def test_register_items_updates_sequence(self, sql_store):
        sql_store.register_items([Item("prufrock-line03", 0)])
        assert sql_store.list_items()[0] == Item("prufrock-line03", 0)


class TestSessionsAndHistory:
    def test_session_lifecycle(self, sql_store):
        session = StudySession(
            session_id="s1",
            learner_id="alice",
            session_type=SessionType.FOCUSED,
            started_at=NOW,
            status=SessionStatus.ACTIVE,
            item_queue=["prufrock-line02", "prufrock-line01"],
        )
        sql_store.create_session(session)
        assert sql_store.get_session("s1") == session

        sql_store.finalize_session(
            "s1",
            SessionSummary(
                ended_at=NOW + timedelta(minutes=5),
                items_studied=2,
                correct_count=1,
                average_response_seconds=4.5,
            ),
        )

        stored = sql_store.get_session("s1")
        assert stored.status == SessionStatus.COMPLETED
        assert stored.items_studied == 2
        assert stored.average_response_seconds == 4.5
        assert stored.item_queue == ["prufrock-line02", "prufrock-line01"]

    def test_finalize_unknown_session(self, sql_store):
        summary = SessionSummary(ended_at=NOW, items_studied=0, correct_count=0, average_response_seconds=None)
        with pytest.raises(StorageError):
            sql_store.finalize_session("missing", summary)

    def test_history_filters(self, sql_store):
        for n, item_id in enumerate(["prufrock-line01", "prufrock-line02", "prufrock-line01"]):
            sql_store.append_study_result(
                StudyResult(
                    session_id="s1" if n < 2 else "s2",
                    item_id=item_id,
                    learner_id="alice",
                    was_correct=n != 1,
                    difficulty_rating=3,
                    recorded_at=NOW + timedelta(hours=n),
                )
            )

        everything = sql_store.query_history("alice")
        by_item = sql_store.query_history("alice", HistoryFilter(item_id="prufrock-line01"))
        by_session = sql_store.query_history("alice", HistoryFilter(session_id="s1"))
        recent = sql_store.query_history("alice", HistoryFilter(since=NOW + timedelta(minutes=30)))

        assert len(everything.results) == 3
        assert [r.recorded_at for r in everything.results] == sorted(r.recorded_at for r in everything.results)
        assert len(by_item.results) == 2
        assert len(by_session.results) == 2
        assert len(recent.results) == 2
        assert sql_store.query_history("bob").results == []


class TestAtomic:
    def test_atomic_commits_together(self, sql_store):
        with sql_store.atomic("alice", "prufrock-line01"):
            sql_store.upsert_review_state(state("prufrock-line01", NOW))
            sql_store.append_study_result(
                StudyResult("s1", "prufrock-line01", "alice", True, 4, NOW)
            )

        assert sql_store.get_review_state("alice", "prufrock-line01") is not None
        assert len(sql_store.query_history("alice").results) == 1

    def test_atomic_rolls_back_on_error(self, sql_store):
        with pytest.raises(RuntimeError):
            with sql_store.atomic("alice", "prufrock-line01"):
                sql_store.upsert_review_state(state("prufrock-line01", NOW))
                raise RuntimeError("boom")

        assert sql_store.get_review_state("alice", "prufrock-line01") is None

    def test_reads_inside_atomic_see_pending_writes(self, sql_store):
        with sql_store.atomic("alice", "prufrock-line01"):
            sql_store.upsert_review_state(state("prufrock-line01", NOW, total_reviews=4))
            assert sql_store.get_review_state("alice", "prufrock-line01").total_reviews == 4

    def test_nested_atomic_rejected(self, sql_store):
        with sql_store.atomic("alice", "prufrock-line01"):
            with pytest.raises(StorageError):
                with sql_store.atomic("alice", "prufrock-line02"):
                    pass


class TestErrorTranslation:
    def test_duplicate_session_is_storage_error(self, sql_store):
        session = StudySession("dup", "alice", SessionType.NEW, NOW, status=SessionStatus.ACTIVE)
        sql_store.create_session(session)

        with pytest.raises(StorageError):
            sql_store.create_session(session)


class TestRowLocking:
    @pytest.fixture
    def review_state_selects(self, sql_store):
        """Compile each review_states SELECT as PostgreSQL would see it."""
        seen = []

        def capture(orm_execute_state):
            if orm_execute_state.is_select:
                sql = str(orm_execute_state.statement.compile(dialect=postgresql.dialect()))
                if "FROM review_states" in sql:
                    seen.append(sql)

        event.listen(sql_store._session_factory, "do_orm_execute", capture)
        yield seen
        event.remove(sql_store._session_factory, "do_orm_execute", capture)

    def test_read_inside_atomic_locks_row(self, sql_store, review_state_selects):
        with sql_store.atomic("alice", "prufrock-line01"):
            sql_store.get_review_state("alice", "prufrock-line01")

        assert review_state_selects
        assert all("FOR UPDATE" in sql for sql in review_state_selects)

    def test_plain_read_takes_no_lock(self, sql_store, review_state_selects):
        sql_store.get_review_state("alice", "prufrock-line01")

        assert review_state_selects
        assert not any("FOR UPDATE" in sql for sql in review_state_selects)
