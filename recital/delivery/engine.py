"""
Study Engine facade.

The API the surrounding application calls:

    engine = StudyEngine.from_settings()
    session_id = engine.start_session("learner-1", "mixed")
    while (item_id := engine.get_next_item(session_id)) is not None:
        engine.submit_result(session_id, item_id, True, 4, response_seconds=6.2)
    summary = engine.end_session(session_id)
    analytics = engine.get_stats("learner-1", window_days=7)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime

from config import Settings, get_settings
from recital.core.models import Item, LearningAnalytics, ReviewState, SessionType, StudySession
from recital.db.ports import ReviewStateStore
from recital.db.sql_store import SqlStateStore

from .queue_builder import QueueBuilder, QueueConfig
from .scheduler import SM2Scheduler
from .session import SessionManager
from .stats import StatsAggregator, StatsConfig


class StudyEngine:
    """Wires the scheduler, queue builder, sessions and stats to one store."""

    def __init__(
        self,
        store: ReviewStateStore,
        queue_config: QueueConfig | None = None,
        stats_config: StatsConfig | None = None,
        scheduler: SM2Scheduler | None = None,
        clock: Callable[[], datetime] | None = None,
        retry_attempts: int = 1,
    ):
        self.store = store
        self.clock = clock or datetime.now
        self.scheduler = scheduler or SM2Scheduler()
        self.queue_builder = QueueBuilder(store, queue_config)
        self.sessions = SessionManager(
            store,
            scheduler=self.scheduler,
            queue_builder=self.queue_builder,
            clock=self.clock,
            retry_attempts=retry_attempts,
        )
        self.stats = StatsAggregator(store, stats_config, clock=self.clock)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        store: ReviewStateStore | None = None,
    ) -> StudyEngine:
        """Build an engine from application settings."""
        settings = settings or get_settings()
        cfg = settings.get_engine_config()
        return cls(
            store=store or SqlStateStore(settings.database_url),
            queue_config=QueueConfig(**cfg["queue"]),
            stats_config=StatsConfig(**cfg["stats"]),
            retry_attempts=cfg["storage_retry_attempts"],
        )

    # =========================================================================
    # Caller-facing API
    # =========================================================================

    def register_items(self, items: Iterable[Item]) -> int:
        """Make items available for new-item selection."""
        return self.store.register_items(items)

    def start_session(
        self,
        learner_id: str,
        session_type: SessionType | str,
        due_limit: int | None = None,
        new_limit: int | None = None,
        focus_items: Sequence[str] | None = None,
    ) -> str:
        """Start a session and return its ID."""
        session = self.sessions.start_session(
            learner_id,
            session_type,
            due_limit=due_limit,
            new_limit=new_limit,
            focus_items=focus_items,
        )
        return session.session_id

    def get_next_item(self, session_id: str) -> str | None:
        return self.sessions.get_next_item(session_id)

    def submit_result(
        self,
        session_id: str,
        item_id: str,
        was_correct: bool,
        difficulty_rating: int,
        response_seconds: float | None = None,
    ) -> ReviewState:
        return self.sessions.submit_result(
            session_id, item_id, was_correct, difficulty_rating, response_seconds
        )

    def end_session(self, session_id: str) -> StudySession:
        return self.sessions.end_session(session_id)

    def get_stats(self, learner_id: str, window_days: int = 7) -> LearningAnalytics:
        return self.stats.get_stats(learner_id, window_days=window_days)

    def preview(self, learner_id: str, limit: int = 10) -> list[tuple[str, str]]:
        """Upcoming (item_id, "due" | "new") pairs for a mixed session."""
        return self.queue_builder.preview(learner_id, now=self.clock(), limit=limit)
