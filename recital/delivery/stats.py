"""
Stats Aggregator.

Read-only analytics computed on demand from session and result history:
- Study streak (consecutive days with a completed session)
- Success rate over a window
- Per-item difficulty (hardest items first)
- Mastery classification (new / learning / mastered)

Nothing here writes to the store. Empty history gives zero-valued stats.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from loguru import logger

from recital.core.models import (
    HistoryFilter,
    ItemDifficulty,
    LearningAnalytics,
    MasteryBreakdown,
    MasteryLevel,
    ReviewState,
    StudyResult,
)
from recital.core.validation import require_identifier, require_positive_limit
from recital.db.ports import ReviewStateStore


@dataclass(frozen=True)
class StatsConfig:
    """Thresholds for derived analytics."""

    min_reviews: int = 5  # Reviews before an item gets a difficulty score
    mastery_threshold: int = 3  # Correct streak that counts as mastered
    hardest_items_limit: int = 5


class StatsAggregator:
    """
    Computes learning analytics from stored history.

    Stateless beyond its store reference and config.
    """

    def __init__(
        self,
        store: ReviewStateStore,
        config: StatsConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.config = config or StatsConfig()
        self.clock = clock or datetime.now

    # =========================================================================
    # Streaks & Rates
    # =========================================================================

    def study_streak(self, learner_id: str, today: date | None = None) -> int:
        """
        Count consecutive days, ending today, with a completed session.

        A day without a completed session breaks the streak; if there is
        none today the streak is 0.
        """
        require_identifier("learner_id", learner_id)
        today = today or self.clock().date()

        history = self.store.query_history(learner_id, HistoryFilter(completed_only=True))
        study_days = {s.started_at.date() for s in history.sessions}

        streak = 0
        day = today
        while day in study_days:
            streak += 1
            day -= timedelta(days=1)
        return streak

    def success_rate(
        self,
        learner_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> float:
        """sum(correct) / sum(studied) over completed sessions in the window."""
        require_identifier("learner_id", learner_id)
        history = self.store.query_history(
            learner_id, HistoryFilter(since=since, until=until, completed_only=True)
        )
        studied = sum(s.items_studied for s in history.sessions)
        if studied == 0:
            return 0.0
        return sum(s.correct_count for s in history.sessions) / studied

    # =========================================================================
    # Item Difficulty
    # =========================================================================

    def item_difficulty(
        self,
        learner_id: str,
        min_reviews: int | None = None,
    ) -> list[ItemDifficulty]:
        """
        Score items with enough reviews, hardest (lowest success rate) first.

        Args:
            learner_id: Learner to analyze
            min_reviews: Minimum total_reviews (config default if None)
        """
        require_identifier("learner_id", learner_id)
        threshold = require_positive_limit(
            "min_reviews", self.config.min_reviews if min_reviews is None else min_reviews
        )

        eligible = {
            s.item_id for s in self.store.list_review_states(learner_id)
            if s.total_reviews >= threshold
        }
        if not eligible:
            return []

        by_item: defaultdict[str, list[StudyResult]] = defaultdict(list)
        for result in self.store.query_history(learner_id).results:
            if result.item_id in eligible:
                by_item[result.item_id].append(result)

        scores = []
        for item_id, results in by_item.items():
            correct = sum(1 for r in results if r.was_correct)
            scores.append(
                ItemDifficulty(
                    item_id=item_id,
                    review_count=len(results),
                    success_rate=correct / len(results),
                    avg_difficulty_rating=sum(r.difficulty_rating for r in results) / len(results),
                )
            )

        scores.sort(key=lambda d: (d.success_rate, d.item_id))
        return scores

    # =========================================================================
    # Mastery
    # =========================================================================

    def _level(self, state: ReviewState | None) -> MasteryLevel:
        if state is None:
            return MasteryLevel.NEW
        if state.consecutive_correct >= self.config.mastery_threshold:
            return MasteryLevel.MASTERED
        return MasteryLevel.LEARNING

    def classify(self, learner_id: str, item_id: str) -> MasteryLevel:
        """Classify one item as new, learning or mastered."""
        require_identifier("learner_id", learner_id)
        require_identifier("item_id", item_id)
        return self._level(self.store.get_review_state(learner_id, item_id))

    def mastery_breakdown(self, learner_id: str) -> MasteryBreakdown:
        """Count registered and studied items per mastery level."""
        require_identifier("learner_id", learner_id)
        states = {s.item_id: s for s in self.store.list_review_states(learner_id)}
        item_ids = {i.item_id for i in self.store.list_items()} | states.keys()

        breakdown = MasteryBreakdown()
        for item_id in item_ids:
            level = self._level(states.get(item_id))
            if level == MasteryLevel.MASTERED:
                breakdown.mastered += 1
            elif level == MasteryLevel.LEARNING:
                breakdown.learning += 1
            else:
                breakdown.new += 1
        return breakdown

    # =========================================================================
    # Aggregate
    # =========================================================================

    def get_stats(
        self,
        learner_id: str,
        window_days: int = 7,
        now: datetime | None = None,
    ) -> LearningAnalytics:
        """
        Build the analytics bundle for a learner.

        Args:
            learner_id: Learner to analyze
            window_days: Days, including today, covered by window totals
            now: Reference time (clock if None)
        """
        require_identifier("learner_id", learner_id)
        require_positive_limit("window_days", window_days)
        now = now or self.clock()

        window_end = now.date()
        window_start = window_end - timedelta(days=window_days - 1)
        since = datetime.combine(window_start, time.min)
        until = datetime.combine(window_end + timedelta(days=1), time.min)

        history = self.store.query_history(
            learner_id, HistoryFilter(since=since, until=until, completed_only=True)
        )
        items_studied = sum(s.items_studied for s in history.sessions)
        correct_count = sum(s.correct_count for s in history.sessions)

        window_results = self.store.query_history(
            learner_id, HistoryFilter(since=since, until=until)
        ).results
        timed = [r.response_seconds for r in window_results if r.response_seconds is not None]

        analytics = LearningAnalytics(
            learner_id=learner_id,
            window_start=window_start,
            window_end=window_end,
            study_streak_days=self.study_streak(learner_id, today=window_end),
            sessions_completed=len(history.sessions),
            items_studied=items_studied,
            correct_count=correct_count,
            success_rate=correct_count / items_studied if items_studied else 0.0,
            average_response_seconds=sum(timed) / len(timed) if timed else None,
            items_due=self.store.count_due(learner_id, now),
            mastery=self.mastery_breakdown(learner_id),
            hardest_items=self.item_difficulty(learner_id)[: self.config.hardest_items_limit],
        )

        logger.debug(
            f"Stats for {learner_id}: streak={analytics.study_streak_days}, "
            f"sessions={analytics.sessions_completed}, rate={analytics.success_rate:.2f}"
        )
        return analytics
