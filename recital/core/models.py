"""
Core Domain Models.

Plain data structures shared by the scheduler, the queue builder, the
session manager, the stats aggregator and the stores. No I/O lives here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from .errors import ValidationError

# =============================================================================
# Enums
# =============================================================================


class SessionType(str, Enum):
    """Kind of study session; drives queue composition."""

    NEW = "new"
    REVIEW = "review"
    MIXED = "mixed"
    FOCUSED = "focused"

    @classmethod
    def parse(cls, value: SessionType | str) -> SessionType:
        """Coerce a string to a SessionType, raising ValidationError."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ValidationError(f"Unknown session type {value!r} (expected one of: {valid})")


class SessionStatus(str, Enum):
    """Session lifecycle: CREATED -> ACTIVE -> COMPLETED."""

    CREATED = "created"
    ACTIVE = "active"
    COMPLETED = "completed"


class MasteryLevel(str, Enum):
    """Per-item mastery classification for a learner."""

    NEW = "new"  # No review state yet
    LEARNING = "learning"  # Seen, streak below threshold
    MASTERED = "mastered"  # Streak at or above threshold


# =============================================================================
# Items & Review State
# =============================================================================


@dataclass(frozen=True)
class Item:
    """A memorizable unit. The engine only needs its identity and order."""

    item_id: str
    sequence: int = 0  # Canonical position, used to pick new items


@dataclass(frozen=True)
class ReviewState:
    """
    Scheduling state for one learner x item pair.

    Attributes:
        learner_id: Owner of the state.
        item_id: Item being scheduled.
        next_due_at: Item is eligible for review once now >= this.
        interval_days: Days until next due after a successful review (>= 1).
        repetition_number: Successful reviews since the last failure.
        ease_factor: Interval growth multiplier (>= 1.3).
        consecutive_correct: Current correct streak.
        total_reviews: Lifetime count of recorded outcomes.
        last_studied_at: Time of the most recent outcome.
    """

    learner_id: str
    item_id: str
    next_due_at: datetime
    interval_days: int = 1
    repetition_number: int = 0
    ease_factor: float = 2.5
    consecutive_correct: int = 0
    total_reviews: int = 0
    last_studied_at: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        """Check if this item is due for review at `now`."""
        return self.next_due_at <= now

    def days_overdue(self, now: datetime) -> int:
        """Whole days past the due date (0 when not yet due)."""
        return max(0, (now - self.next_due_at).days)


# =============================================================================
# Sessions & Results
# =============================================================================


@dataclass
class StudySession:
    """A bounded study interaction producing zero or more results."""

    session_id: str
    learner_id: str
    session_type: SessionType
    started_at: datetime
    status: SessionStatus = SessionStatus.CREATED
    ended_at: datetime | None = None
    items_studied: int = 0
    correct_count: int = 0
    average_response_seconds: float | None = None
    item_queue: list[str] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    @property
    def accuracy(self) -> float:
        """Fraction of correct answers (0.0 when nothing was studied)."""
        if self.items_studied == 0:
            return 0.0
        return self.correct_count / self.items_studied


@dataclass(frozen=True)
class SessionSummary:
    """Values written by the single end-of-session finalization."""

    ended_at: datetime
    items_studied: int
    correct_count: int
    average_response_seconds: float | None


@dataclass(frozen=True)
class StudyResult:
    """One answered item. Immutable and append-only."""

    session_id: str
    item_id: str
    learner_id: str
    was_correct: bool
    difficulty_rating: int  # 1 = very hard .. 5 = very easy
    recorded_at: datetime
    response_seconds: float | None = None


# =============================================================================
# History Queries
# =============================================================================


@dataclass(frozen=True)
class HistoryFilter:
    """Optional filters for ReviewStateStore.query_history."""

    since: datetime | None = None
    until: datetime | None = None
    item_id: str | None = None
    session_id: str | None = None
    completed_only: bool = False


@dataclass
class StudyHistory:
    """Sessions and results matching a history query."""

    sessions: list[StudySession] = field(default_factory=list)
    results: list[StudyResult] = field(default_factory=list)


# =============================================================================
# Analytics
# =============================================================================


@dataclass(frozen=True)
class ItemDifficulty:
    """Observed difficulty of one item for a learner."""

    item_id: str
    review_count: int
    success_rate: float
    avg_difficulty_rating: float


@dataclass
class MasteryBreakdown:
    """Counts of items per mastery level."""

    new: int = 0
    learning: int = 0
    mastered: int = 0

    @property
    def total(self) -> int:
        return self.new + self.learning + self.mastered


@dataclass
class LearningAnalytics:
    """Aggregate analytics for a learner over a window."""

    learner_id: str
    window_start: date
    window_end: date
    study_streak_days: int = 0
    sessions_completed: int = 0
    items_studied: int = 0
    correct_count: int = 0
    success_rate: float = 0.0
    average_response_seconds: float | None = None
    items_due: int = 0
    mastery: MasteryBreakdown = field(default_factory=MasteryBreakdown)
    hardest_items: list[ItemDifficulty] = field(default_factory=list)
