"""
SM-2 Spaced Repetition Scheduler.

Computes the next ReviewState from a prior state and an observed outcome.
Pure and deterministic: no I/O, no clock reads. The caller passes `now`.

Difficulty Rating Scale:
1 - Very hard
2 - Hard
3 - Neutral (ease unchanged)
4 - Easy
5 - Very easy
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from loguru import logger

from recital.core.models import ReviewState
from recital.core.validation import require_identifier, require_rating

# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass(frozen=True)
class SM2Config:
    """Configuration for the SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    failure_penalty: float = 0.2  # Ease lost on an incorrect answer
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review
    maximum_interval: int = 36500  # Cap so next_due_at stays a valid datetime


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (round() goes to even)."""
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


class SM2Scheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    Each learner x item pair has:
    - Ease Factor (EF): How easy the item is (2.5 default, min 1.3)
    - Interval: Days until next review
    - Repetitions: Consecutive successful reviews since the last failure
    """

    def __init__(self, config: SM2Config | None = None):
        """
        Initialize SM-2 scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SM2Config()

    def advance(
        self,
        prior: ReviewState | None,
        was_correct: bool,
        difficulty_rating: int,
        now: datetime,
        learner_id: str | None = None,
        item_id: str | None = None,
    ) -> ReviewState:
        """
        Calculate the next review state for an outcome.

        Args:
            prior: Current state, or None on first exposure
            was_correct: Whether the learner recalled the item
            difficulty_rating: Self-reported difficulty (1-5)
            now: Time of the outcome
            learner_id: Required on first exposure
            item_id: Required on first exposure

        Returns:
            New ReviewState; `prior` is never modified

        Raises:
            ValidationError: rating outside 1..5 or missing identifiers
        """
        require_rating(difficulty_rating)

        if prior is None:
            return self._first_exposure(
                require_identifier("learner_id", learner_id),
                require_identifier("item_id", item_id),
                was_correct,
                now,
            )

        if was_correct:
            new_state = self._advance_correct(prior, difficulty_rating, now)
        else:
            new_state = self._advance_incorrect(prior, now)

        logger.debug(
            f"Advanced {prior.learner_id}/{prior.item_id}: correct={was_correct}, "
            f"rating={difficulty_rating}, interval={new_state.interval_days}d, "
            f"ef={new_state.ease_factor:.2f}"
        )
        return new_state

    def _first_exposure(
        self,
        learner_id: str,
        item_id: str,
        was_correct: bool,
        now: datetime,
    ) -> ReviewState:
        # Always schedule a near-term re-check, whatever the outcome
        return ReviewState(
            learner_id=learner_id,
            item_id=item_id,
            next_due_at=now + timedelta(days=self.config.first_interval),
            interval_days=self.config.first_interval,
            repetition_number=0,
            ease_factor=self.config.initial_easiness,
            consecutive_correct=1 if was_correct else 0,
            total_reviews=1,
            last_studied_at=now,
        )

    def _advance_correct(
        self,
        prior: ReviewState,
        rating: int,
        now: datetime,
    ) -> ReviewState:
        # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        ef_delta = 0.1 - (5 - rating) * (0.08 + (5 - rating) * 0.02)
        new_ef = max(self.config.minimum_easiness, prior.ease_factor + ef_delta)

        new_repetitions = prior.repetition_number + 1
        if new_repetitions == 1:
            new_interval = self.config.first_interval
        elif new_repetitions == 2:
            new_interval = self.config.second_interval
        else:
            new_interval = max(1, round_half_up(prior.interval_days * new_ef))
        new_interval = min(self.config.maximum_interval, new_interval)

        return replace(
            prior,
            next_due_at=now + timedelta(days=new_interval),
            interval_days=new_interval,
            repetition_number=new_repetitions,
            ease_factor=new_ef,
            consecutive_correct=prior.consecutive_correct + 1,
            total_reviews=prior.total_reviews + 1,
            last_studied_at=now,
        )

    def _advance_incorrect(self, prior: ReviewState, now: datetime) -> ReviewState:
        # Failed - reset to beginning
        new_ef = max(
            self.config.minimum_easiness,
            prior.ease_factor - self.config.failure_penalty,
        )
        return replace(
            prior,
            next_due_at=now + timedelta(days=self.config.first_interval),
            interval_days=self.config.first_interval,
            repetition_number=0,
            ease_factor=new_ef,
            consecutive_correct=0,
            total_reviews=prior.total_reviews + 1,
            last_studied_at=now,
        )

    def infer_difficulty_rating(
        self,
        was_correct: bool,
        response_seconds: float,
        expected_seconds: float = 10.0,
    ) -> int:
        """
        Convert a response to a difficulty rating.

        Args:
            was_correct: Whether the answer was correct
            response_seconds: Time taken to respond
            expected_seconds: Expected response time

        Returns:
            Rating 1-5
        """
        if not was_correct:
            # Quick wrong = almost knew it
            return 2 if response_seconds < expected_seconds * 0.5 else 1

        if response_seconds < expected_seconds * 0.5:
            return 5  # Quick and correct
        elif response_seconds < expected_seconds:
            return 4  # Correct with some hesitation
        else:
            return 3  # Correct but struggled
