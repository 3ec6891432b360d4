"""
Unit tests for SM2Scheduler.

Tests:
- First-exposure seeding
- Correct answers: bootstrap intervals, ease adjustment, interval growth
- Incorrect answers: reset and ease penalty
- Rating validation (never clamped)
- Rating inference from response time
"""

import random
from datetime import datetime, timedelta

import pytest

from recital.core.errors import ValidationError
from recital.core.models import ReviewState
from recital.delivery.scheduler import SM2Config, SM2Scheduler

NOW = datetime(2024, 3, 15, 9, 30)


@pytest.fixture
def sm2():
    return SM2Scheduler()


def make_state(**overrides) -> ReviewState:
    values = {
        "learner_id": "alice",
        "item_id": "ozymandias-line01",
        "next_due_at": NOW,
        "interval_days": 1,
        "repetition_number": 0,
        "ease_factor": 2.5,
        "consecutive_correct": 0,
        "total_reviews": 1,
        "last_studied_at": NOW - timedelta(days=1),
    }
    values.update(overrides)
    return ReviewState(**values)


class TestFirstExposure:
    """First contact always seeds a one-day re-check."""

    def test_correct_first_exposure(self, sm2):
        state = sm2.advance(None, True, 4, NOW, learner_id="alice", item_id="line-1")

        assert state.learner_id == "alice"
        assert state.item_id == "line-1"
        assert state.interval_days == 1
        assert state.repetition_number == 0
        assert state.ease_factor == 2.5
        assert state.consecutive_correct == 1
        assert state.next_due_at == NOW + timedelta(days=1)
        assert state.total_reviews == 1
        assert state.last_studied_at == NOW

    def test_incorrect_first_exposure_still_scheduled(self, sm2):
        state = sm2.advance(None, False, 1, NOW, learner_id="alice", item_id="line-1")

        assert state.interval_days == 1
        assert state.consecutive_correct == 0
        assert state.ease_factor == 2.5
        assert state.next_due_at == NOW + timedelta(days=1)

    def test_first_exposure_requires_identifiers(self, sm2):
        with pytest.raises(ValidationError):
            sm2.advance(None, True, 4, NOW)


class TestCorrectAnswers:
    """Tests for the success branch."""

    def test_first_repetition_is_one_day(self, sm2):
        state = sm2.advance(make_state(repetition_number=0, interval_days=1), True, 4, NOW)

        assert state.repetition_number == 1
        assert state.interval_days == 1

    def test_second_repetition_is_six_days(self, sm2):
        state = sm2.advance(make_state(repetition_number=1, interval_days=1), True, 4, NOW)

        assert state.repetition_number == 2
        assert state.interval_days == 6
        assert state.next_due_at == NOW + timedelta(days=6)

    def test_third_repetition_multiplies_by_new_ease(self, sm2):
        prior = make_state(interval_days=6, repetition_number=2, ease_factor=2.5)

        state = sm2.advance(prior, True, 5, NOW)

        assert state.repetition_number == 3
        assert state.ease_factor == pytest.approx(2.6)
        assert state.ease_factor > 2.5
        assert state.interval_days == round(6 * state.ease_factor)  # 16
        assert state.next_due_at == NOW + timedelta(days=16)

    def test_rating_four_keeps_ease(self, sm2):
        state = sm2.advance(make_state(ease_factor=2.2, repetition_number=3), True, 4, NOW)
        assert state.ease_factor == pytest.approx(2.2)

    def test_low_ratings_shrink_ease(self, sm2):
        prior = make_state(ease_factor=2.5, repetition_number=3, interval_days=10)

        hard = sm2.advance(prior, True, 2, NOW)
        very_hard = sm2.advance(prior, True, 1, NOW)

        assert hard.ease_factor < 2.5
        assert very_hard.ease_factor < hard.ease_factor

    def test_ease_never_below_minimum(self, sm2):
        state = sm2.advance(make_state(ease_factor=1.35, repetition_number=4), True, 1, NOW)
        assert state.ease_factor == pytest.approx(1.3)

    def test_counters_increment(self, sm2):
        prior = make_state(consecutive_correct=2, total_reviews=7, repetition_number=2)

        state = sm2.advance(prior, True, 4, NOW)

        assert state.consecutive_correct == 3
        assert state.total_reviews == 8
        assert state.last_studied_at == NOW

    def test_prior_is_not_mutated(self, sm2):
        prior = make_state(repetition_number=2, interval_days=6)
        sm2.advance(prior, True, 5, NOW)
        assert prior.repetition_number == 2
        assert prior.interval_days == 6


class TestIncorrectAnswers:
    """Tests for the failure branch."""

    def test_failure_resets_schedule(self, sm2):
        prior = make_state(
            interval_days=15, repetition_number=4, ease_factor=2.1, consecutive_correct=4
        )

        state = sm2.advance(prior, False, 2, NOW)

        assert state.interval_days == 1
        assert state.repetition_number == 0
        assert state.consecutive_correct == 0
        assert state.ease_factor == pytest.approx(1.9)
        assert state.next_due_at == NOW + timedelta(days=1)
        assert state.total_reviews == prior.total_reviews + 1

    def test_failure_penalty_respects_floor(self, sm2):
        state = sm2.advance(make_state(ease_factor=1.4), False, 3, NOW)
        assert state.ease_factor == pytest.approx(1.3)

    def test_failure_ignores_rating_for_ease(self, sm2):
        prior = make_state(ease_factor=2.5, repetition_number=3)
        assert sm2.advance(prior, False, 5, NOW).ease_factor == pytest.approx(2.3)
        assert sm2.advance(prior, False, 1, NOW).ease_factor == pytest.approx(2.3)


class TestValidation:
    """Ratings outside 1..5 are rejected, never clamped."""

    @pytest.mark.parametrize("rating", [0, 6, -1, 10])
    def test_out_of_range_rating(self, sm2, rating):
        with pytest.raises(ValidationError):
            sm2.advance(make_state(), True, rating, NOW)

    @pytest.mark.parametrize("rating", [3.5, "4", None, True])
    def test_non_integer_rating(self, sm2, rating):
        with pytest.raises(ValidationError):
            sm2.advance(make_state(), True, rating, NOW)


class TestProperties:
    """Invariants over arbitrary outcome sequences."""

    def test_ease_and_interval_floors_hold(self, sm2):
        rng = random.Random(42)
        state = sm2.advance(None, True, 3, NOW, learner_id="alice", item_id="line-1")
        now = NOW

        for _ in range(500):
            now += timedelta(days=state.interval_days)
            state = sm2.advance(state, rng.random() < 0.6, rng.randint(1, 5), now)

            assert state.ease_factor >= 1.3
            assert state.interval_days >= 1
            if state.repetition_number == 0:
                assert state.consecutive_correct == 0

    def test_interval_non_decreasing_after_bootstrap(self, sm2):
        rng = random.Random(7)
        for _ in range(200):
            prior = make_state(
                interval_days=rng.randint(1, 200),
                repetition_number=rng.randint(2, 12),
                ease_factor=rng.uniform(1.3, 3.0),
            )
            state = sm2.advance(prior, True, rng.randint(3, 5), NOW)
            assert state.interval_days >= prior.interval_days

    def test_failure_always_resets(self, sm2):
        rng = random.Random(3)
        for _ in range(200):
            prior = make_state(
                interval_days=rng.randint(1, 365),
                repetition_number=rng.randint(0, 20),
                consecutive_correct=rng.randint(0, 20),
                ease_factor=rng.uniform(1.3, 3.5),
            )
            state = sm2.advance(prior, False, rng.randint(1, 5), NOW)

            assert state.interval_days == 1
            assert state.repetition_number == 0
            assert state.consecutive_correct == 0


class TestCustomConfig:
    def test_custom_bootstrap_intervals(self):
        sm2 = SM2Scheduler(SM2Config(first_interval=2, second_interval=5))
        state = sm2.advance(make_state(repetition_number=1), True, 4, NOW)
        assert state.interval_days == 5

    def test_custom_maximum_interval(self):
        sm2 = SM2Scheduler(SM2Config(maximum_interval=30))
        prior = make_state(interval_days=20, repetition_number=4, ease_factor=2.5)

        state = sm2.advance(prior, True, 5, NOW)

        assert state.interval_days == 30
        assert state.next_due_at == NOW + timedelta(days=30)


class TestIntervalRounding:
    def test_half_day_rounds_up(self, sm2):
        # 13 * 2.5 = 32.5
        prior = make_state(interval_days=13, repetition_number=3, ease_factor=2.5)

        state = sm2.advance(prior, True, 4, NOW)

        assert state.ease_factor == pytest.approx(2.5)
        assert state.interval_days == 33

    def test_even_half_also_rounds_up(self, sm2):
        # 5 * 2.5 = 12.5; round() would give 12
        prior = make_state(interval_days=5, repetition_number=3, ease_factor=2.5)
        assert sm2.advance(prior, True, 4, NOW).interval_days == 13


class TestLongCorrectStreaks:
    def test_interval_capped_on_long_streak(self, sm2):
        state = sm2.advance(None, True, 4, NOW, learner_id="alice", item_id="line-1")

        for _ in range(50):
            state = sm2.advance(state, True, 4, NOW)

        assert state.interval_days == SM2Config().maximum_interval
        assert state.next_due_at == NOW + timedelta(days=36500)
        assert state.consecutive_correct == 51

    def test_cap_holds_with_rising_ease(self, sm2):
        state = sm2.advance(None, True, 5, NOW, learner_id="alice", item_id="line-1")
        now = NOW

        for _ in range(30):
            state = sm2.advance(state, True, 5, now)
            assert state.interval_days <= 36500


class TestInferDifficultyRating:
    """Rating inference from correctness and speed."""

    @pytest.mark.parametrize(
        "was_correct,seconds,expected",
        [
            (True, 2.0, 5),
            (True, 7.0, 4),
            (True, 15.0, 3),
            (False, 2.0, 2),
            (False, 15.0, 1),
        ],
    )
    def test_infer(self, sm2, was_correct, seconds, expected):
        assert sm2.infer_difficulty_rating(was_correct, seconds, expected_seconds=10.0) == expected
