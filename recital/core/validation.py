"""Argument checks shared by the engine components."""

from __future__ import annotations

from .errors import ValidationError

MIN_RATING = 1
MAX_RATING = 5


def require_identifier(name: str, value: object) -> str:
    """Return `value` if it is a non-blank string identifier."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string, got {value!r}")
    return value


def require_rating(rating: object) -> int:
    """Return `rating` if it is an integer in 1..5. Never clamps."""
    # bool is an int subclass; True/False are not ratings
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError(f"difficulty_rating must be an integer, got {rating!r}")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(
            f"difficulty_rating must be between {MIN_RATING} and {MAX_RATING}, got {rating}"
        )
    return rating


def require_positive_limit(name: str, value: object) -> int:
    """Return `value` if it is an integer >= 1."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
    return value


def require_response_seconds(value: object) -> float | None:
    """Return `value` as a float if given; it must not be negative."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"response_seconds must be a number, got {value!r}")
    if value < 0:
        raise ValidationError(f"response_seconds must not be negative, got {value}")
    return float(value)
