"""
SQLAlchemy models for the review state store.

Tables:
- items: registered memorization units with canonical ordering
- review_states: scheduling state per (learner, item)
- study_sessions: session records and end-of-session summaries
- study_results: append-only answer log
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, Float, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for recital tables."""


class ItemRecord(Base):
    """A registered item. Content lives outside the engine."""

    __tablename__ = "items"

    item_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (Index("idx_items_sequence", "sequence", "item_id"),)

    def __repr__(self) -> str:
        return f"<ItemRecord id={self.item_id} seq={self.sequence}>"


class ReviewStateRecord(Base):
    """SM-2 scheduling state, one row per learner x item."""

    __tablename__ = "review_states"

    learner_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    next_due_at: Mapped[datetime] = mapped_column(nullable=False)
    interval_days: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    repetition_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ease_factor: Mapped[float] = mapped_column(Float, default=2.5, nullable=False)
    consecutive_correct: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_studied_at: Mapped[datetime | None] = mapped_column()

    __table_args__ = (
        # Fast due-date queries per learner
        Index("idx_review_states_due", "learner_id", "next_due_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReviewStateRecord learner={self.learner_id} item={self.item_id} "
            f"due={self.next_due_at} ef={self.ease_factor}>"
        )


class StudySessionRecord(Base):
    """A study session and, once completed, its summary."""

    __tablename__ = "study_sessions"

    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    learner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    session_type: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column()
    items_studied: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    correct_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    average_response_seconds: Mapped[float | None] = mapped_column(Float)
    item_queue: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    __table_args__ = (Index("idx_study_sessions_learner", "learner_id", "started_at"),)


class StudyResultRecord(Base):
    """One answered item. Rows are never updated or deleted."""

    __tablename__ = "study_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    item_id: Mapped[str] = mapped_column(String(255), nullable=False)
    learner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    was_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    difficulty_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    response_seconds: Mapped[float | None] = mapped_column(Float)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("idx_study_results_learner", "learner_id", "recorded_at"),
        Index("idx_study_results_item", "learner_id", "item_id"),
    )
