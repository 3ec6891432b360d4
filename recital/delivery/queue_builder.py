"""
Queue Builder for study sessions.

Builds the ordered item queue for a session:
1. Due items (most overdue first) for spaced-repetition priority
2. New items in canonical order to fill the remaining quota
3. Focused sessions take an explicit item list and skip both
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from recital.core.errors import ValidationError
from recital.core.models import SessionType
from recital.core.validation import require_identifier, require_positive_limit
from recital.db.ports import ReviewStateStore


@dataclass(frozen=True)
class QueueConfig:
    """Configuration for queue composition."""

    daily_goal: int = 20  # Items per mixed session
    mixed_due_ratio: float = 0.7  # Share of a mixed session reserved for due items
    default_due_limit: int = 100
    default_new_limit: int = 20

    @property
    def mixed_due_cap(self) -> int:
        return round(self.daily_goal * self.mixed_due_ratio)


class QueueBuilder:
    """
    Selects which items a session will study.

    Key principles:
    1. Due items always come first
    2. New items fill remaining capacity
    3. Same inputs give the same queue
    """

    def __init__(self, store: ReviewStateStore, config: QueueConfig | None = None):
        """
        Initialize the queue builder.

        Args:
            store: Review state store to read due and unseen items from
            config: Queue configuration (uses defaults if None)
        """
        self.store = store
        self.config = config or QueueConfig()

    def build_queue(
        self,
        learner_id: str,
        session_type: SessionType | str,
        due_limit: int | None = None,
        new_limit: int | None = None,
        now: datetime | None = None,
        focus_items: Sequence[str] | None = None,
    ) -> list[str]:
        """
        Build an ordered list of item IDs for a session.

        Args:
            learner_id: Learner to build the queue for
            session_type: Queue policy to apply
            due_limit: Maximum due items (config default if None)
            new_limit: Maximum new items (config default if None)
            now: Reference time for due selection (defaults to datetime.now())
            focus_items: Explicit items for focused sessions

        Returns:
            Item IDs, due items before new items; may be empty

        Raises:
            ValidationError: bad identifiers, limits or session type
        """
        require_identifier("learner_id", learner_id)
        session_type = SessionType.parse(session_type)
        due_limit = require_positive_limit(
            "due_limit", self.config.default_due_limit if due_limit is None else due_limit
        )
        new_limit = require_positive_limit(
            "new_limit", self.config.default_new_limit if new_limit is None else new_limit
        )
        now = now or datetime.now()

        if session_type == SessionType.FOCUSED:
            queue = self._focused(focus_items)
        elif session_type == SessionType.REVIEW:
            queue = self._due(learner_id, now, due_limit)
        elif session_type == SessionType.NEW:
            queue = self._new(learner_id, new_limit)
        else:
            queue = self._mixed(learner_id, now, due_limit, new_limit)

        logger.debug(f"Built {session_type.value} queue for {learner_id}: {len(queue)} items")
        return queue

    def _due(self, learner_id: str, now: datetime, limit: int) -> list[str]:
        return [item_id for item_id, _ in self.store.get_due_items(learner_id, now, limit)]

    def _new(self, learner_id: str, limit: int) -> list[str]:
        return self.store.get_unseen_items(learner_id, limit)

    def _mixed(
        self,
        learner_id: str,
        now: datetime,
        due_limit: int,
        new_limit: int,
    ) -> list[str]:
        due_cap = min(due_limit, self.config.mixed_due_cap)
        due = self._due(learner_id, now, due_cap) if due_cap > 0 else []

        # New items fill whatever the due set left of the daily goal
        remaining = min(new_limit, self.config.daily_goal - len(due))
        new = self._new(learner_id, remaining) if remaining > 0 else []
        return due + new

    def _focused(self, focus_items: Sequence[str] | None) -> list[str]:
        if focus_items is None:
            raise ValidationError("Focused sessions require an explicit focus_items list")

        queue: list[str] = []
        seen: set[str] = set()
        for item_id in focus_items:
            require_identifier("item_id", item_id)
            if item_id not in seen:
                seen.add(item_id)
                queue.append(item_id)
        return queue

    def preview(
        self,
        learner_id: str,
        now: datetime | None = None,
        limit: int = 10,
    ) -> list[tuple[str, str]]:
        """
        Get a preview of the next mixed queue without starting a session.

        Returns:
            List of (item_id, status) tuples where status is "due" or "new"
        """
        now = now or datetime.now()
        queue = self.build_queue(learner_id, SessionType.MIXED, now=now)

        preview = []
        for item_id in queue[:limit]:
            state = self.store.get_review_state(learner_id, item_id)
            status = "due" if state is not None and state.is_due(now) else "new"
            preview.append((item_id, status))

        return preview
