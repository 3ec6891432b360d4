"""
Recital delivery: the spaced-repetition engine.

Components:
- SM2Scheduler: Spaced repetition algorithm
- QueueBuilder: Due/new item selection per session type
- SessionManager: Session lifecycle and result recording
- StatsAggregator: Streaks, success rates, difficulty, mastery
- StudyEngine: Caller-facing facade over the above
"""

from .engine import StudyEngine
from .queue_builder import QueueBuilder, QueueConfig
from .scheduler import SM2Config, SM2Scheduler
from .session import SessionManager
from .stats import StatsAggregator, StatsConfig

__all__ = [
    # Scheduling
    "SM2Scheduler",
    "SM2Config",
    "QueueBuilder",
    "QueueConfig",
    # Sessions
    "SessionManager",
    # Analytics
    "StatsAggregator",
    "StatsConfig",
    # Facade
    "StudyEngine",
]
