"""
Core Module - Shared domain models and error types.

Components:
- models: ReviewState, StudySession, StudyResult and analytics records
- errors: RecitalError hierarchy
- validation: argument checks used before any state mutation

All engine modules (recital/db/, recital/delivery/) import shared concepts
from recital/core/ rather than redefining them.
"""

from recital.core.errors import (
    ConflictError,
    NotFoundError,
    RecitalError,
    StorageError,
    ValidationError,
)
from recital.core.models import (
    HistoryFilter,
    Item,
    ItemDifficulty,
    LearningAnalytics,
    MasteryBreakdown,
    MasteryLevel,
    ReviewState,
    SessionStatus,
    SessionSummary,
    SessionType,
    StudyHistory,
    StudyResult,
    StudySession,
)

__all__ = [
    # Errors
    "RecitalError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "ConflictError",
    # Models
    "Item",
    "ReviewState",
    "StudySession",
    "StudyResult",
    "SessionSummary",
    "SessionType",
    "SessionStatus",
    "MasteryLevel",
    "HistoryFilter",
    "StudyHistory",
    "ItemDifficulty",
    "MasteryBreakdown",
    "LearningAnalytics",
]
