"""
Chronicles learning core.

Progression state machine, adaptive assessment and durable progress store
for a story-driven learning game:
- ProgressStore: canonical learner record with idempotent mutations
- LessonSequencer: five-phase lesson flow with retries and rewards
- AssessmentEngine: answer evaluation, hints and scoring
- DifficultyAdapter: difficulty recommendations from recent attempts
- PerformanceTracker: mastery classification, insights and trends
- GameSession: event/query facade for the presentation layer
"""

from .config import config, configure_logging
from .exceptions import ContentError, InvalidSessionState, StorageError
from .models import (
    AssessmentEngine,
    AssessmentSession,
    LessonCatalog,
    LessonSequencer,
    Mutation,
    MutationKind,
    Phase,
)
from .adaptive import DifficultyAdapter, LearnerProfile
from .evaluation import PerformanceTracker
from .progress_store import LoadResult, ProgressStore, RecoveryOutcome
from .orchestrator import GameSession

__version__ = "1.0.0"

__all__ = [
    # Configuration
    "config",
    "configure_logging",
    # Errors
    "ContentError",
    "InvalidSessionState",
    "StorageError",
    # Core
    "AssessmentEngine",
    "AssessmentSession",
    "DifficultyAdapter",
    "GameSession",
    "LearnerProfile",
    "LessonCatalog",
    "LessonSequencer",
    "LoadResult",
    "Mutation",
    "MutationKind",
    "PerformanceTracker",
    "Phase",
    "ProgressStore",
    "RecoveryOutcome",
]
