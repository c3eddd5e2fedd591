"""
Utility modules for the Chronicles core.

This module contains utility functions:
- validation: JSON Schema validation with field-level repair
- persistence: key-value storage backends
- scheduling: cancellable timers, debouncing and repeating ticks
- progress: journal progress, achievements and play time formatting
"""

from .validation import (
    CatalogValidator,
    LearnerRecordValidator,
    ValidationResult,
    validate_catalog,
    validate_learner_record,
)
from .persistence import (
    FileStorage,
    KeyValueStorage,
    MemoryStorage,
    get_storage,
)
from .scheduling import (
    Debouncer,
    ManualScheduler,
    RepeatingTimer,
    Scheduler,
    ThreadingScheduler,
)
from .progress import (
    evaluate_achievements,
    format_play_time,
    journal_progress,
)

__all__ = [
    # Validation
    "CatalogValidator",
    "LearnerRecordValidator",
    "ValidationResult",
    "validate_catalog",
    "validate_learner_record",
    # Persistence
    "FileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "get_storage",
    # Scheduling
    "Debouncer",
    "ManualScheduler",
    "RepeatingTimer",
    "Scheduler",
    "ThreadingScheduler",
    # Progress
    "evaluate_achievements",
    "format_play_time",
    "journal_progress",
]
