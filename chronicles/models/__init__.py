"""
Data models for lesson progression.

This module contains core data models:
- Learner record: default shape, mutations and the pure reducer
- Lesson content: frozen lesson, question and journal page definitions
- AssessmentEngine / AssessmentSession: one assessment phase
- LessonSequencer / LessonSession: one lesson attempt
"""

from .learner_record import Mutation, MutationKind, default_record, reduce
from .lesson_content import (
    AssessmentQuestion,
    JournalPage,
    LessonCatalog,
    LessonContent,
)
from .assessment_session import (
    AssessmentEngine,
    AssessmentSession,
    Attempt,
    FinalResult,
    HintResult,
    SubmitOutcome,
)
from .lesson_session import (
    AssessmentOutcome,
    CompletionPayload,
    LessonSequencer,
    LessonSession,
    Phase,
)

__all__ = [
    # Learner record
    "Mutation",
    "MutationKind",
    "default_record",
    "reduce",
    # Content
    "AssessmentQuestion",
    "JournalPage",
    "LessonCatalog",
    "LessonContent",
    # Assessment
    "AssessmentEngine",
    "AssessmentSession",
    "Attempt",
    "FinalResult",
    "HintResult",
    "SubmitOutcome",
    # Lesson flow
    "AssessmentOutcome",
    "CompletionPayload",
    "LessonSequencer",
    "LessonSession",
    "Phase",
]
