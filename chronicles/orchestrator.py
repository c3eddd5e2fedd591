"""
Game Session Orchestrator

Single entry point for the presentation layer:
1. Persona and location selection
2. Lesson gating, opening and exiting
3. Phase advancement, answers and hints routed to the active lesson
4. Progress, journal, achievement and stats queries

The presentation layer only sends events and reads query results; all
decisions live in the store, the sequencer and the assessment engine.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .adaptive.difficulty_adapter import DifficultyAdapter
from .evaluation.performance_tracker import PerformanceTracker
from .exceptions import InvalidSessionState
from .models.assessment_session import HintResult, SubmitOutcome
from .models.lesson_content import LessonCatalog
from .models.lesson_session import AssessmentOutcome, CompletionPayload, LessonSequencer, Phase
from .progress_store import ProgressStore
from .utils.progress import (
    ACHIEVEMENTS,
    achievement_progress,
    format_play_time,
    journal_progress,
    total_progress,
)

logger = logging.getLogger(__name__)


class GameSession:
    """
    Facade over one learner's store, content and active lesson.

    Features:
    - Inbound events: persona, location, lesson flow, answers, hints, reset
    - Outbound queries: phase, progress, gating, journal, achievements, stats
    - At most one active lesson; opening another exits the current one

    Usage:
        game = GameSession(store, LessonCatalog.default())
        game.select_persona("A")
        game.open_lesson("hieroglyphics")
        game.advance_phase()
    """

    def __init__(
        self,
        store: ProgressStore,
        catalog: LessonCatalog,
        tracker: Optional[PerformanceTracker] = None,
        adapter: Optional[DifficultyAdapter] = None,
        learner_id: str = "player",
        on_lesson_complete: Optional[Callable[[CompletionPayload], None]] = None,
        seed: Optional[int] = None,
    ):
        """
        Initialize the game session.

        Args:
            store: Loaded progress store
            catalog: Static lesson content
            tracker: Performance tracker (default: new tracker on the store clock)
            adapter: Difficulty adapter shared by all lessons
            learner_id: Learner identifier used for analytics
            on_lesson_complete: Called when a lesson's reward dialogue ends
            seed: Seed for assessment feedback selection
        """
        self.store = store
        self.catalog = catalog
        self.tracker = tracker or PerformanceTracker(clock=store.scheduler.now)
        self.adapter = adapter or DifficultyAdapter()
        self.learner_id = learner_id
        self.on_lesson_complete = on_lesson_complete
        self.seed = seed

        self.lesson: Optional[LessonSequencer] = None
        self.completed_payloads: List[CompletionPayload] = []

    # ==================== Persona & Location ====================

    def select_persona(self, persona_id: str) -> dict:
        return self.store.select_persona(persona_id)

    def change_location(self, location_id: str) -> dict:
        return self.store.change_location(location_id)

    # ==================== Lesson Flow ====================

    def open_lesson(self, lesson_id: str) -> LessonSequencer:
        """
        Start a lesson, exiting any lesson still in progress.

        Raises:
            ContentError: If the lesson id is unknown
            InvalidSessionState: If the lesson's prerequisite is not completed
        """
        lesson = self.catalog.lesson(lesson_id)
        if not self.is_lesson_accessible(lesson_id):
            raise InvalidSessionState(
                f"Lesson {lesson_id} requires {lesson.prerequisite} to be completed first"
            )

        if self.lesson is not None and self.lesson.session.is_active:
            logger.info("Leaving %s to open %s", self.lesson.lesson.id, lesson_id)
            self.lesson.exit()

        self.lesson = LessonSequencer(
            lesson,
            self.store,
            self.catalog,
            tracker=self.tracker,
            adapter=self.adapter,
            user_id=self.learner_id,
            on_complete=self._lesson_completed,
            seed=self.seed,
        )
        self.lesson.start()
        return self.lesson

    def advance_phase(self) -> Phase:
        return self._active_lesson().advance_phase()

    def complete_activity(self) -> Phase:
        return self._active_lesson().complete_activity()

    def skip_information(self) -> Phase:
        return self._active_lesson().skip_information()

    def submit_answer(self, question_id: str, answer, time_spent_ms: int) -> SubmitOutcome:
        return self._active_lesson().submit_answer(question_id, answer, time_spent_ms)

    def request_hint(self, question_id: Optional[str] = None) -> HintResult:
        return self._active_lesson().request_hint(question_id)

    def finish_assessment(self) -> AssessmentOutcome:
        return self._active_lesson().finish_assessment()

    def exit_lesson(self) -> None:
        if self.lesson is not None:
            self.lesson.exit()
            self.lesson = None

    def reset_progress(self) -> bool:
        """Exit any lesson and wipe the save slot."""
        self.exit_lesson()
        return self.store.reset()

    # ==================== Queries ====================

    def current_phase(self) -> Optional[Phase]:
        if self.lesson is None or not self.lesson.session.is_active:
            return None
        return self.lesson.current_phase

    def phase_progress_percent(self) -> float:
        if self.lesson is None:
            return 0
        return self.lesson.phase_progress_percent

    def is_lesson_accessible(self, lesson_id: str) -> bool:
        return self.catalog.is_lesson_accessible(
            lesson_id, self.store.record["completed_lessons"]
        )

    def journal_progress(self) -> Dict[str, int]:
        return journal_progress(self.store.record, self.catalog)

    def achievements_unlocked(self) -> List[str]:
        return list(self.store.record["achievements"])

    def game_stats(self) -> Dict[str, Any]:
        """Summary for the stats screen."""
        record = self.store.record
        play_time = self.store.play_time_ms()
        minutes = play_time // 60_000

        return {
            "persona": record["selected_persona"],
            "location": record["current_location"],
            "progress": {
                "overall": total_progress(record, self.catalog),
                "completed_lessons": list(record["completed_lessons"]),
                "lesson_progress": dict(record["lesson_progress"]),
                "journal": journal_progress(record, self.catalog),
            },
            "play_time": {
                "total_ms": play_time,
                "formatted": format_play_time(play_time),
                "hours": minutes // 60,
                "minutes": minutes % 60,
            },
            "achievements": {
                "progress": achievement_progress(record),
                "count": len(record["achievements"]),
                "defined": len(ACHIEVEMENTS),
            },
            "save_info": {
                "last_saved_at": record["last_saved_at"],
                "schema_version": record["schema_version"],
                "is_corrupted": self.store.is_corrupted,
            },
        }

    # ==================== Internals ====================

    def _active_lesson(self) -> LessonSequencer:
        if self.lesson is None:
            raise InvalidSessionState("No lesson is open")
        return self.lesson

    def _lesson_completed(self, payload: CompletionPayload) -> None:
        self.completed_payloads.append(payload)
        if self.on_lesson_complete is not None:
            self.on_lesson_complete(payload)
