"""
Lesson sequencing: the five-phase state machine of one lesson attempt.

context -> information -> practice -> assessment -> reward -> complete

Features:
- One advance handler per phase
- Context auto-advance on a cancellable timer
- Assessment retries with a forced, floor-score advance at the retry ceiling
- Lesson progress, rewards and achievements committed to the ProgressStore
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable, Literal, Optional

from ..adaptive.difficulty_adapter import DifficultyAdapter, LearnerProfile
from ..config import AssessmentConfig, LessonConfig, config
from ..evaluation.performance_tracker import PerformanceTracker, PhaseOutcome, SessionAnalytics
from ..exceptions import InvalidSessionState
from ..utils.progress import evaluate_achievements
from ..utils.scheduling import TimerHandle
from .assessment_session import GENERIC_HINT, AssessmentEngine, FinalResult, HintResult, SubmitOutcome
from .lesson_content import LessonCatalog, LessonContent

if TYPE_CHECKING:
    from ..progress_store import ProgressStore

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    CONTEXT = "context"
    INFORMATION = "information"
    PRACTICE = "practice"
    ASSESSMENT = "assessment"
    REWARD = "reward"


PHASE_ORDER: tuple[Phase, ...] = tuple(Phase)

AssessmentStatus = Literal["passed", "retry", "forced"]


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 100
    return int(math.floor(100 * part / whole + 0.5))


@dataclass
class LessonSession:
    """
    State of one lesson attempt. Discarded on completion or exit.

    Attributes:
        lesson_id: Lesson being played
        phase: Current phase
        phase_progress: Progress within the phase (0-100)
        attempts_on_current_phase: Failed assessment attempts so far
        hints_used_on_current_phase: Hints requested since entering the phase
        phase_entered_at: When the current phase (or assessment retry) began
    """

    lesson_id: str
    phase: Phase = Phase.CONTEXT
    phase_progress: float = 0
    attempts_on_current_phase: int = 0
    hints_used_on_current_phase: int = 0
    phase_entered_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    block_index: int = 0
    activity_index: int = 0
    dialogue_index: int = 0
    is_complete: bool = False
    is_exited: bool = False

    @property
    def phase_index(self) -> int:
        return PHASE_ORDER.index(self.phase)

    @property
    def is_active(self) -> bool:
        return not (self.is_complete or self.is_exited)


@dataclass(frozen=True)
class CompletionPayload:
    """Rewards committed when a lesson reaches its reward phase."""

    lesson_id: str
    score: float
    unlocked_page_id: str
    unlocked_area_id: Optional[str] = None
    achievements: tuple[str, ...] = ()
    forced_completion: bool = False


@dataclass(frozen=True)
class AssessmentOutcome:
    """Result of closing one assessment attempt."""

    status: AssessmentStatus
    result: FinalResult
    attempt: int
    analytics: Optional[SessionAnalytics] = field(default=None, compare=False)

    @property
    def passed(self) -> bool:
        return self.status == "passed"


class LessonSequencer:
    """
    Drives one lesson through its phases.

    Usage:
        sequencer = LessonSequencer(catalog.lesson("hieroglyphics"), store, catalog)
        sequencer.start()
        sequencer.advance_phase()  # context -> information
    """

    def __init__(
        self,
        lesson: LessonContent,
        store: ProgressStore,
        catalog: LessonCatalog,
        tracker: Optional[PerformanceTracker] = None,
        adapter: Optional[DifficultyAdapter] = None,
        user_id: str = "player",
        on_complete: Optional[Callable[[CompletionPayload], None]] = None,
        settings: Optional[LessonConfig] = None,
        assessment_settings: Optional[AssessmentConfig] = None,
        seed: Optional[int] = None,
    ):
        """
        Initialize a sequencer for one lesson attempt.

        Args:
            lesson: Lesson to play
            store: Progress store receiving progress and rewards
            catalog: Catalog used for achievement evaluation
            tracker: Performance tracker recording each assessment attempt
            adapter: Difficulty adapter shared by assessment engines
            user_id: Learner identifier
            on_complete: Called with the payload once the reward dialogue ends
            settings: Lesson settings (default: global config)
            assessment_settings: Settings for assessment engines and practice hints
            seed: Seed for assessment feedback selection
        """
        self.lesson = lesson
        self.store = store
        self.catalog = catalog
        self.tracker = tracker
        self.adapter = adapter or DifficultyAdapter()
        self.user_id = user_id
        self.on_complete = on_complete
        self.settings = settings or config.lesson
        self.assessment_settings = assessment_settings or config.assessment
        self.seed = seed
        self.scheduler = store.scheduler

        self.session = LessonSession(lesson_id=lesson.id)
        self.engine: Optional[AssessmentEngine] = None
        self.completion: Optional[CompletionPayload] = None

        self._phase_timer: Optional[TimerHandle] = None
        self._lock = threading.RLock()
        self._started = False
        self._advance_handlers: dict[Phase, Callable[[], None]] = {
            Phase.CONTEXT: self._advance_context,
            Phase.INFORMATION: self._advance_information,
            Phase.PRACTICE: self._advance_practice,
            Phase.ASSESSMENT: self._advance_assessment,
            Phase.REWARD: self._advance_reward,
        }

    # ==================== Lifecycle ====================

    def start(self) -> None:
        """Enter the context phase and arm its auto-advance timer."""
        with self._lock:
            if self._started:
                raise InvalidSessionState(f"Lesson {self.lesson.id} already started")
            self._started = True
            now = self.scheduler.now()
            self.session.started_at = now
            self.session.phase_entered_at = now
            self._arm_context_timer()
            logger.info("Lesson %s started", self.lesson.id)

    def exit(self) -> None:
        """Abandon the lesson. Rewards already committed are kept."""
        with self._lock:
            if not self.session.is_active:
                return
            self._cancel_timer()
            self.session.is_exited = True
            self.engine = None
            logger.info("Lesson %s exited during %s", self.lesson.id, self.session.phase.value)

    # ==================== Events ====================

    def advance_phase(self) -> Phase:
        """
        Learner-driven advance within or out of the current phase.

        Returns:
            The phase after advancing
        """
        with self._lock:
            self._require_active()
            self._advance_handlers[self.session.phase]()
            return self.session.phase

    def skip_information(self) -> Phase:
        with self._lock:
            self._require_phase(Phase.INFORMATION)
            self._enter(Phase.PRACTICE)
            return self.session.phase

    def complete_activity(self) -> Phase:
        """Mark the current practice activity done; the last one ends the phase."""
        with self._lock:
            self._require_phase(Phase.PRACTICE)
            activities = self.lesson.practice.activities
            self.session.activity_index += 1
            self.session.phase_progress = _percent(self.session.activity_index, len(activities))
            if self.session.activity_index >= len(activities):
                self._enter(Phase.ASSESSMENT)
            return self.session.phase

    def submit_answer(self, question_id: str, answer, time_spent_ms: int) -> SubmitOutcome:
        with self._lock:
            self._require_phase(Phase.ASSESSMENT)
            outcome = self.engine.submit_answer(question_id, answer, time_spent_ms)
            self.session.phase_progress = self.engine.progress_percent()
            return outcome

    def request_hint(self, question_id: Optional[str] = None) -> HintResult:
        """
        Hint for the current assessment question or practice activity.

        Raises:
            InvalidSessionState: Outside the practice and assessment phases
        """
        with self._lock:
            self._require_active()
            phase = self.session.phase

            if phase is Phase.ASSESSMENT:
                if question_id is None:
                    question = self.engine.current_question()
                    if question is None:
                        raise InvalidSessionState("No open question to hint")
                    question_id = question.id
                hint = self.engine.request_hint(question_id)
            elif phase is Phase.PRACTICE:
                hint = self._practice_hint()
            else:
                raise InvalidSessionState(f"No hints during the {phase.value} phase")

            self.session.hints_used_on_current_phase += 1
            return hint

    def finish_assessment(self) -> AssessmentOutcome:
        """
        Close the current assessment attempt.

        Passing moves to reward. Failing restarts the assessment until the
        retry ceiling, where the lesson advances with the passing score.
        """
        with self._lock:
            self._require_phase(Phase.ASSESSMENT)
            session = self.session
            attempt = session.attempts_on_current_phase + 1
            result = self.engine.finalize()

            if result.passed:
                status: AssessmentStatus = "passed"
            else:
                session.attempts_on_current_phase += 1
                if session.attempts_on_current_phase >= self.settings.max_assessment_attempts:
                    status = "forced"
                else:
                    status = "retry"

            analytics = None
            if self.tracker is not None:
                analytics = self.tracker.analytics(
                    self.engine.session, PhaseOutcome(attempt, status == "forced")
                )

            if status == "retry":
                logger.info(
                    "Assessment attempt %d for %s failed (score %d), retrying",
                    attempt,
                    self.lesson.id,
                    result.score,
                )
                self.engine = self._new_engine()
                session.phase_progress = 0
                session.phase_entered_at = self.scheduler.now()
            elif status == "forced":
                logger.info(
                    "Assessment retry ceiling reached for %s, awarding passing score", self.lesson.id
                )
                self._reward(self.lesson.assessment.passing_score, perfect=False, forced=True)
            else:
                self._reward(result.score, perfect=self._is_perfect(), forced=False)

            return AssessmentOutcome(status=status, result=result, attempt=attempt, analytics=analytics)

    # ==================== Queries ====================

    @property
    def current_phase(self) -> Phase:
        return self.session.phase

    @property
    def phase_progress_percent(self) -> float:
        return self.session.phase_progress

    def current_dialogue(self) -> Optional[str]:
        """Current reward dialogue line, or the first context line."""
        if self.session.phase is Phase.REWARD:
            lines = self.lesson.reward.dialogue
            index = self.session.dialogue_index
            return lines[index] if index < len(lines) else None
        if self.session.phase is Phase.CONTEXT and self.lesson.context.dialogue:
            return self.lesson.context.dialogue[0]
        return None

    def current_block(self):
        blocks = self.lesson.information.blocks
        if self.session.phase is not Phase.INFORMATION or self.session.block_index >= len(blocks):
            return None
        return blocks[self.session.block_index]

    def current_activity(self):
        activities = self.lesson.practice.activities
        if self.session.phase is not Phase.PRACTICE or self.session.activity_index >= len(activities):
            return None
        return activities[self.session.activity_index]

    # ==================== Phase handlers ====================

    def _advance_context(self) -> None:
        self._enter(Phase.INFORMATION)

    def _advance_information(self) -> None:
        blocks = self.lesson.information.blocks
        self.session.block_index += 1
        self.session.phase_progress = _percent(self.session.block_index, len(blocks))
        if self.session.block_index >= len(blocks):
            self._enter(Phase.PRACTICE)

    def _advance_practice(self) -> None:
        self.complete_activity()

    def _advance_assessment(self) -> None:
        self.finish_assessment()

    def _advance_reward(self) -> None:
        lines = self.lesson.reward.dialogue
        self.session.dialogue_index += 1
        self.session.phase_progress = _percent(self.session.dialogue_index, len(lines))
        if self.session.dialogue_index >= len(lines):
            self._complete()

    # ==================== Internals ====================

    def _require_active(self) -> None:
        if not self._started:
            raise InvalidSessionState(f"Lesson {self.lesson.id} has not started")
        if self.session.is_exited:
            raise InvalidSessionState(f"Lesson {self.lesson.id} was exited")
        if self.session.is_complete:
            raise InvalidSessionState(f"Lesson {self.lesson.id} is already complete")

    def _require_phase(self, phase: Phase) -> None:
        self._require_active()
        if self.session.phase is not phase:
            raise InvalidSessionState(
                f"Expected {phase.value} phase, lesson is in {self.session.phase.value}"
            )

    def _enter(self, phase: Phase) -> None:
        self._cancel_timer()
        session = self.session
        session.phase = phase
        session.phase_progress = 0
        session.attempts_on_current_phase = 0
        session.hints_used_on_current_phase = 0
        session.phase_entered_at = self.scheduler.now()
        logger.debug("Lesson %s entered %s", self.lesson.id, phase.value)

        # Replays never lower the progress of a completed lesson
        if self.lesson.id not in self.store.record["completed_lessons"]:
            self.store.update_lesson_progress(
                self.lesson.id, _percent(session.phase_index, len(PHASE_ORDER))
            )

        if phase is Phase.ASSESSMENT:
            self.engine = self._new_engine()

    def _new_engine(self) -> AssessmentEngine:
        history = self.tracker.history(self.user_id) if self.tracker is not None else ()
        return AssessmentEngine(
            lesson_id=self.lesson.id,
            questions=self.lesson.assessment.questions,
            passing_score=self.lesson.assessment.passing_score,
            user_id=self.user_id,
            adapter=self.adapter,
            profile=LearnerProfile.from_history(history),
            clock=self.scheduler.now,
            settings=self.assessment_settings,
            seed=self.seed,
        )

    def _is_perfect(self) -> bool:
        session = self.engine.session
        return session.correct_answers == session.total_questions and all(
            a.is_correct and a.attempt_number == 1 for a in session.attempts
        )

    def _reward(self, score: float, perfect: bool, forced: bool) -> None:
        self._enter(Phase.REWARD)
        reward = self.lesson.reward

        self.store.complete_lesson(self.lesson.id)
        self.store.collect_page(reward.journal_page_id)
        if reward.unlocks_area:
            self.store.unlock_area(reward.unlocks_area)

        achievements = evaluate_achievements(
            self.store.record, self.catalog, self.lesson.id, perfect=perfect
        )
        for achievement in achievements:
            self.store.earn_achievement(achievement)

        self.completion = CompletionPayload(
            lesson_id=self.lesson.id,
            score=score,
            unlocked_page_id=reward.journal_page_id,
            unlocked_area_id=reward.unlocks_area,
            achievements=tuple(achievements),
            forced_completion=forced,
        )
        logger.info("Lesson %s rewarded (score %s)", self.lesson.id, score)

        if not reward.dialogue:
            self._complete()

    def _complete(self) -> None:
        self._cancel_timer()
        self.session.is_complete = True
        self.session.phase_progress = 100
        logger.info("Lesson %s complete", self.lesson.id)
        if self.on_complete is not None and self.completion is not None:
            self.on_complete(self.completion)

    def _practice_hint(self) -> HintResult:
        activity = self.current_activity()
        hints = [activity.hint] if activity is not None and activity.hint else []
        hints.extend(self.lesson.practice.hints)
        if not hints:
            return HintResult(hint=GENERIC_HINT, level=1, is_last_hint=True)

        used = self.session.hints_used_on_current_phase
        index = min(used, len(hints) - 1)
        max_level = self.assessment_settings.max_hint_level
        return HintResult(
            hint=hints[index],
            level=min(used + 1, max_level),
            is_last_hint=index >= len(hints) - 1,
        )

    def _arm_context_timer(self) -> None:
        duration = self.lesson.context.duration_seconds
        if duration > 0:
            self._phase_timer = self.scheduler.call_later(duration, self._context_elapsed)

    def _context_elapsed(self) -> None:
        with self._lock:
            self._phase_timer = None
            if self.session.is_active and self.session.phase is Phase.CONTEXT:
                logger.debug("Context phase of %s timed out", self.lesson.id)
                self._enter(Phase.INFORMATION)

    def _cancel_timer(self) -> None:
        if self._phase_timer is not None:
            self._phase_timer.cancel()
            self._phase_timer = None
