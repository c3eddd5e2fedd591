"""
Assessment sub-session: answer evaluation, escalating hints, scoring.

Implements one assessment phase of a lesson attempt:
- Exact-match evaluation against a single answer or an unordered answer set
- Feedback that escalates across retries (encouragement, then hints)
- Hints with three levels of specificity
- Difficulty adaptation from a rolling window of attempts
- Final score and pass/fail with non-punitive failure feedback
"""

from __future__ import annotations

import logging
import math
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence

from ..adaptive.difficulty_adapter import DifficultyAdapter, DifficultyRecommendation, LearnerProfile
from ..config import AssessmentConfig, config
from ..exceptions import InvalidSessionState
from ..utils.scheduling import utc_now
from .lesson_content import DIFFICULTY_ORDER, Answer, AssessmentQuestion

logger = logging.getLogger(__name__)

FeedbackTier = Literal["success", "almost", "encouraging"]

POSITIVE_MESSAGES = (
    "Excellent! You've got it!",
    "Perfect! You understand this concept well!",
    "Great job! That's exactly right!",
    "Wonderful! You're really learning!",
)

PASSING_MESSAGES = (
    "Outstanding work! You've mastered this lesson!",
    "Excellent! You really understand these concepts!",
    "Fantastic job! You're ready to apply this knowledge!",
    "Wonderful! You've shown great understanding!",
)

ENCOURAGING_MESSAGES = (
    "You're learning so much! Every attempt helps you understand better.",
    "Great effort! Learning takes practice, and you're doing wonderfully.",
    "You're on the right track! Keep exploring and asking questions.",
    "Excellent persistence! You're building important knowledge.",
)

DEFAULT_ENCOURAGEMENT = "That's an interesting choice! Let's think about this differently."
GENERIC_HINT = "You're doing great! Take your time and think about what you've learned."


def percent(part: float, whole: float) -> int:
    """Percentage rounded half up."""
    if whole <= 0:
        return 0
    return int(math.floor(100 * part / whole + 0.5))


@dataclass(frozen=True)
class Attempt:
    """
    One recorded answer submission. Never modified after recording.

    Attributes:
        question_id: Question answered
        selected_answer: Answer given (string or tuple of strings)
        is_correct: Whether the answer matched
        time_spent_ms: Time the learner took
        hints_used: Hints requested for this question before submitting
        attempt_number: 1 for the first submission on this question
        timestamp: When the submission was recorded
    """

    question_id: str
    selected_answer: Answer
    is_correct: bool
    time_spent_ms: int
    hints_used: int
    attempt_number: int
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        answer = self.selected_answer
        return {
            "question_id": self.question_id,
            "selected_answer": list(answer) if isinstance(answer, tuple) else answer,
            "is_correct": self.is_correct,
            "time_spent_ms": self.time_spent_ms,
            "hints_used": self.hints_used,
            "attempt_number": self.attempt_number,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class SubmitOutcome:
    is_correct: bool
    feedback: str
    feedback_tier: FeedbackTier
    should_advance: bool
    show_hint: bool = False
    hint_level: Optional[int] = None
    difficulty_change: Optional[DifficultyRecommendation] = None


@dataclass(frozen=True)
class HintResult:
    hint: str
    level: int
    is_last_hint: bool


@dataclass(frozen=True)
class FinalResult:
    score: int
    passed: bool
    feedback: str
    encouragement: str


@dataclass
class AssessmentSession:
    """
    State of one assessment phase.

    Owned by AssessmentEngine; readers must treat it as read-only.
    """

    lesson_id: str
    questions: List[AssessmentQuestion]
    passing_score: float
    max_attempts_per_question: int = field(
        default_factory=lambda: config.assessment.max_attempts_per_question
    )  # Submissions allowed per question
    session_id: str = field(default_factory=lambda: f"assessment-{uuid.uuid4()}")
    user_id: str = "player"
    attempts: List[Attempt] = field(default_factory=list)
    hints_by_question: Dict[str, int] = field(default_factory=dict)
    total_hints_used: int = 0
    initial_difficulty: str = "medium"
    current_difficulty: str = "medium"
    difficulty_adjustments: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    score: int = 0
    passed: bool = False
    is_complete: bool = False

    @property
    def accuracy(self) -> float:
        """Share of attempts that were correct (0 when nothing was submitted)."""
        if not self.attempts:
            return 0.0
        return sum(1 for a in self.attempts if a.is_correct) / len(self.attempts)

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def correct_answers(self) -> int:
        return len({a.question_id for a in self.attempts if a.is_correct})

    @property
    def current_index(self) -> int:
        """Position of the first open question in the current order."""
        for index, question in enumerate(self.questions):
            if self.is_open(question.id):
                return index
        return len(self.questions)

    def question(self, question_id: str) -> Optional[AssessmentQuestion]:
        return next((q for q in self.questions if q.id == question_id), None)

    def attempts_for(self, question_id: str) -> List[Attempt]:
        return [a for a in self.attempts if a.question_id == question_id]

    def is_answered_correctly(self, question_id: str) -> bool:
        return any(a.is_correct for a in self.attempts_for(question_id))

    def is_open(self, question_id: str) -> bool:
        """A question stays open until answered correctly or out of attempts."""
        if self.is_answered_correctly(question_id):
            return False
        return len(self.attempts_for(question_id)) < self.max_attempts_per_question

    def to_dict(self) -> Dict[str, Any]:
        """Convert session to dictionary for reporting."""
        return {
            "session_id": self.session_id,
            "lesson_id": self.lesson_id,
            "user_id": self.user_id,
            "question_ids": [q.id for q in self.questions],
            "attempts": [a.to_dict() for a in self.attempts],
            "current_index": self.current_index,
            "total_hints_used": self.total_hints_used,
            "initial_difficulty": self.initial_difficulty,
            "current_difficulty": self.current_difficulty,
            "difficulty_adjustments": list(self.difficulty_adjustments),
            "accuracy": self.accuracy,
            "score": self.score,
            "passing_score": self.passing_score,
            "passed": self.passed,
            "is_complete": self.is_complete,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


class AssessmentEngine:
    """
    Runs one assessment session.

    Features:
    - Answer evaluation with escalating, non-punitive feedback
    - Per-question hint tracking
    - Difficulty adaptation with a confidence gate
    - Final scoring

    Usage:
        engine = AssessmentEngine("hieroglyphics", lesson.assessment.questions, 67)
        outcome = engine.submit_answer("q1", "Eye or to see", 12_000)
        result = engine.finalize()
    """

    def __init__(
        self,
        lesson_id: str,
        questions: Sequence[AssessmentQuestion],
        passing_score: Optional[float] = None,
        user_id: str = "player",
        adapter: Optional[DifficultyAdapter] = None,
        profile: Optional[LearnerProfile] = None,
        initial_difficulty: str = "medium",
        settings: Optional[AssessmentConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        seed: Optional[int] = None,
    ):
        """
        Initialize an assessment session.

        Args:
            lesson_id: Lesson being assessed
            questions: Questions in their initial order
            passing_score: Score needed to pass (default: LessonConfig default)
            user_id: Learner identifier
            adapter: Difficulty adapter (default: new DifficultyAdapter)
            profile: Learner profile for fine-tuning (default: all-medium)
            initial_difficulty: Starting difficulty band
            settings: Assessment settings (default: global config)
            clock: Time source (default: UTC wall clock)
            seed: Seed for feedback message selection
        """
        if not questions:
            raise ValueError("An assessment needs at least one question")
        if initial_difficulty not in DIFFICULTY_ORDER:
            raise ValueError(f"Unknown difficulty: {initial_difficulty}")

        self.settings = settings or config.assessment
        self.adapter = adapter or DifficultyAdapter()
        self.profile = profile or LearnerProfile()
        self._clock = clock or utc_now
        self._rng = random.Random(seed if seed is not None else self.settings.random_seed)
        self._pending_direction: Optional[str] = None

        self.session = AssessmentSession(
            lesson_id=lesson_id,
            questions=list(questions),
            passing_score=(
                passing_score if passing_score is not None else config.lesson.default_passing_score
            ),
            max_attempts_per_question=self.settings.max_attempts_per_question,
            user_id=user_id,
            initial_difficulty=initial_difficulty,
            current_difficulty=initial_difficulty,
            started_at=self._clock(),
        )

    # ==================== Answers ====================

    def submit_answer(
        self, question_id: str, answer: Answer | list[str], time_spent_ms: int
    ) -> SubmitOutcome:
        """
        Record an answer and produce feedback.

        Args:
            question_id: Question being answered
            answer: A single answer or a collection of selected answers
            time_spent_ms: Time spent on this submission

        Returns:
            SubmitOutcome

        Raises:
            InvalidSessionState: If the session is finalized, the question is
                unknown, already answered correctly, or out of attempts
        """
        self._require_active()
        question = self._require_question(question_id)

        if self.session.is_answered_correctly(question_id):
            raise InvalidSessionState(f"Question {question_id} was already answered correctly")
        if not self.can_retry(question_id):
            raise InvalidSessionState(f"Question {question_id} has no attempts left")
        if time_spent_ms < 0:
            raise ValueError(f"Time spent cannot be negative: {time_spent_ms}")

        selected = tuple(answer) if isinstance(answer, (list, tuple, set, frozenset)) else answer
        is_correct = self.evaluate(question, selected)
        attempt_number = len(self.session.attempts_for(question_id)) + 1

        self.session.attempts.append(
            Attempt(
                question_id=question_id,
                selected_answer=selected,
                is_correct=is_correct,
                time_spent_ms=int(time_spent_ms),
                hints_used=self.session.hints_by_question.get(question_id, 0),
                attempt_number=attempt_number,
                timestamp=self._clock(),
            )
        )

        difficulty_change = self._adapt_difficulty()

        if is_correct:
            return SubmitOutcome(
                is_correct=True,
                feedback=self._positive_feedback(question, attempt_number),
                feedback_tier="success",
                should_advance=True,
                difficulty_change=difficulty_change,
            )

        out_of_attempts = attempt_number >= self.session.max_attempts_per_question
        message, tier, hint_level = self._adaptive_feedback(question, selected, attempt_number)
        return SubmitOutcome(
            is_correct=False,
            feedback=message,
            feedback_tier=tier,
            should_advance=out_of_attempts,
            show_hint=hint_level is not None,
            hint_level=hint_level,
            difficulty_change=difficulty_change,
        )

    @staticmethod
    def evaluate(question: AssessmentQuestion, selected: Answer) -> bool:
        """Exact match; answer sets are unordered and must match with no extras."""
        expected = question.correct_answer
        if isinstance(expected, tuple):
            if isinstance(selected, tuple):
                return set(selected) == set(expected)
            return len(set(expected)) == 1 and selected == expected[0]
        if isinstance(selected, tuple):
            return set(selected) == {expected}
        return selected == expected

    @staticmethod
    def is_almost_correct(question: AssessmentQuestion, selected: Answer) -> bool:
        """Word overlap heuristic for single-choice answers."""
        if question.type != "multiple-choice" or not isinstance(selected, str):
            return False
        expected = question.correct_answer
        expected = expected[0] if isinstance(expected, tuple) else expected
        chosen_words = selected.lower().split()
        expected_words = expected.lower().split()
        return any(
            word in correct_word or correct_word in word
            for word in chosen_words
            for correct_word in expected_words
        )

    # ==================== Hints ====================

    def request_hint(self, question_id: str) -> HintResult:
        """
        Issue the next hint for a question.

        Levels escalate 1..3; beyond the last level a generic encouragement
        is repeated.

        Raises:
            InvalidSessionState: If the session is finalized or the question unknown
        """
        self._require_active()
        question = self._require_question(question_id)

        used = self.session.hints_by_question.get(question_id, 0)
        self.session.hints_by_question[question_id] = used + 1
        self.session.total_hints_used += 1

        max_level = self.settings.max_hint_level
        level = min(used + 1, max_level)
        if used + 1 > max_level:
            hint = GENERIC_HINT
        else:
            hint = question.hints.at(level) or GENERIC_HINT

        logger.debug("Hint level %d issued for %s/%s", level, self.session.lesson_id, question_id)
        return HintResult(hint=hint, level=level, is_last_hint=level >= max_level)

    # ==================== Completion ====================

    def finalize(self) -> FinalResult:
        """
        Compute the final score and close the session.

        Unanswered questions count as incorrect.

        Raises:
            InvalidSessionState: If the session was already finalized
        """
        self._require_active()
        session = self.session

        session.score = percent(session.correct_answers, session.total_questions)
        session.passed = session.score >= session.passing_score
        session.ended_at = self._clock()
        session.is_complete = True

        feedback = self._rng.choice(PASSING_MESSAGES if session.passed else ENCOURAGING_MESSAGES)
        logger.info(
            "Assessment %s for %s finished: score=%d passed=%s",
            session.session_id,
            session.lesson_id,
            session.score,
            session.passed,
        )
        return FinalResult(
            score=session.score,
            passed=session.passed,
            feedback=feedback,
            encouragement=self._personalized_encouragement(),
        )

    # ==================== Queries ====================

    def current_question(self) -> Optional[AssessmentQuestion]:
        index = self.session.current_index
        if index >= len(self.session.questions):
            return None
        return self.session.questions[index]

    def progress_percent(self) -> int:
        return percent(self.session.current_index, self.session.total_questions)

    def can_retry(self, question_id: Optional[str] = None) -> bool:
        """
        Whether more submissions are allowed.

        Args:
            question_id: Check a single question; None checks the whole session
        """
        if self.session.is_complete:
            return False
        limit = self.session.max_attempts_per_question
        if question_id is None:
            return len(self.session.attempts) < len(self.session.questions) * limit
        return (
            not self.session.is_answered_correctly(question_id)
            and len(self.session.attempts_for(question_id)) < limit
        )

    @property
    def is_finished(self) -> bool:
        """True when no question is open any more."""
        return self.current_question() is None

    # ==================== Internals ====================

    def _require_active(self) -> None:
        if self.session.is_complete:
            raise InvalidSessionState(f"Assessment {self.session.session_id} is already finalized")

    def _require_question(self, question_id: str) -> AssessmentQuestion:
        question = self.session.question(question_id)
        if question is None:
            raise InvalidSessionState(f"Question {question_id} not found")
        return question

    def _positive_feedback(self, question: AssessmentQuestion, attempt_number: int) -> str:
        if attempt_number == 1:
            return f"{self._rng.choice(POSITIVE_MESSAGES)} {question.feedback.correct}"
        return f"Nice work! You figured it out! {question.feedback.correct}"

    def _adaptive_feedback(
        self, question: AssessmentQuestion, selected: Answer, attempt_number: int
    ) -> tuple[str, FeedbackTier, Optional[int]]:
        if attempt_number == 1:
            if question.feedback.almost_correct and self.is_almost_correct(question, selected):
                return question.feedback.almost_correct, "almost", None
            encouragement = (
                question.feedback.encouragement[0]
                if question.feedback.encouragement
                else DEFAULT_ENCOURAGEMENT
            )
            return f"{encouragement} {question.feedback.incorrect}", "encouraging", None

        if attempt_number == 2:
            return "Let me give you a hint to help you out!", "encouraging", 1

        return (
            "You're working hard on this! Here's some more guidance:",
            "encouraging",
            min(attempt_number - 1, self.settings.max_hint_level),
        )

    def _personalized_encouragement(self) -> str:
        hints = self.session.total_hints_used
        if hints == 0:
            return "You worked through this independently - that shows great thinking skills!"
        if hints <= 2:
            return "You used hints wisely to help your learning - that's smart studying!"
        return "You kept trying and learning from each hint - that's the spirit of a great learner!"

    def _adapt_difficulty(self) -> Optional[DifficultyRecommendation]:
        """Consult the adapter; apply its advice when confident or corroborated."""
        window = self.session.attempts[-self.settings.adjustment_window:]
        recommendation = self.adapter.analyze(self.session, window, self.profile)

        if not recommendation.should_adjust or recommendation.new_difficulty is None:
            self._pending_direction = None
            return None

        corroborated = self._pending_direction == recommendation.direction
        if recommendation.confidence < self.settings.apply_confidence_threshold and not corroborated:
            self._pending_direction = recommendation.direction
            logger.debug(
                "Holding %s recommendation (confidence %.2f) for corroboration",
                recommendation.direction,
                recommendation.confidence,
            )
            return None

        self._pending_direction = None
        self._apply_difficulty(recommendation)
        return recommendation

    def _apply_difficulty(self, recommendation: DifficultyRecommendation) -> None:
        session = self.session
        previous = session.current_difficulty
        target = recommendation.new_difficulty
        session.current_difficulty = target

        # Untouched questions closest to the new difficulty move forward
        touched = {a.question_id for a in session.attempts}
        target_index = DIFFICULTY_ORDER.index(target)
        started = [q for q in session.questions if q.id in touched]
        untouched = sorted(
            (q for q in session.questions if q.id not in touched),
            key=lambda q: abs(DIFFICULTY_ORDER.index(q.difficulty) - target_index),
        )
        session.questions = started + untouched

        session.difficulty_adjustments.append(
            {
                "from": previous,
                "to": target,
                "reason": recommendation.reason,
                "confidence": recommendation.confidence,
                "after_attempt": len(session.attempts),
                "timestamp": self._clock().isoformat(),
            }
        )
        logger.info(
            "Difficulty %s -> %s for %s (%s)", previous, target, session.lesson_id, recommendation.reason
        )
