"""
Difficulty Adapter - recommends easier or harder questions from recent attempts.

Analyzes a rolling window of assessment attempts:
- Recent accuracy and accuracy trend (second half vs first half of the window)
- Speed trend against each question's expected time
- Confidence trend from hint usage and retries
- Qualitative patterns, struggle indicators and mastery indicators

and turns the analysis into a recommendation with a confidence score and a
human-readable reason. Every threshold comes from AdapterConfig.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Literal, Optional, Sequence

import numpy as np

from ..config import AdapterConfig, config
from ..models.lesson_content import DIFFICULTY_ORDER

if TYPE_CHECKING:
    from ..evaluation.performance_tracker import PerformanceRecord
    from ..models.assessment_session import AssessmentSession, Attempt

logger = logging.getLogger(__name__)

Level = Literal["low", "medium", "high"]
Direction = Literal["increase", "decrease"]


@dataclass(frozen=True)
class LearnerProfile:
    """
    Coarse learner traits used for profile-based fine-tuning.

    Attributes:
        confidence_level: How sure-footed the learner has been
        persistence_level: How readily the learner keeps trying
        hint_usage_pattern: How heavily the learner leans on hints
    """

    confidence_level: Level = "medium"
    persistence_level: Level = "medium"
    hint_usage_pattern: Level = "medium"

    @classmethod
    def from_history(
        cls,
        records: Sequence[PerformanceRecord],
        settings: Optional[AdapterConfig] = None,
    ) -> LearnerProfile:
        """
        Derive a profile from accumulated performance records.

        Args:
            records: Performance history, oldest first
            settings: Thresholds (default: global adapter config)

        Returns:
            LearnerProfile (all levels medium when there is no history)
        """
        if not records:
            return cls()

        settings = settings or config.adapter
        accuracy = float(np.mean([r.accuracy for r in records]))
        persistence = float(np.mean([r.persistence_score for r in records]))
        hint_ratio = float(
            np.mean([r.hints_used / r.total_questions if r.total_questions else 0.0 for r in records])
        )

        return cls(
            confidence_level=_level(
                accuracy,
                settings.profile_low_confidence_accuracy,
                settings.profile_high_confidence_accuracy,
            ),
            persistence_level=_level(
                persistence, settings.profile_low_persistence, settings.profile_high_persistence
            ),
            hint_usage_pattern=_level(
                hint_ratio, settings.profile_low_hint_ratio, settings.profile_high_hint_ratio
            ),
        )


def _level(value: float, low: float, high: float) -> Level:
    if value >= high:
        return "high"
    if value < low:
        return "low"
    return "medium"


@dataclass(frozen=True)
class PerformanceAnalysis:
    """Signals computed from one window of attempts."""

    recent_accuracy: float
    average_time_ms: float
    total_hints: int
    average_attempts: float
    accuracy_trend: float
    speed_trend: float
    confidence_trend: float
    patterns: tuple[str, ...] = ()
    struggle_indicators: tuple[str, ...] = ()
    mastery_indicators: tuple[str, ...] = ()


@dataclass(frozen=True)
class DifficultyRecommendation:
    """
    Adapter output.

    Attributes:
        should_adjust: Whether a change is recommended
        new_difficulty: Recommended difficulty (None when no change)
        direction: "increase" or "decrease" (None when no change)
        reason: Human-readable rationale
        confidence: Confidence in [0, 1]
        analysis: Signals behind the decision (None when too few attempts)
    """

    should_adjust: bool
    confidence: float = 0.0
    new_difficulty: Optional[str] = None
    direction: Optional[Direction] = None
    reason: Optional[str] = None
    analysis: Optional[PerformanceAnalysis] = field(default=None, compare=False)

    @classmethod
    def no_change(cls, analysis: Optional[PerformanceAnalysis] = None) -> DifficultyRecommendation:
        return cls(should_adjust=False, confidence=0.0, analysis=analysis)


def _halves(values: Sequence[float]) -> tuple[Sequence[float], Sequence[float]]:
    middle = len(values) // 2
    return values[:middle], values[middle:]


def _step(difficulty: str, direction: Direction) -> str:
    index = DIFFICULTY_ORDER.index(difficulty)
    if direction == "increase":
        return DIFFICULTY_ORDER[min(index + 1, len(DIFFICULTY_ORDER) - 1)]
    return DIFFICULTY_ORDER[max(index - 1, 0)]


class DifficultyAdapter:
    """
    Stateless difficulty recommender.

    Usage:
        adapter = DifficultyAdapter()
        rec = adapter.analyze(session, session.attempts[-5:], LearnerProfile())
        if rec.should_adjust:
            ...
    """

    def __init__(self, settings: Optional[AdapterConfig] = None):
        self.settings = settings or config.adapter

    def analyze(
        self,
        session: AssessmentSession,
        recent_attempts: Sequence[Attempt],
        profile: Optional[LearnerProfile] = None,
    ) -> DifficultyRecommendation:
        """
        Analyze recent attempts and recommend a difficulty change.

        Args:
            session: Active assessment session (questions and current difficulty)
            recent_attempts: Window of most recent attempts, oldest first
            profile: Learner profile (default: all-medium)

        Returns:
            DifficultyRecommendation
        """
        if len(recent_attempts) < self.settings.min_attempts:
            return DifficultyRecommendation.no_change()

        profile = profile or LearnerProfile()
        expected = {q.id: q.expected_time_ms for q in session.questions}
        analysis = self.analyze_performance(recent_attempts, expected)
        return self.recommend(analysis, session.current_difficulty, profile)

    # ==================== Analysis ====================

    def analyze_performance(
        self, attempts: Sequence[Attempt], expected_time_ms: dict[str, int]
    ) -> PerformanceAnalysis:
        """
        Compute performance signals for a window of attempts.

        Args:
            attempts: Attempts, oldest first (at least one)
            expected_time_ms: Expected time per question id

        Returns:
            PerformanceAnalysis
        """
        correct = np.array([a.is_correct for a in attempts], dtype=float)
        times = np.array([a.time_spent_ms for a in attempts], dtype=float)
        hints = np.array([a.hints_used for a in attempts], dtype=float)
        tries = np.array([a.attempt_number for a in attempts], dtype=float)

        return PerformanceAnalysis(
            recent_accuracy=float(correct.mean()),
            average_time_ms=float(times.mean()),
            total_hints=int(hints.sum()),
            average_attempts=float(tries.mean()),
            accuracy_trend=self._accuracy_trend(attempts),
            speed_trend=self._speed_trend(attempts, expected_time_ms),
            confidence_trend=self._confidence_trend(attempts),
            patterns=tuple(self._patterns(attempts, expected_time_ms)),
            struggle_indicators=tuple(self._struggle_indicators(attempts, expected_time_ms)),
            mastery_indicators=tuple(self._mastery_indicators(attempts, expected_time_ms)),
        )

    def _accuracy_trend(self, attempts: Sequence[Attempt]) -> float:
        if len(attempts) < self.settings.min_attempts_for_trend:
            return 0.0
        first, second = _halves([float(a.is_correct) for a in attempts])
        return float(np.mean(second) - np.mean(first))

    def _speed_trend(self, attempts: Sequence[Attempt], expected_time_ms: dict[str, int]) -> float:
        """Positive when the learner is getting faster relative to expected time."""
        if len(attempts) < self.settings.min_attempts_for_trend:
            return 0.0
        ratios = [self._time_ratio(a, expected_time_ms) for a in attempts]
        first, second = _halves(ratios)
        return float(np.mean(first) - np.mean(second))

    def _confidence_trend(self, attempts: Sequence[Attempt]) -> float:
        if len(attempts) < self.settings.min_attempts_for_trend:
            return 0.0
        scores = [
            max(0.0, 1.0 - a.hints_used * 0.2 - (a.attempt_number - 1) * 0.3) for a in attempts
        ]
        first, second = _halves(scores)
        return float(np.mean(second) - np.mean(first))

    def _accuracy_variance(self, attempts: Sequence[Attempt]) -> float:
        """Variance of accuracy across sliding windows; 0 when too few attempts."""
        window = self.settings.variance_window
        if len(attempts) < window:
            return 0.0
        correct = np.array([a.is_correct for a in attempts], dtype=float)
        accuracies = np.convolve(correct, np.ones(window) / window, mode="valid")
        return float(np.var(accuracies))

    @staticmethod
    def _time_ratio(attempt: Attempt, expected_time_ms: dict[str, int]) -> float:
        expected = expected_time_ms.get(attempt.question_id)
        if not expected:
            return 1.0
        return attempt.time_spent_ms / expected

    def _share(self, attempts: Sequence[Attempt], predicate) -> float:
        return sum(1 for a in attempts if predicate(a)) / len(attempts)

    def _patterns(self, attempts: Sequence[Attempt], expected_time_ms: dict[str, int]) -> list[str]:
        s = self.settings
        patterns = []

        if self._share(
            attempts,
            lambda a: a.is_correct
            and a.question_id in expected_time_ms
            and self._time_ratio(a, expected_time_ms) < s.fast_and_accurate_time_ratio,
        ) >= s.fast_and_accurate_share:
            patterns.append("fast_and_accurate")

        if self._share(attempts, lambda a: a.hints_used == 0) >= s.hint_independent_share:
            patterns.append("hint_independent")

        if self._share(
            attempts, lambda a: a.is_correct and a.attempt_number == 1
        ) >= s.first_attempt_success_share:
            patterns.append("first_attempt_success")

        if self._accuracy_variance(attempts) < s.consistent_variance:
            patterns.append("consistent_performance")

        return patterns

    def _struggle_indicators(
        self, attempts: Sequence[Attempt], expected_time_ms: dict[str, int]
    ) -> list[str]:
        s = self.settings
        indicators = []

        if np.mean([a.hints_used for a in attempts]) > s.high_hint_average:
            indicators.append("high_hint_usage")

        if np.mean([a.attempt_number for a in attempts]) > s.multiple_attempts_average:
            indicators.append("multiple_attempts")

        if self._share(
            attempts,
            lambda a: a.question_id in expected_time_ms
            and self._time_ratio(a, expected_time_ms) > s.slow_time_ratio,
        ) >= s.slow_share:
            indicators.append("slow_responses")

        if self._share(attempts, lambda a: a.is_correct) < s.low_accuracy:
            indicators.append("low_accuracy")

        return indicators

    def _mastery_indicators(
        self, attempts: Sequence[Attempt], expected_time_ms: dict[str, int]
    ) -> list[str]:
        s = self.settings
        indicators = []

        if self._share(attempts, lambda a: a.is_correct) >= s.high_accuracy:
            indicators.append("high_accuracy")

        if self._share(
            attempts,
            lambda a: a.question_id in expected_time_ms
            and self._time_ratio(a, expected_time_ms) < s.fast_time_ratio,
        ) >= s.fast_share:
            indicators.append("fast_responses")

        if self._share(attempts, lambda a: a.hints_used == 0) >= s.hint_independent_share:
            indicators.append("hint_independent")

        if self._share(
            attempts, lambda a: a.is_correct and a.attempt_number == 1
        ) >= s.first_attempt_mastery_share:
            indicators.append("first_attempt_mastery")

        return indicators

    # ==================== Decision ====================

    def recommend(
        self, analysis: PerformanceAnalysis, current_difficulty: str, profile: LearnerProfile
    ) -> DifficultyRecommendation:
        """Turn an analysis into a recommendation for the given difficulty."""
        if self.should_increase(analysis, current_difficulty):
            return DifficultyRecommendation(
                should_adjust=True,
                new_difficulty=_step(current_difficulty, "increase"),
                direction="increase",
                reason=self._mastery_reason(analysis.mastery_indicators),
                confidence=self.confidence(analysis, "increase"),
                analysis=analysis,
            )

        if self.should_decrease(analysis, current_difficulty):
            return DifficultyRecommendation(
                should_adjust=True,
                new_difficulty=_step(current_difficulty, "decrease"),
                direction="decrease",
                reason=self._struggle_reason(analysis.struggle_indicators),
                confidence=self.confidence(analysis, "decrease"),
                analysis=analysis,
            )

        return self._profile_adjustment(analysis, current_difficulty, profile)

    def should_increase(self, analysis: PerformanceAnalysis, current_difficulty: str) -> bool:
        if current_difficulty == DIFFICULTY_ORDER[-1]:
            return False

        s = self.settings
        accuracy = analysis.recent_accuracy
        trend = analysis.accuracy_trend

        return (
            (accuracy >= s.increase_accuracy_with_trend and trend > s.increase_trend)
            or (accuracy >= s.increase_accuracy_with_speed and analysis.speed_trend > s.increase_speed_trend)
            or len(analysis.mastery_indicators) >= s.increase_mastery_indicators
            or (accuracy >= s.increase_accuracy_stable and trend >= 0)
        )

    def should_decrease(self, analysis: PerformanceAnalysis, current_difficulty: str) -> bool:
        if current_difficulty == DIFFICULTY_ORDER[0]:
            return False

        s = self.settings
        accuracy = analysis.recent_accuracy

        return (
            (accuracy <= s.decrease_accuracy_with_trend and analysis.accuracy_trend < s.decrease_trend)
            or len(analysis.struggle_indicators) >= s.decrease_struggle_indicators
            or analysis.average_attempts >= s.decrease_average_attempts
            or accuracy <= s.decrease_accuracy_floor
        )

    def _profile_adjustment(
        self, analysis: PerformanceAnalysis, current_difficulty: str, profile: LearnerProfile
    ) -> DifficultyRecommendation:
        s = self.settings
        accuracy = analysis.recent_accuracy

        if (
            profile.confidence_level == "low"
            and accuracy < s.low_confidence_accuracy
            and current_difficulty != "easy"
        ):
            return DifficultyRecommendation(
                should_adjust=True,
                new_difficulty="easy",
                direction="decrease",
                reason="Building confidence with easier questions",
                confidence=s.low_confidence_confidence,
                analysis=analysis,
            )

        if (
            profile.persistence_level == "high"
            and accuracy >= s.high_persistence_accuracy
            and current_difficulty == "easy"
        ):
            return DifficultyRecommendation(
                should_adjust=True,
                new_difficulty="medium",
                direction="increase",
                reason="Ready for more challenge based on persistence",
                confidence=s.high_persistence_confidence,
                analysis=analysis,
            )

        if (
            profile.hint_usage_pattern == "high"
            and analysis.total_hints == 0
            and accuracy >= s.hint_dependent_accuracy
            and current_difficulty != DIFFICULTY_ORDER[-1]
        ):
            return DifficultyRecommendation(
                should_adjust=True,
                new_difficulty=_step(current_difficulty, "increase"),
                direction="increase",
                reason="Independent problem solving without hints",
                confidence=s.hint_dependent_confidence,
                analysis=analysis,
            )

        return DifficultyRecommendation.no_change(analysis)

    def confidence(self, analysis: PerformanceAnalysis, direction: Direction) -> float:
        """Weighted from accuracy magnitude, trend magnitude and indicator count, clamped to [0, 1]."""
        score = 0.5
        if direction == "increase":
            score += analysis.recent_accuracy * 0.3
            score += max(0.0, analysis.accuracy_trend) * 0.2
            score += len(analysis.mastery_indicators) * 0.1
        else:
            score += (1 - analysis.recent_accuracy) * 0.3
            score += max(0.0, -analysis.accuracy_trend) * 0.2
            score += len(analysis.struggle_indicators) * 0.1
        return min(1.0, max(0.0, score))

    @staticmethod
    def _mastery_reason(indicators: Iterable[str]) -> str:
        indicators = set(indicators)
        if {"fast_responses", "high_accuracy"} <= indicators:
            return "Demonstrating speed and accuracy mastery"
        if "first_attempt_mastery" in indicators:
            return "Consistently succeeding on first attempts"
        if "hint_independent" in indicators:
            return "Solving problems independently without hints"
        return "Strong performance indicates readiness for challenge"

    @staticmethod
    def _struggle_reason(indicators: Iterable[str]) -> str:
        indicators = set(indicators)
        if {"high_hint_usage", "multiple_attempts"} <= indicators:
            return "Needs more support and practice at current level"
        if "slow_responses" in indicators:
            return "Taking longer to process questions"
        if "low_accuracy" in indicators:
            return "Accuracy indicates need for easier questions"
        return "Performance suggests need for additional support"
