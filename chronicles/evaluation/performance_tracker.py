"""
Performance Tracker Module

Aggregates completed assessment sessions into an append-only history per
learner and derives analytics from it.

This module implements:
1. Per-session performance records (accuracy, speed, efficiency, consistency)
2. Mastery classification (novice / developing / proficient / advanced)
3. Engagement and persistence scores
4. Topic strengths and weaknesses
5. Learning insights (appended, never retracted)
6. Time-windowed trends with least-squares slopes
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Dict, List, Literal, Optional, Sequence, Tuple, Union

import numpy as np
from scipy import stats

from ..config import TrackerConfig, config
from ..utils.scheduling import utc_now

if TYPE_CHECKING:
    from ..models.assessment_session import AssessmentSession

logger = logging.getLogger(__name__)

MasteryLevel = Literal["novice", "developing", "proficient", "advanced"]
InsightType = Literal["improvement", "mastery", "struggle", "pattern"]
TrendWindow = Union[Literal["week", "month", "all"], timedelta]

MASTERY_ORDER: Tuple[str, ...] = ("novice", "developing", "proficient", "advanced")


# ==================== Data Classes ====================

@dataclass(frozen=True)
class PhaseOutcome:
    """How the lesson sequencer closed the assessment phase."""
    assessment_attempt: int = 1  # 1-based attempt at the whole assessment
    forced_completion: bool = False  # Retry ceiling reached, floor score awarded


@dataclass(frozen=True)
class PerformanceRecord:
    """Snapshot of one completed assessment session. Never mutated."""
    session_id: str
    user_id: str
    lesson_id: str
    timestamp: datetime

    # Performance metrics
    accuracy: float  # Correct attempts / attempts
    speed: float  # Questions answered per minute
    efficiency: float  # accuracy / speed
    consistency: float  # 1 - variance of rolling accuracy

    # Behavioral metrics
    hints_used: int
    average_attempts: float
    time_spent_ms: int

    # Difficulty progression
    initial_difficulty: str
    final_difficulty: str
    difficulty_adjustments: int

    # Learning indicators
    mastery_level: MasteryLevel
    engagement_score: float  # 0-1
    persistence_score: float  # 0-1

    # Topic performance
    topic_strengths: Tuple[str, ...] = ()
    topic_weaknesses: Tuple[str, ...] = ()

    # Metadata
    question_types: Tuple[str, ...] = ()
    total_questions: int = 0
    completion_rate: float = 0.0
    score: int = 0
    passed: bool = False
    assessment_attempt: int = 1
    forced_completion: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class Insight:
    """Qualitative observation about a learner."""
    type: InsightType
    message: str
    confidence: float
    timestamp: datetime


@dataclass(frozen=True)
class Trend:
    """Averages and least-squares slopes over a slice of history."""
    accuracy_trend: float = 0.0
    speed_trend: float = 0.0
    consistency_trend: float = 0.0
    engagement_trend: float = 0.0
    average_accuracy: float = 0.0
    average_speed: float = 0.0
    average_consistency: float = 0.0
    total_sessions: int = 0
    total_time_spent_ms: int = 0
    strongest_topics: Tuple[str, ...] = ()
    challenging_topics: Tuple[str, ...] = ()
    mastery_progression: str = "No data"


@dataclass(frozen=True)
class SessionAnalytics:
    """Analytics returned to the presentation layer after an assessment."""
    session_id: str
    record: PerformanceRecord
    improvement_rate: float
    frustration_indicators: Tuple[str, ...] = ()
    success_patterns: Tuple[str, ...] = ()
    next_steps: Tuple[str, ...] = ()
    review_topics: Tuple[str, ...] = ()
    strength_areas: Tuple[str, ...] = ()

    @property
    def accuracy(self) -> float:
        return self.record.accuracy

    @property
    def mastery_level(self) -> str:
        return self.record.mastery_level


# ==================== Tracker ====================

class PerformanceTracker:
    """
    Append-only performance history with analytics.

    Usage:
        tracker = PerformanceTracker()
        analytics = tracker.analytics(engine.session)
        trend = tracker.trends("player", "week")
    """

    def __init__(
        self,
        settings: Optional[TrackerConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize tracker.

        Args:
            settings: Thresholds (default: global tracker config)
            clock: Time source for insight timestamps and trend windows
        """
        self.settings = settings or config.tracker
        self._clock = clock or utc_now
        self._history: Dict[str, List[PerformanceRecord]] = {}
        self._insights: Dict[str, List[Insight]] = {}
        self._lock = threading.Lock()

    # ==================== Recording ====================

    def record(
        self, session: AssessmentSession, phase_outcome: Optional[PhaseOutcome] = None
    ) -> PerformanceRecord:
        """
        Append a performance record for a completed session.

        Args:
            session: Finalized assessment session
            phase_outcome: How the sequencer closed the phase

        Returns:
            The new PerformanceRecord
        """
        outcome = phase_outcome or PhaseOutcome()
        speed = self.calculate_speed(session)

        record = PerformanceRecord(
            session_id=session.session_id,
            user_id=session.user_id,
            lesson_id=session.lesson_id,
            timestamp=session.ended_at or self._clock(),
            accuracy=session.accuracy,
            speed=speed,
            efficiency=session.accuracy / speed if speed > 0 else 0.0,
            consistency=self.calculate_consistency(session),
            hints_used=session.total_hints_used,
            average_attempts=self._average_attempts(session),
            time_spent_ms=self._total_time(session),
            initial_difficulty=session.initial_difficulty,
            final_difficulty=session.current_difficulty,
            difficulty_adjustments=len(session.difficulty_adjustments),
            mastery_level=self.mastery_level(session),
            engagement_score=self.engagement_score(session),
            persistence_score=self.persistence_score(session),
            topic_strengths=self._topics(session, strengths=True),
            topic_weaknesses=self._topics(session, strengths=False),
            question_types=tuple(dict.fromkeys(q.type for q in session.questions)),
            total_questions=session.total_questions,
            completion_rate=(
                1.0
                if session.is_complete
                else min(1.0, len(session.attempts) / max(1, session.total_questions))
            ),
            score=session.score,
            passed=session.passed,
            assessment_attempt=outcome.assessment_attempt,
            forced_completion=outcome.forced_completion,
        )

        with self._lock:
            history = self._history.setdefault(session.user_id, [])
            history.append(record)
            self._insights.setdefault(session.user_id, []).extend(
                self._generate_insights(record, history)
            )

        logger.info(
            "Recorded %s performance for %s: accuracy=%.2f mastery=%s",
            record.lesson_id,
            record.user_id,
            record.accuracy,
            record.mastery_level,
        )
        return record

    def analytics(
        self, session: AssessmentSession, phase_outcome: Optional[PhaseOutcome] = None
    ) -> SessionAnalytics:
        """Record the session and return analytics for it."""
        record = self.record(session, phase_outcome)
        history = self.history(session.user_id)

        return SessionAnalytics(
            session_id=session.session_id,
            record=record,
            improvement_rate=self._improvement_rate(history),
            frustration_indicators=tuple(self._frustration_indicators(session)),
            success_patterns=tuple(self._success_patterns(session)),
            next_steps=tuple(self._next_steps(session, history)),
            review_topics=record.topic_weaknesses,
            strength_areas=record.topic_strengths,
        )

    # ==================== Queries ====================

    def history(self, user_id: str) -> Tuple[PerformanceRecord, ...]:
        with self._lock:
            return tuple(self._history.get(user_id, ()))

    def insights(self, user_id: str) -> Tuple[Insight, ...]:
        with self._lock:
            return tuple(self._insights.get(user_id, ()))

    def trends(self, user_id: str, window: TrendWindow = "all") -> Trend:
        """
        Performance trends over a time window.

        Args:
            user_id: Learner identifier
            window: "week", "month", "all" or an explicit timedelta

        Returns:
            Trend (all zeros and "No data" when the window is empty)
        """
        records = list(self.history(user_id))
        span = self._window(window)
        if span is not None:
            cutoff = self._clock() - span
            records = [r for r in records if r.timestamp >= cutoff]

        if not records:
            return Trend()

        accuracy = [r.accuracy for r in records]
        speed = [r.speed for r in records]
        consistency = [r.consistency for r in records]

        return Trend(
            accuracy_trend=_slope(accuracy),
            speed_trend=_slope(speed),
            consistency_trend=_slope(consistency),
            engagement_trend=_slope([r.engagement_score for r in records]),
            average_accuracy=float(np.mean(accuracy)),
            average_speed=float(np.mean(speed)),
            average_consistency=float(np.mean(consistency)),
            total_sessions=len(records),
            total_time_spent_ms=sum(r.time_spent_ms for r in records),
            strongest_topics=_most_frequent(t for r in records for t in r.topic_strengths),
            challenging_topics=_most_frequent(t for r in records for t in r.topic_weaknesses),
            mastery_progression=_mastery_progression(records),
        )

    # ==================== Metrics ====================

    @staticmethod
    def calculate_speed(session: AssessmentSession) -> float:
        """Distinct questions answered per minute of answering time."""
        total_ms = sum(a.time_spent_ms for a in session.attempts)
        if not session.attempts or total_ms <= 0:
            return 0.0
        answered = len({a.question_id for a in session.attempts})
        return answered / (total_ms / 60_000)

    def calculate_consistency(self, session: AssessmentSession) -> float:
        """1 - variance of accuracy over a sliding window of attempts."""
        window = self.settings.consistency_window
        if len(session.attempts) < window:
            return 1.0
        correct = np.array([a.is_correct for a in session.attempts], dtype=float)
        rolling = np.convolve(correct, np.ones(window) / window, mode="valid")
        return max(0.0, 1.0 - float(np.var(rolling)))

    def mastery_level(self, session: AssessmentSession) -> MasteryLevel:
        accuracy = session.accuracy
        speed = self.calculate_speed(session)
        hint_ratio = session.total_hints_used / max(1, session.total_questions)

        for level, (min_accuracy, min_speed, max_hint_ratio) in (
            ("advanced", self.settings.advanced),
            ("proficient", self.settings.proficient),
            ("developing", self.settings.developing),
        ):
            if (
                accuracy >= min_accuracy
                and speed >= min_speed
                and (max_hint_ratio is None or hint_ratio <= max_hint_ratio)
            ):
                return level
        return "novice"

    def engagement_score(self, session: AssessmentSession) -> float:
        """Time-ratio sanity, completion and moderate hint use."""
        score = 0.5

        if session.attempts:
            average_time = self._total_time(session) / len(session.attempts)
            expected = float(np.mean([q.expected_time_ms for q in session.questions]))
            if expected > 0 and 0.5 <= average_time / expected <= 2:
                score += 0.2

        if session.is_complete:
            score += 0.2

        hint_ratio = session.total_hints_used / max(1, session.total_questions)
        if 0 < hint_ratio <= 1:
            score += 0.1

        return min(1.0, score)

    def persistence_score(self, session: AssessmentSession) -> float:
        """Retries, finishing despite low accuracy and adequate time investment."""
        score = 0.5

        average_attempts = self._average_attempts(session)
        if average_attempts > 1:
            score += min(0.3, (average_attempts - 1) * 0.1)

        if session.is_complete and session.accuracy < self.settings.persistence_low_accuracy:
            score += 0.2

        expected_total = sum(q.expected_time_ms for q in session.questions)
        if session.attempts and self._total_time(session) >= expected_total * 0.8:
            score += 0.1

        return min(1.0, score)

    # ==================== Internals ====================

    @staticmethod
    def _average_attempts(session: AssessmentSession) -> float:
        if not session.attempts:
            return 0.0
        return float(np.mean([a.attempt_number for a in session.attempts]))

    @staticmethod
    def _total_time(session: AssessmentSession) -> int:
        return sum(a.time_spent_ms for a in session.attempts)

    def _topics(self, session: AssessmentSession, strengths: bool) -> Tuple[str, ...]:
        by_topic: Dict[str, List[bool]] = {}
        for attempt in session.attempts:
            question = session.question(attempt.question_id)
            if question is not None:
                by_topic.setdefault(question.topic, []).append(attempt.is_correct)

        selected = []
        for topic, results in by_topic.items():
            if len(results) < self.settings.topic_min_attempts:
                continue
            accuracy = sum(results) / len(results)
            if strengths and accuracy >= self.settings.topic_strength_accuracy:
                selected.append(topic)
            elif not strengths and accuracy <= self.settings.topic_weakness_accuracy:
                selected.append(topic)
        return tuple(selected)

    def _generate_insights(
        self, record: PerformanceRecord, history: Sequence[PerformanceRecord]
    ) -> List[Insight]:
        now = self._clock()
        insights = []

        if len(history) >= 2:
            gain = record.accuracy - history[-2].accuracy
            if gain >= self.settings.improvement_gain:
                insights.append(
                    Insight(
                        "improvement",
                        f"Great progress! Your accuracy improved by {round(gain * 100)}%",
                        0.8,
                        now,
                    )
                )

        if record.mastery_level in ("advanced", "proficient"):
            insights.append(
                Insight(
                    "mastery",
                    f"You've achieved {record.mastery_level} level in {record.lesson_id}!",
                    0.9,
                    now,
                )
            )

        if (
            record.accuracy < self.settings.struggle_accuracy
            and record.hints_used > len(record.question_types)
        ):
            insights.append(
                Insight(
                    "struggle",
                    "Consider reviewing the lesson material before trying again",
                    0.7,
                    now,
                )
            )

        if record.consistency >= self.settings.consistency_insight:
            insights.append(
                Insight(
                    "pattern",
                    "You show consistent performance - great learning stability!",
                    0.8,
                    now,
                )
            )

        return insights

    def _improvement_rate(self, history: Sequence[PerformanceRecord]) -> float:
        recent = history[-self.settings.improvement_window:]
        if len(recent) < 2:
            return 0.0
        return (recent[-1].accuracy - recent[0].accuracy) / len(recent)

    @staticmethod
    def _frustration_indicators(session: AssessmentSession) -> List[str]:
        indicators = []
        total = session.total_questions

        if session.total_hints_used > total * 1.5:
            indicators.append("High hint usage")

        long_answers = [
            a
            for a in session.attempts
            if (q := session.question(a.question_id)) is not None
            and a.time_spent_ms > q.expected_time_ms * 2
        ]
        if len(long_answers) > total * 0.5:
            indicators.append("Extended time on questions")

        if len([a for a in session.attempts if a.attempt_number > 2]) > total * 0.3:
            indicators.append("Multiple attempts needed")

        return indicators

    @staticmethod
    def _success_patterns(session: AssessmentSession) -> List[str]:
        patterns = []
        total = session.total_questions

        fast_correct = [
            a
            for a in session.attempts
            if a.is_correct
            and (q := session.question(a.question_id)) is not None
            and a.time_spent_ms < q.expected_time_ms * 0.8
        ]
        if len(fast_correct) > total * 0.4:
            patterns.append("Quick accurate responses")

        if session.total_hints_used == 0 and session.accuracy > 0.7:
            patterns.append("Independent problem solving")

        first_try = [a for a in session.attempts if a.is_correct and a.attempt_number == 1]
        if len(first_try) > total * 0.7:
            patterns.append("First attempt success")

        return patterns

    @staticmethod
    def _next_steps(session: AssessmentSession, history: Sequence[PerformanceRecord]) -> List[str]:
        accuracy = session.accuracy
        if accuracy >= 0.8:
            steps = ["Ready for advanced topics", "Consider exploring related concepts"]
        elif accuracy >= 0.6:
            steps = ["Practice similar problems", "Review key concepts"]
        else:
            steps = [
                "Revisit lesson materials",
                "Focus on foundational concepts",
                "Consider additional practice",
            ]

        if len(history) >= 3:
            recent = float(np.mean([r.accuracy for r in history[-3:]]))
            if recent > accuracy:
                steps.append("Take a break and return refreshed")

        return steps

    def _window(self, window: TrendWindow) -> Optional[timedelta]:
        if isinstance(window, timedelta):
            return window
        if window == "week":
            return timedelta(days=self.settings.week_days)
        if window == "month":
            return timedelta(days=self.settings.month_days)
        if window == "all":
            return None
        raise ValueError(f"Unknown trend window: {window}")


def _slope(values: Sequence[float]) -> float:
    """Least-squares slope per session; 0 for fewer than two points."""
    if len(values) < 2:
        return 0.0
    result = stats.linregress(np.arange(len(values)), np.asarray(values, dtype=float))
    slope = float(result.slope)
    return slope if np.isfinite(slope) else 0.0


def _most_frequent(topics, limit: int = 3) -> Tuple[str, ...]:
    return tuple(topic for topic, _ in Counter(topics).most_common(limit))


def _mastery_progression(records: Sequence[PerformanceRecord]) -> str:
    if not records:
        return "No data"
    if len(records) == 1:
        return records[-1].mastery_level

    recent = MASTERY_ORDER.index(records[-1].mastery_level)
    previous = MASTERY_ORDER.index(records[-2].mastery_level)
    if recent > previous:
        return "Improving"
    if recent < previous:
        return "Declining"
    return "Stable"
