"""
Unit tests for performance analytics.

Tests:
- Per-session metrics (speed, consistency, mastery)
- Engagement and persistence scores
- Frustration indicators, success patterns and next steps
- Insights and time-windowed trends
"""

from datetime import datetime, timedelta, timezone

import pytest

from chronicles.evaluation.performance_tracker import PerformanceTracker, PhaseOutcome, Trend
from chronicles.models.assessment_session import AssessmentEngine


class Clock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def tracker(clock):
    return PerformanceTracker(clock=clock)


@pytest.fixture
def strong_session(questions, clock):
    """Three first-try correct answers, 10s each, no hints."""
    engine = AssessmentEngine("hieroglyphics", questions, passing_score=67, clock=clock)
    for question in questions:
        engine.submit_answer(question.id, "right", 10000)
    engine.finalize()
    return engine.session


@pytest.fixture
def struggling_session(questions, clock):
    """Five hints and three slow misses on one question."""
    engine = AssessmentEngine("hieroglyphics", questions, passing_score=67, clock=clock)
    for _ in range(5):
        engine.request_hint("q1")
    for _ in range(3):
        engine.submit_answer("q1", "wrong", 70000)
    engine.finalize()
    return engine.session


class TestMetrics:
    def test_strong_session_record(self, tracker, strong_session):
        record = tracker.record(strong_session)

        assert record.accuracy == 1.0
        assert record.speed == pytest.approx(6.0)
        assert record.efficiency == pytest.approx(1 / 6)
        assert record.consistency == 1.0
        assert record.mastery_level == "advanced"
        assert record.engagement_score == pytest.approx(0.7)
        assert record.persistence_score == pytest.approx(0.5)
        assert record.topic_strengths == ("symbols",)
        assert record.topic_weaknesses == ()
        assert record.time_spent_ms == 30000
        assert record.initial_difficulty == "medium"
        assert record.score == 100
        assert record.passed
        assert record.completion_rate == 1.0
        assert record.question_types == ("multiple-choice",)

    def test_struggling_session_record(self, tracker, struggling_session):
        record = tracker.record(struggling_session)

        assert record.accuracy == 0.0
        assert record.speed == pytest.approx(1 / 3.5)
        assert record.mastery_level == "novice"
        assert record.hints_used == 5
        assert record.average_attempts == pytest.approx(2.0)
        assert record.persistence_score == pytest.approx(0.9)
        assert record.topic_weaknesses == ("symbols",)
        assert not record.passed

    def test_speed_without_attempts(self, questions):
        engine = AssessmentEngine("x", questions)
        assert PerformanceTracker.calculate_speed(engine.session) == 0.0

    def test_consistency_drops_with_swings(self, tracker, questions, clock):
        engine = AssessmentEngine("x", questions, clock=clock)
        engine.submit_answer("q1", "right", 10000)
        engine.submit_answer("q2", "wrong", 10000)
        engine.submit_answer("q3", "wrong", 10000)
        engine.submit_answer("q2", "right", 10000)
        engine.submit_answer("q3", "right", 10000)

        # rolling accuracies 1/3, 1/3, 2/3
        assert tracker.calculate_consistency(engine.session) == pytest.approx(1 - 0.024691358)

    def test_phase_outcome_is_recorded(self, tracker, strong_session):
        record = tracker.record(strong_session, PhaseOutcome(assessment_attempt=3, forced_completion=True))

        assert record.assessment_attempt == 3
        assert record.forced_completion

    def test_to_dict_serializes_timestamp(self, tracker, strong_session):
        data = tracker.record(strong_session).to_dict()

        assert data["timestamp"] == "2024-01-01T00:00:00+00:00"
        assert data["topic_strengths"] == ("symbols",)


class TestAnalytics:
    def test_strong_session_patterns(self, tracker, strong_session):
        analytics = tracker.analytics(strong_session)

        assert analytics.accuracy == 1.0
        assert analytics.mastery_level == "advanced"
        assert analytics.frustration_indicators == ()
        assert analytics.success_patterns == (
            "Quick accurate responses",
            "Independent problem solving",
            "First attempt success",
        )
        assert analytics.next_steps == ("Ready for advanced topics", "Consider exploring related concepts")
        assert analytics.strength_areas == ("symbols",)
        assert analytics.improvement_rate == 0.0

    def test_struggling_session_indicators(self, tracker, struggling_session):
        analytics = tracker.analytics(struggling_session)

        assert analytics.frustration_indicators == (
            "High hint usage",
            "Extended time on questions",
            "Multiple attempts needed",
        )
        assert analytics.success_patterns == ()
        assert analytics.next_steps[0] == "Revisit lesson materials"
        assert analytics.review_topics == ("symbols",)

    def test_insights_accumulate(self, tracker, struggling_session, strong_session):
        tracker.record(struggling_session)
        tracker.record(strong_session)

        kinds = [insight.type for insight in tracker.insights("player")]

        assert kinds.count("struggle") == 1
        assert kinds.count("improvement") == 1
        assert kinds.count("mastery") == 1
        improvement = next(i for i in tracker.insights("player") if i.type == "improvement")
        assert "100%" in improvement.message

    def test_improvement_rate(self, tracker, struggling_session, strong_session):
        tracker.record(struggling_session)
        analytics = tracker.analytics(strong_session)

        assert analytics.improvement_rate == pytest.approx(0.5)

    def test_history_is_per_user(self, tracker, strong_session):
        tracker.record(strong_session)

        assert len(tracker.history("player")) == 1
        assert tracker.history("someone-else") == ()


class TestTrends:
    def test_empty_history(self, tracker):
        assert tracker.trends("player") == Trend()
        assert tracker.trends("player").mastery_progression == "No data"

    def test_trend_over_all_sessions(self, tracker, questions, clock):
        weak = AssessmentEngine("hieroglyphics", questions, clock=clock)
        weak.submit_answer("q1", "wrong", 10000)
        weak.finalize()
        tracker.record(weak.session)

        clock.now += timedelta(days=10)
        strong = AssessmentEngine("hieroglyphics", questions, clock=clock)
        for question in questions:
            strong.submit_answer(question.id, "right", 10000)
        strong.finalize()
        tracker.record(strong.session)

        trend = tracker.trends("player", "all")

        assert trend.total_sessions == 2
        assert trend.accuracy_trend == pytest.approx(1.0)
        assert trend.average_accuracy == pytest.approx(0.5)
        assert trend.total_time_spent_ms == 40000
        assert trend.mastery_progression == "Improving"

        recent = tracker.trends("player", "week")
        assert recent.total_sessions == 1
        assert recent.mastery_progression == "advanced"
        assert recent.accuracy_trend == 0.0

        assert tracker.trends("player", timedelta(days=30)).total_sessions == 2

    def test_unknown_window(self, tracker):
        with pytest.raises(ValueError):
            tracker.trends("player", "fortnight")
