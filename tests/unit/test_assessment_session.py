"""
Unit tests for the assessment engine.

Tests:
- Answer evaluation for single answers and answer sets
- Escalating feedback across retries
- Hint levels
- Scoring and pass/fail
- Difficulty adaptation and question reordering
- Invalid operations
"""

import unittest
from datetime import datetime, timezone

from chronicles.config import AssessmentConfig
from chronicles.exceptions import InvalidSessionState
from chronicles.models.assessment_session import (
    ENCOURAGING_MESSAGES,
    GENERIC_HINT,
    PASSING_MESSAGES,
    AssessmentEngine,
    percent,
)
from chronicles.models.lesson_content import AssessmentQuestion, QuestionFeedback, QuestionHints

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def build_question(question_id, correct="right", difficulty="medium", almost_correct=None, encouragement=("Keep going!",)):
    return AssessmentQuestion(
        id=question_id,
        type="multiple-choice",
        question=f"Question {question_id}?",
        correct_answer=correct,
        options=("right", "wrong"),
        difficulty=difficulty,
        topic="symbols",
        expected_time_ms=30000,
        hints=QuestionHints(
            level1=f"{question_id} nudge",
            level2=f"{question_id} guidance",
            level3=f"{question_id} nearly the answer",
        ),
        feedback=QuestionFeedback(
            correct="Correct!",
            incorrect="Not quite.",
            almost_correct=almost_correct,
            encouragement=encouragement,
        ),
    )


class TestAssessmentEngine(unittest.TestCase):
    """Core answer and hint flow."""

    def setUp(self):
        self.questions = [build_question("q1"), build_question("q2"), build_question("q3")]
        self.engine = AssessmentEngine(
            "hieroglyphics", self.questions, passing_score=67, clock=lambda: NOW, seed=7
        )

    def test_session_starts_empty(self):
        session = self.engine.session
        self.assertTrue(session.session_id.startswith("assessment-"))
        self.assertEqual(session.attempts, [])
        self.assertEqual(session.started_at, NOW)
        self.assertEqual(self.engine.current_question().id, "q1")
        self.assertEqual(self.engine.progress_percent(), 0)

    def test_correct_answer(self):
        outcome = self.engine.submit_answer("q1", "right", 10000)

        self.assertTrue(outcome.is_correct)
        self.assertEqual(outcome.feedback_tier, "success")
        self.assertTrue(outcome.should_advance)
        self.assertTrue(outcome.feedback.endswith("Correct!"))
        self.assertEqual(self.engine.current_question().id, "q2")
        self.assertEqual(self.engine.progress_percent(), 33)

    def test_correct_on_retry_has_different_praise(self):
        self.engine.submit_answer("q1", "wrong", 10000)
        outcome = self.engine.submit_answer("q1", "right", 10000)

        self.assertEqual(outcome.feedback, "Nice work! You figured it out! Correct!")

    def test_feedback_escalates_across_retries(self):
        first = self.engine.submit_answer("q1", "wrong", 10000)
        second = self.engine.submit_answer("q1", "wrong", 10000)
        third = self.engine.submit_answer("q1", "wrong", 10000)

        self.assertEqual(first.feedback, "Keep going! Not quite.")
        self.assertEqual(first.feedback_tier, "encouraging")
        self.assertFalse(first.show_hint)
        self.assertFalse(first.should_advance)

        self.assertTrue(second.show_hint)
        self.assertEqual(second.hint_level, 1)
        self.assertFalse(second.should_advance)

        self.assertEqual(third.hint_level, 2)
        self.assertTrue(third.should_advance)

        self.assertEqual(
            [a.attempt_number for a in self.engine.session.attempts_for("q1")], [1, 2, 3]
        )

    def test_exhausted_question_rejects_more_answers(self):
        for _ in range(3):
            self.engine.submit_answer("q1", "wrong", 1000)

        self.assertFalse(self.engine.can_retry("q1"))
        with self.assertRaises(InvalidSessionState):
            self.engine.submit_answer("q1", "right", 1000)
        self.assertEqual(self.engine.current_question().id, "q2")

    def test_configured_attempt_limit_keeps_question_open(self):
        engine = AssessmentEngine(
            "hieroglyphics",
            self.questions,
            settings=AssessmentConfig(max_attempts_per_question=5),
            clock=lambda: NOW,
        )

        outcomes = [engine.submit_answer("q1", "wrong", 1000) for _ in range(3)]

        self.assertFalse(outcomes[-1].should_advance)
        self.assertTrue(engine.can_retry("q1"))
        self.assertEqual(engine.current_question().id, "q1")
        self.assertEqual(engine.session.current_index, 0)
        self.assertFalse(engine.is_finished)

        outcomes += [engine.submit_answer("q1", "wrong", 1000) for _ in range(2)]

        self.assertTrue(outcomes[-1].should_advance)
        self.assertFalse(engine.can_retry("q1"))
        self.assertEqual(engine.current_question().id, "q2")

    def test_default_encouragement_without_authored_lines(self):
        engine = AssessmentEngine("x", [build_question("q1", encouragement=())], clock=lambda: NOW)

        outcome = engine.submit_answer("q1", "wrong", 1000)

        self.assertTrue(outcome.feedback.startswith("That's an interesting choice!"))

    def test_almost_correct_feedback(self):
        question = build_question("q1", correct="Eye or to see", almost_correct="So close!")
        engine = AssessmentEngine("x", [question], clock=lambda: NOW)

        outcome = engine.submit_answer("q1", "Eye of Horus", 1000)

        self.assertFalse(outcome.is_correct)
        self.assertEqual(outcome.feedback, "So close!")
        self.assertEqual(outcome.feedback_tier, "almost")

    def test_answered_question_cannot_be_resubmitted(self):
        self.engine.submit_answer("q1", "right", 1000)

        with self.assertRaises(InvalidSessionState):
            self.engine.submit_answer("q1", "right", 1000)

    def test_unknown_question(self):
        with self.assertRaises(InvalidSessionState):
            self.engine.submit_answer("q9", "right", 1000)
        with self.assertRaises(InvalidSessionState):
            self.engine.request_hint("q9")

    def test_negative_time_rejected(self):
        with self.assertRaises(ValueError):
            self.engine.submit_answer("q1", "right", -1)
        self.assertEqual(self.engine.session.attempts, [])

    def test_constructor_validation(self):
        with self.assertRaises(ValueError):
            AssessmentEngine("x", [])
        with self.assertRaises(ValueError):
            AssessmentEngine("x", self.questions, initial_difficulty="impossible")

    def test_hints_escalate_then_repeat_generic(self):
        levels = [self.engine.request_hint("q1") for _ in range(4)]

        self.assertEqual([h.level for h in levels], [1, 2, 3, 3])
        self.assertEqual(levels[0].hint, "q1 nudge")
        self.assertEqual(levels[2].hint, "q1 nearly the answer")
        self.assertEqual(levels[3].hint, GENERIC_HINT)
        self.assertFalse(levels[1].is_last_hint)
        self.assertTrue(levels[2].is_last_hint)
        self.assertEqual(self.engine.session.total_hints_used, 4)

    def test_attempt_records_hints_for_its_question(self):
        self.engine.request_hint("q1")
        self.engine.request_hint("q2")
        self.engine.request_hint("q1")

        self.engine.submit_answer("q1", "right", 1000)

        self.assertEqual(self.engine.session.attempts[0].hints_used, 2)


class TestScoring(unittest.TestCase):
    def setUp(self):
        self.questions = [build_question("q1"), build_question("q2"), build_question("q3")]

    def _engine(self, passing_score):
        return AssessmentEngine("x", self.questions, passing_score=passing_score, clock=lambda: NOW, seed=3)

    def test_two_of_three_passes_at_67(self):
        engine = self._engine(67)
        engine.submit_answer("q1", "right", 1000)
        engine.submit_answer("q2", "wrong", 1000)
        engine.submit_answer("q2", "right", 1000)

        result = engine.finalize()

        self.assertEqual(result.score, 67)
        self.assertTrue(result.passed)
        self.assertIn(result.feedback, PASSING_MESSAGES)
        self.assertTrue(engine.session.is_complete)
        self.assertEqual(engine.session.ended_at, NOW)

    def test_two_of_three_fails_at_70(self):
        engine = self._engine(70)
        engine.submit_answer("q1", "right", 1000)
        engine.submit_answer("q2", "right", 1000)

        result = engine.finalize()

        self.assertEqual(result.score, 67)
        self.assertFalse(result.passed)
        self.assertIn(result.feedback, ENCOURAGING_MESSAGES)

    def test_unanswered_questions_count_as_incorrect(self):
        result = self._engine(50).finalize()

        self.assertEqual(result.score, 0)
        self.assertFalse(result.passed)

    def test_finalize_is_terminal(self):
        engine = self._engine(50)
        engine.finalize()

        self.assertFalse(engine.can_retry())
        with self.assertRaises(InvalidSessionState):
            engine.finalize()
        with self.assertRaises(InvalidSessionState):
            engine.submit_answer("q1", "right", 1000)
        with self.assertRaises(InvalidSessionState):
            engine.request_hint("q1")

    def test_encouragement_reflects_hint_use(self):
        independent = self._engine(50)
        self.assertIn("independently", independent.finalize().encouragement)

        wise = self._engine(50)
        wise.request_hint("q1")
        self.assertIn("hints wisely", wise.finalize().encouragement)

        persistent = self._engine(50)
        for _ in range(3):
            persistent.request_hint("q1")
        self.assertIn("kept trying", persistent.finalize().encouragement)

    def test_accuracy_counts_every_attempt(self):
        engine = self._engine(50)
        engine.submit_answer("q1", "wrong", 1000)
        engine.submit_answer("q1", "right", 1000)

        self.assertEqual(engine.session.accuracy, 0.5)
        self.assertEqual(engine.session.correct_answers, 1)

    def test_percent_rounds_half_up(self):
        self.assertEqual(percent(2, 3), 67)
        self.assertEqual(percent(1, 8), 13)
        self.assertEqual(percent(1, 3), 33)
        self.assertEqual(percent(0, 0), 0)


class TestAnswerSets(unittest.TestCase):
    def setUp(self):
        self.question = build_question("q1", correct=("bread", "cloth"))

    def test_order_does_not_matter(self):
        self.assertTrue(AssessmentEngine.evaluate(self.question, ("cloth", "bread")))

    def test_missing_or_extra_members_fail(self):
        self.assertFalse(AssessmentEngine.evaluate(self.question, ("bread",)))
        self.assertFalse(AssessmentEngine.evaluate(self.question, ("bread", "cloth", "gold")))
        self.assertFalse(AssessmentEngine.evaluate(self.question, "bread"))

    def test_lists_are_accepted_on_submit(self):
        engine = AssessmentEngine("x", [self.question], clock=lambda: NOW)

        outcome = engine.submit_answer("q1", ["cloth", "bread"], 1000)

        self.assertTrue(outcome.is_correct)
        self.assertEqual(engine.session.attempts[0].selected_answer, ("cloth", "bread"))
        self.assertEqual(engine.session.attempts[0].to_dict()["selected_answer"], ["cloth", "bread"])


class TestDifficultyAdaptation(unittest.TestCase):
    def test_fast_accurate_start_raises_difficulty_and_reorders(self):
        questions = [
            build_question("q1"),
            build_question("q2"),
            build_question("q3", difficulty="easy"),
            build_question("q4", difficulty="hard"),
        ]
        engine = AssessmentEngine("x", questions, clock=lambda: NOW)

        first = engine.submit_answer("q1", "right", 5000)
        second = engine.submit_answer("q2", "right", 5000)

        self.assertIsNone(first.difficulty_change)
        self.assertEqual(second.difficulty_change.direction, "increase")
        self.assertEqual(engine.session.current_difficulty, "hard")
        self.assertEqual([q.id for q in engine.session.questions], ["q1", "q2", "q4", "q3"])
        self.assertEqual(engine.current_question().id, "q4")

        adjustment = engine.session.difficulty_adjustments[0]
        self.assertEqual(adjustment["from"], "medium")
        self.assertEqual(adjustment["to"], "hard")
        self.assertEqual(adjustment["after_attempt"], 2)

    def test_repeated_misses_lower_difficulty(self):
        engine = AssessmentEngine("x", [build_question("q1"), build_question("q2")], clock=lambda: NOW)

        engine.submit_answer("q1", "wrong", 30000)
        outcome = engine.submit_answer("q1", "wrong", 30000)

        self.assertEqual(outcome.difficulty_change.direction, "decrease")
        self.assertEqual(engine.session.current_difficulty, "easy")
        self.assertEqual(engine.session.initial_difficulty, "medium")


if __name__ == "__main__":
    unittest.main()
