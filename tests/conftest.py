"""
Shared pytest fixtures and configuration for Chronicles tests.

This file is automatically discovered by pytest and provides
fixtures available to all tests. Everything time-dependent runs on a
ManualScheduler; nothing touches the real filesystem outside tmp_path.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add the repository root to path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent))

from chronicles.models.lesson_content import (  # noqa: E402
    AssessmentQuestion,
    LessonCatalog,
    QuestionFeedback,
    QuestionHints,
)
from chronicles.progress_store import ProgressStore  # noqa: E402
from chronicles.utils.persistence import MemoryStorage  # noqa: E402
from chronicles.utils.scheduling import ManualScheduler  # noqa: E402

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def scheduler():
    """Virtual clock starting at 2024-01-01T00:00:00Z."""
    return ManualScheduler(START)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage, scheduler):
    """
    Isolated progress store on memory storage and the virtual clock.

    Returns:
        ProgressStore: loaded (fresh) store
    """
    progress_store = ProgressStore(storage=storage, scheduler=scheduler)
    progress_store.load()
    yield progress_store
    progress_store.close(flush=False)


@pytest.fixture(scope="session")
def catalog():
    """The bundled lesson catalog."""
    return LessonCatalog.default()


@pytest.fixture
def hieroglyphics(catalog):
    return catalog.lesson("hieroglyphics")


@pytest.fixture
def valid_record():
    """
    Fixture providing a complete, valid learner record.

    Returns:
        dict: A record that passes schema validation
    """
    return {
        "selected_persona": "A",
        "current_location": "egypt-tomb",
        "completed_lessons": ["hieroglyphics"],
        "collected_pages": ["architect-journal-hieroglyphics"],
        "lesson_progress": {"hieroglyphics": 100, "marketplace": 40},
        "unlocked_areas": ["egypt-tomb", "tomb-inner-chamber"],
        "achievements": ["first-lesson"],
        "schema_version": "1.0.0",
        "last_saved_at": "2024-01-01T00:00:00+00:00",
        "total_play_time_ms": 120000,
        "session_started_at": "2024-01-01T00:00:00+00:00",
    }


def make_question(
    question_id,
    correct="right",
    difficulty="medium",
    expected_time_ms=30000,
    topic="symbols",
    question_type="multiple-choice",
    almost_correct=None,
):
    """Build an assessment question for tests."""
    return AssessmentQuestion(
        id=question_id,
        type=question_type,
        question=f"Question {question_id}?",
        correct_answer=correct,
        options=("right", "wrong", "other"),
        difficulty=difficulty,
        topic=topic,
        expected_time_ms=expected_time_ms,
        hints=QuestionHints(
            level1=f"{question_id} nudge",
            level2=f"{question_id} guidance",
            level3=f"{question_id} nearly the answer",
        ),
        feedback=QuestionFeedback(
            correct="Correct!",
            incorrect="Not quite.",
            almost_correct=almost_correct,
            encouragement=("Keep going!",),
        ),
    )


@pytest.fixture
def question_factory():
    """Expose make_question to tests."""
    return make_question


@pytest.fixture
def questions():
    """Three medium questions with known answers."""
    return [make_question("q1"), make_question("q2"), make_question("q3")]


# Pytest hooks for better test output


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark tests in unit/ directory as unit tests
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Mark tests in integration/ directory as integration tests
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
