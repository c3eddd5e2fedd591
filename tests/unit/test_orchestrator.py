"""
End-to-end tests for the game session facade.

Tests:
- Persona and location selection
- Lesson gating
- A full lesson from context to completion
- Stats, journal and achievement queries
- Reset
"""

import pytest

from chronicles.exceptions import ContentError, InvalidSessionState
from chronicles.models.lesson_session import Phase
from chronicles.orchestrator import GameSession


@pytest.fixture
def payloads():
    return []


@pytest.fixture
def game(store, catalog, payloads):
    return GameSession(store, catalog, on_lesson_complete=payloads.append, seed=1)


def play_hieroglyphics(game, catalog, time_spent_ms=10000):
    lesson = catalog.lesson("hieroglyphics")
    game.open_lesson("hieroglyphics")
    game.advance_phase()
    game.skip_information()
    game.complete_activity()
    for question in lesson.assessment.questions:
        game.submit_answer(question.id, question.correct_answer, time_spent_ms)
    outcome = game.finish_assessment()
    for _ in lesson.reward.dialogue:
        game.advance_phase()
    return outcome


class TestSelection:
    def test_persona_chosen_once(self, game):
        game.select_persona("A")
        game.select_persona("B")

        assert game.game_stats()["persona"] == "A"

    def test_change_location(self, game):
        game.change_location("egypt-tomb")
        assert game.store.record["current_location"] == "egypt-tomb"


class TestGating:
    def test_first_lesson_open_others_locked(self, game):
        assert game.is_lesson_accessible("hieroglyphics")
        assert not game.is_lesson_accessible("marketplace")

    def test_locked_lesson_cannot_open(self, game):
        with pytest.raises(InvalidSessionState):
            game.open_lesson("marketplace")

    def test_unknown_lesson(self, game):
        with pytest.raises(ContentError):
            game.open_lesson("astronomy")

    def test_events_need_an_open_lesson(self, game):
        assert game.current_phase() is None
        assert game.phase_progress_percent() == 0
        with pytest.raises(InvalidSessionState):
            game.advance_phase()
        with pytest.raises(InvalidSessionState):
            game.request_hint()

    def test_opening_a_lesson_exits_the_current_one(self, game):
        first = game.open_lesson("hieroglyphics")
        second = game.open_lesson("hieroglyphics")

        assert first.session.is_exited
        assert game.lesson is second
        assert game.current_phase() is Phase.CONTEXT


class TestFullLesson:
    def test_perfect_first_lesson(self, game, catalog, payloads):
        game.select_persona("A")
        game.change_location("egypt-tomb")

        outcome = play_hieroglyphics(game, catalog)

        assert outcome.passed
        assert outcome.result.score == 100
        assert outcome.analytics.mastery_level == "advanced"
        assert game.current_phase() is None

        record = game.store.record
        assert record["completed_lessons"] == ["hieroglyphics"]
        assert record["lesson_progress"] == {"hieroglyphics": 100}
        assert record["collected_pages"] == ["architect-journal-hieroglyphics"]

        assert len(payloads) == 1
        assert payloads[0].lesson_id == "hieroglyphics"
        assert payloads[0].unlocked_area_id == "tomb-inner-chamber"
        assert game.completed_payloads == payloads

        assert game.achievements_unlocked() == ["first-lesson", "perfect-hieroglyphics"]
        assert game.journal_progress()["found"] == 1
        assert game.is_lesson_accessible("marketplace")

    def test_progress_is_saved(self, game, catalog, storage, scheduler):
        play_hieroglyphics(game, catalog)
        scheduler.advance(5)

        saved = storage.get(game.store.key)

        assert saved is not None
        assert '"hieroglyphics"' in saved

    def test_exit_lesson(self, game):
        game.open_lesson("hieroglyphics")
        game.exit_lesson()

        assert game.lesson is None
        assert game.current_phase() is None


class TestStats:
    def test_stats_shape(self, game, catalog, scheduler):
        game.select_persona("A")
        scheduler.advance(3_900)

        stats = game.game_stats()

        assert stats["persona"] == "A"
        assert stats["play_time"]["formatted"] == "1h 5m"
        assert stats["play_time"]["hours"] == 1
        assert stats["play_time"]["minutes"] == 5
        assert stats["progress"]["overall"] == 0
        assert stats["progress"]["journal"]["total"] == len(catalog.journal_pages)
        assert stats["achievements"]["count"] == 0
        assert stats["save_info"]["is_corrupted"] is False
        assert stats["save_info"]["schema_version"] == "1.0.0"

    def test_stats_after_lesson(self, game, catalog):
        play_hieroglyphics(game, catalog)

        stats = game.game_stats()

        assert stats["progress"]["completed_lessons"] == ["hieroglyphics"]
        assert stats["progress"]["overall"] == pytest.approx((1 / 3 + 1 / 12) / 2)
        assert stats["achievements"]["count"] == 2


class TestReset:
    def test_reset_wipes_progress(self, game, catalog, storage):
        game.select_persona("A")
        play_hieroglyphics(game, catalog)

        assert game.reset_progress() is True

        assert game.lesson is None
        assert game.store.record["selected_persona"] is None
        assert game.store.record["completed_lessons"] == []
        assert storage.get(game.store.key) is None
