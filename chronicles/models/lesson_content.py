"""
Static lesson content: lessons, assessment questions and journal pages.

Content is authored as JSON, validated against lesson_catalog.schema.json
and exposed as frozen dataclasses. The core only ever reads it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Literal, Optional, Union

from ..config import config
from ..exceptions import ContentError
from ..utils.validation import CatalogValidator

logger = logging.getLogger(__name__)

Difficulty = Literal["easy", "medium", "hard"]
QuestionType = Literal["multiple-choice", "drag-drop", "demonstration", "interactive"]
Answer = Union[str, tuple[str, ...]]

DIFFICULTY_ORDER: tuple[str, ...] = ("easy", "medium", "hard")


@dataclass(frozen=True)
class QuestionHints:
    """Escalating hints: a gentle nudge, specific guidance, near-disclosure."""

    level1: str
    level2: str
    level3: str

    def at(self, level: int) -> Optional[str]:
        return {1: self.level1, 2: self.level2, 3: self.level3}.get(level)


@dataclass(frozen=True)
class QuestionFeedback:
    correct: str
    incorrect: str
    almost_correct: Optional[str] = None
    encouragement: tuple[str, ...] = ()


@dataclass(frozen=True)
class AssessmentQuestion:
    """
    One assessment item.

    Attributes:
        id: Question identifier, unique within its lesson
        type: Interaction type
        question: Prompt text
        options: Choices offered to the learner
        correct_answer: A single answer or an unordered set of answers
        difficulty: Difficulty band
        topic: Topic used for strength/weakness analysis
        expected_time_ms: Time a typical learner needs
        hints: Escalating hints
        feedback: Feedback texts
    """

    id: str
    type: QuestionType
    question: str
    correct_answer: Answer
    feedback: QuestionFeedback
    hints: QuestionHints
    options: tuple[str, ...] = ()
    difficulty: Difficulty = "medium"
    topic: str = ""
    expected_time_ms: int = 30_000
    learning_objective: str = ""
    concept_tags: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict, lesson_topic: str = "") -> AssessmentQuestion:
        answer = data["correct_answer"]
        hints = data.get("hints") or {}
        feedback = data["feedback"]
        return cls(
            id=data["id"],
            type=data["type"],
            question=data["question"],
            correct_answer=tuple(answer) if isinstance(answer, list) else answer,
            feedback=QuestionFeedback(
                correct=feedback["correct"],
                incorrect=feedback["incorrect"],
                almost_correct=feedback.get("almost_correct"),
                encouragement=tuple(feedback.get("encouragement", ())),
            ),
            # Questions without authored hints fall back to their incorrect feedback
            hints=QuestionHints(
                level1=hints.get("level1", feedback["incorrect"]),
                level2=hints.get("level2", feedback["incorrect"]),
                level3=hints.get("level3", feedback["incorrect"]),
            ),
            options=tuple(data.get("options", ())),
            difficulty=data.get("difficulty", "medium"),
            topic=data.get("topic") or lesson_topic,
            expected_time_ms=data.get("expected_time_ms", config.assessment.default_expected_time_ms),
            learning_objective=data.get("learning_objective", ""),
            concept_tags=tuple(data.get("concept_tags", ())),
        )


@dataclass(frozen=True)
class InformationBlock:
    type: str
    content: str
    caption: Optional[str] = None


@dataclass(frozen=True)
class PracticeActivity:
    id: str
    type: str
    instructions: str
    hint: Optional[str] = None


@dataclass(frozen=True)
class ContextPhase:
    duration_seconds: float
    dialogue: tuple[str, ...]
    character_reaction: Optional[str] = None


@dataclass(frozen=True)
class InformationPhase:
    duration_seconds: float
    title: str
    blocks: tuple[InformationBlock, ...]


@dataclass(frozen=True)
class PracticePhase:
    duration_seconds: float
    title: str
    activities: tuple[PracticeActivity, ...]
    hints: tuple[str, ...] = ()


@dataclass(frozen=True)
class AssessmentPhase:
    questions: tuple[AssessmentQuestion, ...]
    passing_score: float
    duration_seconds: float = 0


@dataclass(frozen=True)
class RewardPhase:
    dialogue: tuple[str, ...]
    journal_page_id: str
    unlocks_area: Optional[str] = None
    applied_puzzle: Optional[str] = None
    duration_seconds: float = 0


@dataclass(frozen=True)
class LessonContent:
    """A lesson and the payload of each of its five phases."""

    id: str
    title: str
    topic: str
    journal_page_id: str
    context: ContextPhase
    information: InformationPhase
    practice: PracticePhase
    assessment: AssessmentPhase
    reward: RewardPhase
    prerequisite: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> LessonContent:
        context = data["context"]
        information = data["information"]
        practice = data["practice"]
        assessment = data["assessment"]
        reward = data["reward"]
        return cls(
            id=data["id"],
            title=data["title"],
            topic=data["topic"],
            journal_page_id=data["journal_page_id"],
            prerequisite=data.get("prerequisite"),
            context=ContextPhase(
                duration_seconds=context["duration_seconds"],
                dialogue=tuple(context["dialogue"]),
                character_reaction=context.get("character_reaction"),
            ),
            information=InformationPhase(
                duration_seconds=information["duration_seconds"],
                title=information["title"],
                blocks=tuple(
                    InformationBlock(b["type"], b["content"], b.get("caption"))
                    for b in information["blocks"]
                ),
            ),
            practice=PracticePhase(
                duration_seconds=practice["duration_seconds"],
                title=practice["title"],
                activities=tuple(
                    PracticeActivity(
                        id=a["id"],
                        type=a["type"],
                        instructions=a["instructions"],
                        hint=(a.get("feedback") or {}).get("hint"),
                    )
                    for a in practice["activities"]
                ),
                hints=tuple(practice.get("hints", ())),
            ),
            assessment=AssessmentPhase(
                questions=tuple(
                    AssessmentQuestion.from_dict(q, data["topic"]) for q in assessment["questions"]
                ),
                passing_score=assessment["passing_score"],
                duration_seconds=assessment.get("duration_seconds", 0),
            ),
            reward=RewardPhase(
                dialogue=tuple(reward["dialogue"]),
                journal_page_id=reward["journal_page_id"],
                unlocks_area=reward.get("unlocks_area"),
                applied_puzzle=reward.get("applied_puzzle"),
                duration_seconds=reward.get("duration_seconds", 0),
            ),
        )


@dataclass(frozen=True)
class JournalPage:
    id: str
    title: str
    topic: str
    page_number: int
    lesson_id: Optional[str] = None
    discovery_location: Optional[str] = None
    summary: str = ""


@dataclass(frozen=True)
class LessonCatalog:
    """
    Read-only set of lessons and journal pages.

    Usage:
        catalog = LessonCatalog.default()
        lesson = catalog.lesson("hieroglyphics")
        catalog.is_lesson_accessible("marketplace", completed=["hieroglyphics"])
    """

    lessons: tuple[LessonContent, ...]
    journal_pages: tuple[JournalPage, ...] = ()
    _by_id: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        self._by_id.update({lesson.id: lesson for lesson in self.lessons})

    @classmethod
    def from_dict(cls, data: dict) -> LessonCatalog:
        """
        Build a catalog from parsed JSON.

        Raises:
            ContentError: If the data fails schema or reference validation
        """
        result = CatalogValidator().validate(data)
        if not result:
            raise ContentError("Invalid lesson catalog:\n" + "\n".join(result.errors))

        return cls(
            lessons=tuple(LessonContent.from_dict(lesson) for lesson in data["lessons"]),
            journal_pages=tuple(
                sorted(
                    (
                        JournalPage(
                            id=p["id"],
                            title=p["title"],
                            topic=p["topic"],
                            page_number=p["page_number"],
                            lesson_id=p.get("lesson_id"),
                            discovery_location=p.get("discovery_location"),
                            summary=p.get("summary", ""),
                        )
                        for p in data["journal_pages"]
                    ),
                    key=lambda page: page.page_number,
                )
            ),
        )

    @classmethod
    def load(cls, filepath: Path | str) -> LessonCatalog:
        """Load and validate a catalog file."""
        filepath = Path(filepath)
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ContentError(f"Cannot read lesson catalog {filepath}: {e}") from e

        catalog = cls.from_dict(data)
        logger.debug(
            "Loaded %d lessons and %d journal pages from %s",
            len(catalog.lessons),
            len(catalog.journal_pages),
            filepath,
        )
        return catalog

    @classmethod
    def default(cls) -> LessonCatalog:
        """Load the bundled catalog."""
        return cls.load(config.paths.default_catalog)

    # ==================== Queries ====================

    def lesson(self, lesson_id: str) -> LessonContent:
        """
        Look up a lesson.

        Raises:
            ContentError: If no lesson has this id
        """
        try:
            return self._by_id[lesson_id]
        except KeyError:
            raise ContentError(f"Unknown lesson: {lesson_id}") from None

    def has_lesson(self, lesson_id: str) -> bool:
        return lesson_id in self._by_id

    @property
    def lesson_ids(self) -> tuple[str, ...]:
        return tuple(lesson.id for lesson in self.lessons)

    def page(self, page_id: str) -> Optional[JournalPage]:
        return next((p for p in self.journal_pages if p.id == page_id), None)

    def is_lesson_accessible(self, lesson_id: str, completed: Iterable[str]) -> bool:
        """A lesson is accessible when it has no prerequisite or its prerequisite is completed."""
        lesson = self._by_id.get(lesson_id)
        if lesson is None:
            return False
        return lesson.prerequisite is None or lesson.prerequisite in set(completed)
