"""
Progress helpers for journal views, achievements and stats screens.

Provides:
- Journal progress summary (found, completed, total, percentage)
- Overall progress across lessons and journal pages
- Achievement definitions and evaluation after a lesson completes
- Play time formatting
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, List

if TYPE_CHECKING:
    from ..models.lesson_content import LessonCatalog

# Achievement id -> (title, description)
ACHIEVEMENTS: Dict[str, tuple] = {
    "first-lesson": ("Ancient Scholar", "Complete your first lesson"),
    "perfect-hieroglyphics": ("Hieroglyph Master", "Complete hieroglyphics lesson without mistakes"),
    "master-trader": ("Master Trader", "Complete marketplace lesson perfectly"),
    "pyramid-architect": ("Pyramid Architect", "Build a perfect pyramid"),
    "journal-collector": ("Journal Collector", "Find all journal pages"),
    "completionist": ("Time Traveler", "Complete all lessons and find all journal pages"),
}

# Lessons whose perfect run has a named achievement
PERFECT_LESSON_ACHIEVEMENTS: Dict[str, str] = {
    "hieroglyphics": "perfect-hieroglyphics",
    "marketplace": "master-trader",
    "pyramid": "pyramid-architect",
}


def _percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int(math.floor(100 * part / whole + 0.5))


def journal_progress(record: dict, catalog: LessonCatalog) -> Dict[str, int]:
    """
    Summarize journal progress.

    A page counts as found once collected and as completed once the lesson
    it belongs to is completed.

    Args:
        record: Learner record
        catalog: Lesson catalog supplying the journal pages

    Returns:
        Dict with found, completed, total, percentage

    Example:
        >>> journal_progress(store.record, catalog)
        {'found': 1, 'completed': 1, 'total': 12, 'percentage': 8}
    """
    page_ids = {page.id for page in catalog.journal_pages}
    completed_lessons = set(record["completed_lessons"])

    found = len(page_ids.intersection(record["collected_pages"]))
    completed = sum(
        1 for page in catalog.journal_pages if page.lesson_id and page.lesson_id in completed_lessons
    )
    total = len(page_ids)

    return {
        "found": found,
        "completed": completed,
        "total": total,
        "percentage": _percentage(completed, total),
    }


def total_progress(record: dict, catalog: LessonCatalog) -> float:
    """Mean of lesson completion and page collection ratios, in [0, 1]."""
    lessons = len(catalog.lessons)
    pages = len(catalog.journal_pages)
    lesson_ratio = len(set(catalog.lesson_ids).intersection(record["completed_lessons"])) / lessons if lessons else 0.0
    page_ratio = (
        len({p.id for p in catalog.journal_pages}.intersection(record["collected_pages"])) / pages
        if pages
        else 0.0
    )
    return (lesson_ratio + page_ratio) / 2


def perfect_achievement_id(lesson_id: str) -> str:
    return PERFECT_LESSON_ACHIEVEMENTS.get(lesson_id, f"perfect-{lesson_id}")


def evaluate_achievements(
    record: dict, catalog: LessonCatalog, lesson_id: str, perfect: bool = False
) -> List[str]:
    """
    Achievements newly earned by a record right after a lesson completes.

    Args:
        record: Learner record with the lesson's rewards already applied
        catalog: Lesson catalog
        lesson_id: Lesson that was just completed
        perfect: Every question of the passing assessment was right first try

    Returns:
        Achievement ids not yet present in the record, in award order
    """
    owned = set(record["achievements"])
    completed = set(record["completed_lessons"])
    collected = set(record["collected_pages"])
    all_pages = {page.id for page in catalog.journal_pages}

    earned = []
    if completed:
        earned.append("first-lesson")
    if perfect:
        earned.append(perfect_achievement_id(lesson_id))
    if all_pages and all_pages <= collected:
        earned.append("journal-collector")
        if set(catalog.lesson_ids) <= completed:
            earned.append("completionist")

    return [achievement for achievement in earned if achievement not in owned]


def achievement_progress(record: dict) -> float:
    """Share of the defined achievements the learner holds."""
    held = set(record["achievements"]).intersection(ACHIEVEMENTS)
    return len(held) / len(ACHIEVEMENTS)


def format_play_time(total_ms: int) -> str:
    """
    Format play time for display.

    Example:
        >>> format_play_time(3_900_000)
        '1h 5m'
        >>> format_play_time(240_000)
        '4m'
    """
    minutes = int(total_ms // 60_000)
    hours, remaining = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {remaining}m"
    return f"{minutes}m"
