"""
Learner record: the canonical, durable progress state of one save slot.

This module provides:
- The default record shape (snake_case JSON keys, sets stored as ordered lists)
- A closed set of mutation kinds with constructor helpers
- A pure reducer applying one mutation to a record

The reducer never mutates its input. Set-like fields are append-only and
adding an existing member returns the input record unchanged.
"""

from __future__ import annotations

import math
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from ..config import config

# Record fields holding append-only sets
SET_FIELDS = ("completed_lessons", "collected_pages", "unlocked_areas", "achievements")


def iso(moment: datetime) -> str:
    """Format a timestamp as ISO 8601 in UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def parse_iso(value: str) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp, returning None when it is not one."""
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def default_record(now: Optional[datetime] = None) -> dict:
    """Create a fresh learner record."""
    stamp = iso(now or datetime.now(timezone.utc))
    return {
        "selected_persona": None,
        "current_location": config.persistence.initial_location,
        "completed_lessons": [],
        "collected_pages": [],
        "lesson_progress": {},
        "unlocked_areas": list(config.persistence.initial_unlocked_areas),
        "achievements": [],
        "schema_version": config.persistence.schema_version,
        "last_saved_at": stamp,
        "total_play_time_ms": 0,
        "session_started_at": stamp,
    }


class MutationKind(str, Enum):
    SELECT_PERSONA = "select-persona"
    CHANGE_LOCATION = "change-location"
    COMPLETE_LESSON = "complete-lesson"
    COLLECT_PAGE = "collect-page"
    UPDATE_LESSON_PROGRESS = "update-lesson-progress"
    UNLOCK_AREA = "unlock-area"
    EARN_ACHIEVEMENT = "earn-achievement"
    LOAD = "load"
    RESET = "reset"


@dataclass(frozen=True)
class Mutation:
    """
    One state change request.

    Build instances through the classmethods rather than directly:
        Mutation.complete_lesson("hieroglyphics")
        Mutation.update_lesson_progress("hieroglyphics", 40)
    """

    kind: MutationKind
    target: Optional[str] = None
    value: Any = None

    @classmethod
    def select_persona(cls, persona_id: str) -> Mutation:
        return cls(MutationKind.SELECT_PERSONA, persona_id)

    @classmethod
    def change_location(cls, location_id: str) -> Mutation:
        return cls(MutationKind.CHANGE_LOCATION, location_id)

    @classmethod
    def complete_lesson(cls, lesson_id: str) -> Mutation:
        return cls(MutationKind.COMPLETE_LESSON, lesson_id)

    @classmethod
    def collect_page(cls, page_id: str) -> Mutation:
        return cls(MutationKind.COLLECT_PAGE, page_id)

    @classmethod
    def update_lesson_progress(cls, lesson_id: str, percent: float) -> Mutation:
        return cls(MutationKind.UPDATE_LESSON_PROGRESS, lesson_id, percent)

    @classmethod
    def unlock_area(cls, area_id: str) -> Mutation:
        return cls(MutationKind.UNLOCK_AREA, area_id)

    @classmethod
    def earn_achievement(cls, achievement_id: str) -> Mutation:
        return cls(MutationKind.EARN_ACHIEVEMENT, achievement_id)

    @classmethod
    def load(cls, record: dict) -> Mutation:
        return cls(MutationKind.LOAD, value=deepcopy(record))

    @classmethod
    def reset(cls) -> Mutation:
        return cls(MutationKind.RESET)


def _add_member(record: dict, field_name: str, member: str) -> dict:
    if member in record[field_name]:
        return record
    updated = deepcopy(record)
    updated[field_name].append(member)
    return updated


def reduce(record: dict, mutation: Mutation, now: Optional[datetime] = None) -> dict:
    """
    Apply a mutation to a learner record.

    Args:
        record: Current record (left untouched)
        mutation: Mutation to apply
        now: Clock reading used by load/reset (default: current UTC time)

    Returns:
        The new record, or the very same object when the mutation is a no-op
    """
    now = now or datetime.now(timezone.utc)
    kind = mutation.kind

    if kind is MutationKind.SELECT_PERSONA:
        # Persona is chosen once; only reset clears it
        if record["selected_persona"] is not None or not mutation.target:
            return record
        updated = deepcopy(record)
        updated["selected_persona"] = mutation.target
        return updated

    if kind is MutationKind.CHANGE_LOCATION:
        if not mutation.target or record["current_location"] == mutation.target:
            return record
        updated = deepcopy(record)
        updated["current_location"] = mutation.target
        return updated

    if kind is MutationKind.COMPLETE_LESSON:
        lesson_id = mutation.target
        if lesson_id in record["completed_lessons"] and record["lesson_progress"].get(lesson_id) == 100:
            return record
        updated = _add_member(record, "completed_lessons", lesson_id)
        if updated is record:
            updated = deepcopy(record)
        updated["lesson_progress"][lesson_id] = 100
        return updated

    if kind is MutationKind.COLLECT_PAGE:
        return _add_member(record, "collected_pages", mutation.target)

    if kind is MutationKind.UNLOCK_AREA:
        return _add_member(record, "unlocked_areas", mutation.target)

    if kind is MutationKind.EARN_ACHIEVEMENT:
        return _add_member(record, "achievements", mutation.target)

    if kind is MutationKind.UPDATE_LESSON_PROGRESS:
        value = mutation.value
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            return record
        percent = clamp_percent(value)
        if record["lesson_progress"].get(mutation.target) == percent:
            return record
        updated = deepcopy(record)
        updated["lesson_progress"][mutation.target] = percent
        return updated

    if kind is MutationKind.LOAD:
        updated = deepcopy(mutation.value)
        updated["session_started_at"] = iso(now)
        return updated

    if kind is MutationKind.RESET:
        return default_record(now)

    raise ValueError(f"Unknown mutation kind: {kind}")
