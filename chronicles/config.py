"""
Configuration management for the Chronicles learning core.

This module centralizes all configuration settings:
- Environment overrides for intervals, paths and log level
- Sensible defaults for development
- Every adaptive heuristic threshold as a named, tunable field
- Single source of truth for schema and catalog locations
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class PathConfig:
    """File system paths - single source of truth for schemas and content."""

    package_root: Path = field(default_factory=lambda: Path(__file__).parent)

    schemas_dir: Path = field(init=False)
    learner_record_schema: Path = field(init=False)
    lesson_catalog_schema: Path = field(init=False)
    default_catalog: Path = field(init=False)

    def __post_init__(self):
        """Initialize computed paths."""
        self.schemas_dir = self.package_root / "schemas"
        self.learner_record_schema = self.schemas_dir / "learner_record.schema.json"
        self.lesson_catalog_schema = self.schemas_dir / "lesson_catalog.schema.json"
        self.default_catalog = self.package_root / "data" / "lessons.json"


@dataclass
class PersistenceConfig:
    """Durable save slot settings."""

    save_key: str = "cat-chronicles-save"
    schema_version: str = "1.0.0"
    export_version: str = "1.0.0"
    data_dir: Path = field(
        default_factory=lambda: Path(
            os.getenv("CHRONICLES_DATA_DIR", str(Path.home() / ".chronicles"))
        )
    )

    # Coalesce bursts of mutations into one write
    autosave_debounce_seconds: float = field(
        default_factory=lambda: float(os.getenv("CHRONICLES_AUTOSAVE_DEBOUNCE", "1.0"))
    )
    # Fold elapsed wall-clock time into total play time
    session_tick_seconds: float = field(
        default_factory=lambda: float(os.getenv("CHRONICLES_SESSION_TICK", "60.0"))
    )

    initial_location: str = "character-selection"
    initial_unlocked_areas: tuple = ("egypt-tomb",)


@dataclass
class LessonConfig:
    """Lesson sequencing configuration."""

    max_assessment_attempts: int = 3
    default_passing_score: float = 70.0


@dataclass
class AssessmentConfig:
    """Assessment sub-session configuration."""

    max_hint_level: int = 3
    default_expected_time_ms: int = 30_000
    max_attempts_per_question: int = 3

    # Difficulty adaptation wiring
    adjustment_window: int = 5
    apply_confidence_threshold: float = 0.75

    # Reproducibility
    random_seed: Optional[int] = None  # Set for reproducible feedback messages


@dataclass
class AdapterConfig:
    """Difficulty adapter heuristics (empirically chosen, kept tunable)."""

    min_attempts: int = 2
    min_attempts_for_trend: int = 3

    # Increase rules
    increase_accuracy_with_trend: float = 0.85
    increase_trend: float = 0.1
    increase_accuracy_with_speed: float = 0.8
    increase_speed_trend: float = 0.2
    increase_mastery_indicators: int = 2
    increase_accuracy_stable: float = 0.9

    # Decrease rules
    decrease_accuracy_with_trend: float = 0.4
    decrease_trend: float = -0.1
    decrease_struggle_indicators: int = 2
    decrease_average_attempts: float = 2.5
    decrease_accuracy_floor: float = 0.3

    # Indicator cut-offs (ratios of the window)
    fast_and_accurate_time_ratio: float = 0.8
    fast_and_accurate_share: float = 0.6
    hint_independent_share: float = 0.8
    first_attempt_success_share: float = 0.7
    first_attempt_mastery_share: float = 0.8
    consistent_variance: float = 0.1
    high_hint_average: float = 1.5
    multiple_attempts_average: float = 2.0
    slow_time_ratio: float = 1.5
    slow_share: float = 0.6
    low_accuracy: float = 0.5
    high_accuracy: float = 0.85
    fast_time_ratio: float = 0.7
    fast_share: float = 0.6
    variance_window: int = 3

    # Profile-based fine-tuning
    low_confidence_accuracy: float = 0.6
    high_persistence_accuracy: float = 0.7
    hint_dependent_accuracy: float = 0.8
    low_confidence_confidence: float = 0.7
    high_persistence_confidence: float = 0.6
    hint_dependent_confidence: float = 0.8

    # Learner profile derivation from performance history
    profile_high_confidence_accuracy: float = 0.8
    profile_low_confidence_accuracy: float = 0.6
    profile_high_persistence: float = 0.7
    profile_low_persistence: float = 0.4
    profile_high_hint_ratio: float = 1.0
    profile_low_hint_ratio: float = 0.25


@dataclass
class TrackerConfig:
    """Performance analytics thresholds."""

    consistency_window: int = 3

    # Mastery tiers: (accuracy, speed in questions/minute, max hint ratio)
    advanced: tuple = (0.9, 2.0, 0.5)
    proficient: tuple = (0.8, 1.5, 1.0)
    developing: tuple = (0.6, 1.0, None)

    topic_strength_accuracy: float = 0.8
    topic_weakness_accuracy: float = 0.6
    topic_min_attempts: int = 2

    improvement_gain: float = 0.1
    struggle_accuracy: float = 0.5
    consistency_insight: float = 0.8
    persistence_low_accuracy: float = 0.7

    week_days: int = 7
    month_days: int = 30
    improvement_window: int = 5


@dataclass
class LoggingConfig:
    """Logging configuration."""

    log_level: str = field(
        default_factory=lambda: os.getenv("CHRONICLES_LOG_LEVEL", "INFO")
    )
    log_format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Config:
    """
    Main configuration class. Singleton pattern.

    Usage:
        from chronicles.config import config

        # Access settings
        delay = config.persistence.autosave_debounce_seconds
        max_attempts = config.lesson.max_assessment_attempts
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance.paths = PathConfig()
            cls._instance.persistence = PersistenceConfig()
            cls._instance.lesson = LessonConfig()
            cls._instance.assessment = AssessmentConfig()
            cls._instance.adapter = AdapterConfig()
            cls._instance.tracker = TrackerConfig()
            cls._instance.logging = LoggingConfig()

        return cls._instance

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if self.persistence.autosave_debounce_seconds < 0:
            errors.append(
                f"autosave_debounce_seconds must be >= 0, got {self.persistence.autosave_debounce_seconds}"
            )

        if self.persistence.session_tick_seconds <= 0:
            errors.append(
                f"session_tick_seconds must be > 0, got {self.persistence.session_tick_seconds}"
            )

        if not self.persistence.save_key:
            errors.append("save_key must not be empty")

        if self.lesson.max_assessment_attempts < 1:
            errors.append(
                f"max_assessment_attempts must be >= 1, got {self.lesson.max_assessment_attempts}"
            )

        if not (0 <= self.lesson.default_passing_score <= 100):
            errors.append(
                f"default_passing_score must be in [0, 100], got {self.lesson.default_passing_score}"
            )

        if self.assessment.max_hint_level < 1:
            errors.append(
                f"max_hint_level must be >= 1, got {self.assessment.max_hint_level}"
            )

        if self.assessment.adjustment_window < self.adapter.min_attempts:
            errors.append(
                f"adjustment_window ({self.assessment.adjustment_window}) must be >= "
                f"adapter min_attempts ({self.adapter.min_attempts})"
            )

        if not (0 <= self.assessment.apply_confidence_threshold <= 1):
            errors.append(
                f"apply_confidence_threshold must be in [0, 1], got {self.assessment.apply_confidence_threshold}"
            )

        if self.tracker.consistency_window < 1:
            errors.append(
                f"consistency_window must be >= 1, got {self.tracker.consistency_window}"
            )

        if not self.paths.learner_record_schema.exists():
            errors.append(f"Learner record schema not found: {self.paths.learner_record_schema}")

        if not self.paths.lesson_catalog_schema.exists():
            errors.append(f"Lesson catalog schema not found: {self.paths.lesson_catalog_schema}")

        if logging.getLevelName(self.logging.log_level.upper()) == f"Level {self.logging.log_level.upper()}":
            errors.append(f"Unknown log level: {self.logging.log_level}")

        return errors


# Global config instance
config = Config()


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install a basic root handler using LoggingConfig.

    Call once from the host application's entrypoint; library modules only
    create module loggers.
    """
    logging.basicConfig(
        level=(level or config.logging.log_level).upper(),
        format=config.logging.log_format,
    )
