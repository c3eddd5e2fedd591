"""
Schema validation utilities for the Chronicles core.

Provides JSON Schema validation with clear error messages plus the
field-level repair used to recover damaged save records.

Features:
- Format validation (date-time)
- Deep copy to prevent mutations
- Field-by-field sanitization with defaults for invalid fields
- Removal of unknown keys
- Unique ID, reference and acyclic prerequisite checks for lesson content
- Transparent repair tracking
"""

from __future__ import annotations

import json
import math
from collections import Counter
from copy import deepcopy
from pathlib import Path
from typing import Any, Optional

from jsonschema import Draft7Validator, FormatChecker, ValidationError

from ..config import config
from ..models.learner_record import parse_iso


class ValidationResult:
    """
    Result of a validation attempt.

    Attributes:
        valid: Whether data passed validation
        errors: List of error messages
        data: The validated data (the rebuilt record after sanitize)
        repairs: List of repairs applied (for transparency)
    """

    def __init__(
        self,
        valid: bool,
        errors: list[str],
        data: Any = None,
        repairs: Optional[list[str]] = None,
    ):
        self.valid = valid
        self.errors = errors
        self.data = data
        self.repairs = repairs or []

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.valid

    def __str__(self) -> str:
        """Human-readable representation."""
        if self.valid:
            msg = "Validation passed"
            if self.repairs:
                msg += f" (with {len(self.repairs)} repair(s))"
            return msg
        return f"Validation failed with {len(self.errors)} error(s):\n" + "\n".join(
            f"  - {error}" for error in self.errors
        )


class SchemaValidator:
    """
    JSON Schema validator with readable error messages.

    Usage:
        validator = SchemaValidator("path/to/schema.json")
        result = validator.validate(data)
        if not result:
            logger.warning("Invalid: %s", result.errors)
    """

    def __init__(self, schema_path: Path | str):
        """
        Initialize validator with a schema file.

        Args:
            schema_path: Path to JSON Schema file
        """
        self.schema_path = Path(schema_path)
        with open(self.schema_path, "r", encoding="utf-8") as f:
            self.schema = json.load(f)
        self.format_checker = FormatChecker()
        # jsonschema only checks date-time when an optional RFC 3339 package is installed
        self.format_checker.checks("date-time")(_is_timestamp)
        self.validator = Draft7Validator(self.schema, format_checker=self.format_checker)

    def validate(self, data: Any) -> ValidationResult:
        """
        Validate data against schema.

        Args:
            data: Data to validate

        Returns:
            ValidationResult with validation status and any errors
        """
        errors = [self._format_error(error) for error in self.validator.iter_errors(data)]
        if errors:
            return ValidationResult(valid=False, errors=errors, data=data)
        return ValidationResult(valid=True, errors=[], data=data)

    def _format_error(self, error: ValidationError) -> str:
        """
        Convert ValidationError to human-readable message with details.

        Args:
            error: jsonschema ValidationError

        Returns:
            Formatted error message with validator and schema path
        """
        path = " -> ".join(str(p) for p in error.path) if error.path else "root"
        validator_name = getattr(error, "validator", "unknown")
        schema_path = "/".join(str(p) for p in error.schema_path)
        return (
            f"At '{path}': {error.message} "
            f"[validator={validator_name}, schema_path=/{schema_path}]"
        )


class LearnerRecordValidator(SchemaValidator):
    """
    Validator for persisted learner records.

    A record that fails validation is never used as-is: sanitize() rebuilds it
    field by field, keeping every field that validates on its own, salvaging
    what it can from damaged collections and defaulting the rest.
    """

    def __init__(self, schema_path: Optional[Path] = None):
        super().__init__(schema_path or config.paths.learner_record_schema)
        self._field_validators = {
            name: Draft7Validator(subschema, format_checker=self.format_checker)
            for name, subschema in self.schema["properties"].items()
        }

    def validate(self, data: Any) -> ValidationResult:
        result = super().validate(data)
        if result.valid and not _is_finite(result.data):
            return ValidationResult(
                valid=False,
                errors=["At 'root': record contains a non-finite number"],
                data=result.data,
                repairs=result.repairs,
            )
        return result

    def sanitize(self, data: dict, defaults: dict) -> ValidationResult:
        """
        Rebuild a damaged record.

        Args:
            data: Parsed record (must be a dict)
            defaults: A fresh default record; supplies every field that cannot
                be kept or salvaged, and always the new session start

        Returns:
            ValidationResult whose data is a schema-valid record
        """
        sanitized: dict = {}
        repairs: list[str] = []

        for k in data:
            if k not in self._field_validators:
                repairs.append(f"Removed unknown key '{k}'")

        for name, field_validator in self._field_validators.items():
            if name not in data:
                sanitized[name] = defaults[name]
                repairs.append(f"Defaulted missing field '{name}'")
                continue

            value = data[name]
            if field_validator.is_valid(value) and _is_finite(value):
                sanitized[name] = deepcopy(value)
                continue

            salvaged = self._salvage(name, value)
            if salvaged is not None and field_validator.is_valid(salvaged):
                sanitized[name] = salvaged
                repairs.append(f"Salvaged invalid field '{name}'")
            else:
                sanitized[name] = defaults[name]
                repairs.append(f"Defaulted invalid field '{name}'")

        # A recovered record always starts a new session
        sanitized["session_started_at"] = defaults["session_started_at"]

        result = self.validate(sanitized)
        result.repairs = repairs
        return result

    def _salvage(self, name: str, value: Any) -> Any:
        """Keep the valid members of a damaged collection or coerce a damaged count."""
        subschema = self.schema["properties"][name]
        kind = subschema.get("type")

        if kind == "array":
            if not isinstance(value, list):
                return None
            item_validator = Draft7Validator(subschema.get("items", {}))
            kept: list = []
            for item in value:
                if item_validator.is_valid(item) and item not in kept:
                    kept.append(item)
            return kept

        if kind == "object":
            if not isinstance(value, dict):
                return None
            entry_validator = Draft7Validator(subschema.get("additionalProperties", {}))
            return {
                k: v
                for k, v in value.items()
                if entry_validator.is_valid(v) and _is_finite(v)
            }

        if kind == "integer":
            if _is_number_like(value) and _is_finite(value) and value >= 0:
                return int(value)
            return None

        return None


class CatalogValidator(SchemaValidator):
    """
    Validator for static lesson catalogs.

    Adds domain-specific validation beyond JSON Schema:
    - Unique lesson, page and per-lesson question IDs
    - Prerequisite and journal page references
    - Acyclic prerequisite chain
    """

    def __init__(self, schema_path: Optional[Path] = None):
        super().__init__(schema_path or config.paths.lesson_catalog_schema)

    def validate(self, data: Any) -> ValidationResult:
        """
        Validate a catalog with domain-specific checks.

        Args:
            data: Catalog data to validate

        Returns:
            ValidationResult
        """
        result = super().validate(data)
        if not result.valid:
            return result

        errors = []
        lessons = data["lessons"]
        pages = data["journal_pages"]

        duplicate_lessons = self._find_duplicate_ids(lessons)
        if duplicate_lessons:
            errors.append(f"Duplicate lesson IDs found: {', '.join(sorted(duplicate_lessons))}")

        duplicate_pages = self._find_duplicate_ids(pages)
        if duplicate_pages:
            errors.append(f"Duplicate journal page IDs found: {', '.join(sorted(duplicate_pages))}")

        for lesson in lessons:
            duplicate_questions = self._find_duplicate_ids(lesson["assessment"]["questions"])
            if duplicate_questions:
                errors.append(
                    f"Lesson '{lesson['id']}' has duplicate question IDs: "
                    f"{', '.join(sorted(duplicate_questions))}"
                )

        errors.extend(self._check_references(lessons, pages))

        if not self._check_acyclic(lessons):
            errors.append("Prerequisite chain has a cycle (lessons form a loop)")

        return ValidationResult(valid=not errors, errors=errors, data=data)

    def _check_references(self, lessons: list[dict], pages: list[dict]) -> list[str]:
        errors = []
        lesson_ids = {lesson["id"] for lesson in lessons}
        page_ids = {page["id"] for page in pages}

        for lesson in lessons:
            prereq = lesson.get("prerequisite")
            if prereq == lesson["id"]:
                errors.append(f"Lesson '{lesson['id']}' lists itself as its prerequisite")
            elif prereq is not None and prereq not in lesson_ids:
                errors.append(
                    f"Lesson '{lesson['id']}' references unknown prerequisite '{prereq}'"
                )

            for page_ref in {lesson["journal_page_id"], lesson["reward"]["journal_page_id"]}:
                if page_ref not in page_ids:
                    errors.append(
                        f"Lesson '{lesson['id']}' references unknown journal page '{page_ref}'"
                    )

        for page in pages:
            if "lesson_id" in page and page["lesson_id"] not in lesson_ids:
                errors.append(
                    f"Journal page '{page['id']}' references unknown lesson '{page['lesson_id']}'"
                )

        return errors

    def _find_duplicate_ids(self, items: list[dict]) -> set[str]:
        counts = Counter(item["id"] for item in items)
        return {i for i, c in counts.items() if c > 1}

    def _check_acyclic(self, lessons: list[dict]) -> bool:
        """Follow each prerequisite chain; a chain longer than the catalog loops."""
        prereq_of = {lesson["id"]: lesson.get("prerequisite") for lesson in lessons}
        for start in prereq_of:
            seen = {start}
            current = prereq_of.get(start)
            while current is not None:
                if current in seen:
                    return False
                seen.add(current)
                current = prereq_of.get(current)
        return True


def _is_timestamp(value: Any) -> bool:
    """date-time format check; non-strings are left to the type keyword."""
    if not isinstance(value, str):
        return True
    return "T" in value.upper() and parse_iso(value) is not None


def _is_number_like(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_finite(value: Any) -> bool:
    """JSON Schema bounds accept NaN; reject NaN and infinities anywhere in value."""
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, dict):
        return all(_is_finite(v) for v in value.values())
    if isinstance(value, list):
        return all(_is_finite(v) for v in value)
    return True


# Convenience functions for quick validation
def validate_learner_record(data: Any) -> ValidationResult:
    """
    Quick validation of a learner record.

    Example:
        result = validate_learner_record(record)
        if not result:
            result = LearnerRecordValidator().sanitize(record, default_record(now))
    """
    return LearnerRecordValidator().validate(data)


def validate_catalog(data: Any) -> ValidationResult:
    """Quick validation of a lesson catalog."""
    return CatalogValidator().validate(data)
