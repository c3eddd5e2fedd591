"""
Durable progress store: the single owner of the learner record.

Features:
- Load with validation, field-level recovery and corrupted-save cleanup
- Pure, idempotent mutations applied under a re-entrant lock
- Debounced autosave so bursts of mutations produce one write
- Periodic folding of session time into total play time
- Export/import of save records
- Storage failures are logged and reported as False, never raised
"""

from __future__ import annotations

import json
import logging
import threading
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .config import PersistenceConfig, config
from .exceptions import StorageError
from .models.learner_record import Mutation, default_record, iso, parse_iso, reduce
from .utils.persistence import KeyValueStorage, get_storage
from .utils.scheduling import Debouncer, RepeatingTimer, Scheduler, ThreadingScheduler
from .utils.validation import LearnerRecordValidator

logger = logging.getLogger(__name__)

EXPORT_FIELDS = ("exported_at", "export_version")


class RecoveryOutcome(str, Enum):
    FRESH = "fresh"  # Nothing stored yet
    LOADED = "loaded"  # Stored record was valid
    RECOVERED = "recovered"  # Sanitized field by field and written back
    DISCARDED = "discarded"  # Stored text unusable; removed and replaced
    UNAVAILABLE = "unavailable"  # Storage could not be read; memory record kept


@dataclass(frozen=True)
class LoadResult:
    record: dict
    outcome: RecoveryOutcome
    repairs: tuple = ()

    @property
    def recovered(self) -> bool:
        return self.outcome in (RecoveryOutcome.RECOVERED, RecoveryOutcome.DISCARDED)


class ProgressStore:
    """
    Owns one save slot.

    Usage:
        store = ProgressStore(MemoryStorage(), ManualScheduler())
        store.load()
        store.start()
        store.complete_lesson("hieroglyphics")
        store.close()
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        scheduler: Optional[Scheduler] = None,
        key: Optional[str] = None,
        validator: Optional[LearnerRecordValidator] = None,
        settings: Optional[PersistenceConfig] = None,
    ):
        """
        Initialize the store with a fresh in-memory record.

        Args:
            storage: Key-value backend (default: global FileStorage)
            scheduler: Timer source (default: ThreadingScheduler)
            key: Storage key (default: PersistenceConfig.save_key)
            validator: Learner record validator
            settings: Persistence settings (default: global config)
        """
        self.settings = settings or config.persistence
        self.storage = storage or get_storage()
        self.scheduler = scheduler or ThreadingScheduler()
        self.key = key or self.settings.save_key
        self.validator = validator or LearnerRecordValidator()

        self._lock = threading.RLock()
        self._record = default_record(self.scheduler.now())
        self._corrupted = False
        self._closed = False

        self._autosave = Debouncer(
            self.scheduler, self.settings.autosave_debounce_seconds, self._autosave_due
        )
        self._session_timer = RepeatingTimer(
            self.scheduler, self.settings.session_tick_seconds, self.tick
        )

    # ==================== State ====================

    @property
    def record(self) -> dict:
        """Copy of the current learner record."""
        with self._lock:
            return deepcopy(self._record)

    @property
    def is_corrupted(self) -> bool:
        """True when the last load had to recover or discard the stored save."""
        return self._corrupted

    @property
    def has_pending_save(self) -> bool:
        return self._autosave.pending

    def apply(self, mutation: Mutation) -> dict:
        """
        Apply a mutation and schedule a debounced save if anything changed.

        Returns:
            Copy of the resulting record
        """
        with self._lock:
            updated = reduce(self._record, mutation, self.scheduler.now())
            if updated is not self._record:
                self._record = updated
                logger.debug("Applied %s %s", mutation.kind.value, mutation.target or "")
                if not self._closed:
                    self._autosave.trigger()
            return deepcopy(self._record)

    # ==================== Persistence ====================

    def load(self) -> LoadResult:
        """
        Read the save slot.

        Never raises on bad data: invalid records are sanitized and written
        back, unparsable ones are removed and replaced by a fresh record.
        """
        with self._lock:
            now = self.scheduler.now()

            try:
                text = self.storage.get(self.key)
            except StorageError as e:
                logger.error("Failed to read save %s: %s", self.key, e)
                return LoadResult(deepcopy(self._record), RecoveryOutcome.UNAVAILABLE)

            if text is None:
                logger.info("No saved progress found, starting fresh")
                self._record = default_record(now)
                self._corrupted = False
                return LoadResult(deepcopy(self._record), RecoveryOutcome.FRESH)

            try:
                data = json.loads(text)
            except ValueError as e:
                logger.warning("Saved progress is not valid JSON: %s", e)
                data = None

            if not isinstance(data, dict):
                return self._discard(now)

            result = self.validator.validate(data)
            if result.valid:
                if data["schema_version"] != self.settings.schema_version:
                    logger.info(
                        "Loading save from version %s, current version is %s",
                        data["schema_version"],
                        self.settings.schema_version,
                    )
                self._record = reduce(self._record, Mutation.load(data), now)
                self._corrupted = False
                logger.info("Progress loaded")
                return LoadResult(deepcopy(self._record), RecoveryOutcome.LOADED)

            logger.warning("Invalid save data detected, attempting recovery")
            sanitized = self.validator.sanitize(data, default_record(now))
            if not sanitized.valid:
                logger.error("Recovery failed: %s", "; ".join(sanitized.errors))
                return self._discard(now)

            for repair in sanitized.repairs:
                logger.warning("Recovery: %s", repair)

            self._record = reduce(self._record, Mutation.load(sanitized.data), now)
            self._corrupted = True
            self._write(self._record)
            return LoadResult(
                deepcopy(self._record), RecoveryOutcome.RECOVERED, tuple(sanitized.repairs)
            )

    def save(self) -> bool:
        """
        Fold session time into total play time and write the record.

        Returns:
            True on success, False if the storage write failed
        """
        with self._lock:
            self._autosave.cancel()
            now = self.scheduler.now()
            self._record = self._folded(now)
            self._record["last_saved_at"] = iso(now)
            return self._write(self._record)

    def tick(self) -> None:
        """Periodic accrual: fold elapsed session time and schedule a save."""
        with self._lock:
            if self._closed:
                return
            self._record = self._folded(self.scheduler.now())
            self._autosave.trigger()

    def play_time_ms(self) -> int:
        """Stored play time plus time elapsed in the current session."""
        with self._lock:
            return self._record["total_play_time_ms"] + self._elapsed_ms(self.scheduler.now())

    def reset(self) -> bool:
        """
        Delete the save slot and start over.

        Returns:
            False if the stored save could not be deleted
        """
        with self._lock:
            self._autosave.cancel()
            self._record = reduce(self._record, Mutation.reset(), self.scheduler.now())
            self._corrupted = False
            try:
                self.storage.delete(self.key)
            except StorageError as e:
                logger.error("Failed to delete save %s: %s", self.key, e)
                return False
            logger.info("Progress reset")
            return True

    def export_save(self) -> Optional[str]:
        """Serialize the record with export metadata, or None on failure."""
        with self._lock:
            data = deepcopy(self._record)
            data["exported_at"] = iso(self.scheduler.now())
            data["export_version"] = self.settings.export_version
        try:
            return json.dumps(data, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error("Failed to export save data: %s", e)
            return None

    def import_save(self, text: str) -> bool:
        """
        Adopt an exported record.

        Export metadata is stripped; an invalid record is sanitized before
        use. The adopted record is saved immediately.

        Returns:
            True if the record was adopted and written
        """
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            logger.error("Failed to import save data: %s", e)
            return False

        if not isinstance(data, dict):
            logger.error("Failed to import save data: not a record object")
            return False

        for name in EXPORT_FIELDS:
            data.pop(name, None)

        with self._lock:
            now = self.scheduler.now()
            result = self.validator.validate(data)
            if not result.valid:
                result = self.validator.sanitize(data, default_record(now))
                for repair in result.repairs:
                    logger.warning("Import: %s", repair)
                if not result.valid:
                    logger.error("Imported save could not be repaired")
                    return False

            self._record = reduce(self._record, Mutation.load(result.data), now)
            self._corrupted = False
            return self.save()

    # ==================== Lifecycle ====================

    def start(self) -> None:
        """Begin periodic session-time accrual."""
        with self._lock:
            self._closed = False
            self._session_timer.start()

    def close(self, flush: bool = True) -> bool:
        """
        Cancel timers and optionally write a final save.

        Returns:
            Result of the final save (True when flush is False)
        """
        with self._lock:
            self._session_timer.stop()
            self._autosave.cancel()
            self._closed = True
            return self.save() if flush else True

    # ==================== Mutators ====================

    def select_persona(self, persona_id: str) -> dict:
        return self.apply(Mutation.select_persona(persona_id))

    def change_location(self, location_id: str) -> dict:
        return self.apply(Mutation.change_location(location_id))

    def complete_lesson(self, lesson_id: str) -> dict:
        return self.apply(Mutation.complete_lesson(lesson_id))

    def collect_page(self, page_id: str) -> dict:
        return self.apply(Mutation.collect_page(page_id))

    def update_lesson_progress(self, lesson_id: str, percent: float) -> dict:
        return self.apply(Mutation.update_lesson_progress(lesson_id, percent))

    def unlock_area(self, area_id: str) -> dict:
        return self.apply(Mutation.unlock_area(area_id))

    def earn_achievement(self, achievement_id: str) -> dict:
        return self.apply(Mutation.earn_achievement(achievement_id))

    # ==================== Internals ====================

    def _autosave_due(self) -> None:
        if not self.save():
            logger.warning("Autosave failed; progress kept in memory")

    def _elapsed_ms(self, now: datetime) -> int:
        started = parse_iso(self._record["session_started_at"])
        if started is None:
            return 0
        return max(0, int((now - started).total_seconds() * 1000))

    def _folded(self, now: datetime) -> dict:
        updated = deepcopy(self._record)
        updated["total_play_time_ms"] += self._elapsed_ms(now)
        updated["session_started_at"] = iso(now)
        return updated

    def _write(self, record: dict) -> bool:
        try:
            self.storage.set(self.key, json.dumps(record, ensure_ascii=False))
        except (StorageError, TypeError, ValueError) as e:
            logger.error("Failed to save progress: %s", e)
            return False
        logger.debug("Progress saved")
        return True

    def _discard(self, now: datetime) -> LoadResult:
        try:
            self.storage.delete(self.key)
            logger.warning("Corrupted save data removed")
        except StorageError as e:
            logger.error("Failed to clean up corrupted save: %s", e)
        self._record = default_record(now)
        self._corrupted = True
        return LoadResult(deepcopy(self._record), RecoveryOutcome.DISCARDED)
