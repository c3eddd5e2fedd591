"""
Unit tests for timers and storage backends.
"""

from datetime import datetime, timedelta, timezone

import pytest

from chronicles.exceptions import StorageError
from chronicles.utils.persistence import FileStorage, MemoryStorage
from chronicles.utils.scheduling import (
    Debouncer,
    ManualScheduler,
    RepeatingTimer,
    Scheduler,
    TimerHandle,
)


START = datetime(2024, 1, 1, tzinfo=timezone.utc)


class LateScheduler(Scheduler):
    """Keeps every scheduled callback so a test can run one after it was cancelled."""

    def __init__(self):
        self.callbacks = []
        self.handles = []

    def call_later(self, delay, callback):
        handle = TimerHandle(lambda: None)
        self.callbacks.append(callback)
        self.handles.append(handle)
        return handle

    def now(self):
        return START


class TestManualScheduler:
    def test_advance_fires_due_callbacks_in_order(self, scheduler):
        fired = []
        scheduler.call_later(2, lambda: fired.append("late"))
        scheduler.call_later(1, lambda: fired.append("early"))

        count = scheduler.advance(2)

        assert fired == ["early", "late"]
        assert count == 2

    def test_callbacks_see_their_due_time(self, scheduler):
        start = scheduler.now()
        seen = []
        scheduler.call_later(1, lambda: seen.append(scheduler.now()))

        scheduler.advance(5)

        assert seen == [start + timedelta(seconds=1)]
        assert scheduler.now() == start + timedelta(seconds=5)

    def test_cancelled_callbacks_do_not_fire(self, scheduler):
        fired = []
        handle = scheduler.call_later(1, lambda: fired.append(True))

        handle.cancel()
        scheduler.advance(10)

        assert fired == []
        assert handle.cancelled
        assert scheduler.pending == 0

    def test_not_yet_due(self, scheduler):
        fired = []
        scheduler.call_later(3, lambda: fired.append(True))

        assert scheduler.advance(2) == 0
        assert scheduler.pending == 1


class TestDebouncer:
    def test_burst_fires_once(self, scheduler):
        calls = []
        debouncer = Debouncer(scheduler, 1.0, lambda: calls.append(scheduler.now()))

        for _ in range(5):
            debouncer.trigger()
            scheduler.advance(0.5)

        assert calls == []
        scheduler.advance(1.0)

        assert len(calls) == 1
        assert not debouncer.pending

    def test_cancel(self, scheduler):
        calls = []
        debouncer = Debouncer(scheduler, 1.0, lambda: calls.append(True))

        debouncer.trigger()
        debouncer.cancel()
        scheduler.advance(5)

        assert calls == []

    def test_flush_runs_pending_call_now(self, scheduler):
        calls = []
        debouncer = Debouncer(scheduler, 1.0, lambda: calls.append(True))

        assert debouncer.flush() is False
        debouncer.trigger()

        assert debouncer.flush() is True
        scheduler.advance(5)
        assert calls == [True]

    def test_superseded_callback_leaves_newer_timer_cancellable(self):
        late = LateScheduler()
        calls = []
        debouncer = Debouncer(late, 1.0, lambda: calls.append(True))

        debouncer.trigger()
        debouncer.trigger()
        late.callbacks[0]()  # first timer thread was already running

        assert calls == []
        assert debouncer.pending

        debouncer.cancel()
        late.callbacks[1]()

        assert late.handles[1].cancelled
        assert calls == []
        assert not debouncer.pending

    def test_latest_callback_still_fires(self):
        late = LateScheduler()
        calls = []
        debouncer = Debouncer(late, 1.0, lambda: calls.append(True))

        debouncer.trigger()
        debouncer.trigger()
        late.callbacks[1]()
        late.callbacks[1]()

        assert calls == [True]
        assert not debouncer.pending


class TestRepeatingTimer:
    def test_fires_every_interval_until_stopped(self, scheduler):
        calls = []
        timer = RepeatingTimer(scheduler, 10, lambda: calls.append(True))

        timer.start()
        scheduler.advance(35)
        timer.stop()
        scheduler.advance(100)

        assert len(calls) == 3
        assert not timer.running

    def test_start_twice_keeps_one_schedule(self, scheduler):
        calls = []
        timer = RepeatingTimer(scheduler, 10, lambda: calls.append(True))

        timer.start()
        timer.start()
        scheduler.advance(10)

        assert len(calls) == 1

    def test_callback_running_after_stop_does_not_reschedule(self):
        late = LateScheduler()
        calls = []
        timer = RepeatingTimer(late, 10, lambda: calls.append(True))

        timer.start()
        timer.stop()
        late.callbacks[0]()

        assert calls == []
        assert not timer.running
        assert len(late.callbacks) == 1

    def test_restart_ignores_previous_run(self):
        late = LateScheduler()
        calls = []
        timer = RepeatingTimer(late, 10, lambda: calls.append(True))

        timer.start()
        timer.stop()
        timer.start()
        late.callbacks[0]()
        late.callbacks[1]()

        assert calls == [True]
        assert len(late.callbacks) == 3
        assert timer.running


class TestStorage:
    def test_memory_round_trip(self):
        storage = MemoryStorage()

        storage.set("slot", "{}")

        assert storage.get("slot") == "{}"
        assert storage.contains("slot")
        storage.delete("slot")
        assert storage.get("slot") is None

    def test_memory_rejects_non_text(self):
        with pytest.raises(StorageError):
            MemoryStorage().set("slot", {"a": 1})

    def test_delete_missing_key_is_fine(self):
        MemoryStorage().delete("missing")

    def test_file_round_trip(self, tmp_path):
        storage = FileStorage(tmp_path)

        storage.set("cat-chronicles-save", '{"a": 1}')

        assert storage.get("cat-chronicles-save") == '{"a": 1}'
        assert (tmp_path / "cat-chronicles-save.json").exists()
        assert list(tmp_path.glob("*.tmp")) == []

    def test_file_missing_key(self, tmp_path):
        assert FileStorage(tmp_path).get("nothing") is None

    def test_file_keys_cannot_escape_directory(self, tmp_path):
        storage = FileStorage(tmp_path / "saves")

        storage.set("../outside", "x")

        assert not (tmp_path / "outside.json").exists()
        assert storage.get("../outside") == "x"

    def test_file_delete(self, tmp_path):
        storage = FileStorage(tmp_path)
        storage.set("slot", "x")

        storage.delete("slot")
        storage.delete("slot")

        assert storage.get("slot") is None

    def test_file_write_failure_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(StorageError):
            FileStorage(blocker / "saves").set("slot", "x")


def test_manual_scheduler_default_start():
    assert ManualScheduler().now().year == 2024
