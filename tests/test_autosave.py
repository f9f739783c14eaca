"""Tests for debounced saving."""

import threading

from services.autosave import DebouncedSaver


class TestDebouncedSaver:

    def test_rapid_edits_coalesce_last_write_wins(self):
        saved = []
        done = threading.Event()

        def save(state):
            saved.append(state)
            done.set()

        saver = DebouncedSaver(save, delay_ms=50)
        for i in range(5):
            saver.schedule(i)

        assert done.wait(2)
        assert saved == [4]
        assert not saver.has_pending

    def test_flush_saves_immediately(self):
        saved = []
        saver = DebouncedSaver(saved.append, delay_ms=10_000)
        saver.schedule("a")
        saver.schedule("b")

        assert saver.flush() is True
        assert saved == ["b"]
        assert saver.flush() is False

    def test_cancel_drops_pending(self):
        saved = []
        saver = DebouncedSaver(saved.append, delay_ms=10_000)
        saver.schedule("a")

        saver.cancel()

        assert saver.flush() is False
        assert saved == []

    def test_failing_save_keeps_saver_usable(self):
        calls = []

        def save(state):
            calls.append(state)
            if state == "x":
                raise RuntimeError("disk full")

        saver = DebouncedSaver(save, delay_ms=10_000)
        saver.schedule("x")
        saver._fire()
        saver.schedule("y")

        assert saver.flush() is True
        assert calls == ["x", "y"]

    def test_default_delay_from_settings(self, settings):
        saver = DebouncedSaver(lambda state: None)

        assert saver._delay == settings.save_debounce_ms / 1000
