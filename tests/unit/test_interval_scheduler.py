"""Unit tests for IntervalScheduler."""

import threading
import pytest
from unittest.mock import Mock

from livequiz.models.session import TranscriptBuffer
from livequiz.services.interval_scheduler import IntervalScheduler

MINUTE_MS = 60 * 1000


@pytest.fixture
def callback():
    return Mock()


@pytest.fixture
def scheduler(callback, fake_clock):
    scheduler = IntervalScheduler(callback, interval_minutes=15, clock=fake_clock, run_in_background=False)
    yield scheduler
    scheduler.shutdown()


@pytest.mark.unit
class TestIntervalScheduler:

    def test_disabled_scheduler_never_fires(self, scheduler, callback, fake_clock):
        fake_clock.advance(60 * MINUTE_MS)

        assert scheduler.tick() == 0
        assert scheduler.seconds_left() == 0
        callback.assert_not_called()

    def test_countdown_and_fire(self, scheduler, callback, fake_clock):
        buffer = TranscriptBuffer()
        scheduler.attach(buffer)
        scheduler.enable()
        assert scheduler.seconds_left() == 900

        buffer.append("Enzymes lower activation energy.")
        fake_clock.advance(15 * MINUTE_MS - 1000)
        assert scheduler.tick() == 1
        callback.assert_not_called()

        fake_clock.advance(1000)
        assert scheduler.tick() == 900

        callback.assert_called_once_with("Enzymes lower activation energy.")
        assert buffer.text() == ""
        assert scheduler.anchor_timestamp == fake_clock()
        assert scheduler.fires == 1

    def test_seconds_left_rounds_up(self, scheduler, fake_clock):
        scheduler.enable()
        fake_clock.advance(500)

        assert scheduler.seconds_left() == 900

    def test_seconds_left_never_negative(self, scheduler, fake_clock):
        scheduler.enable()
        scheduler.is_generating = True
        fake_clock.advance(20 * MINUTE_MS)

        assert scheduler.tick() == 0

    def test_no_reentry_while_generating(self, fake_clock):
        calls = []

        def on_interval(snapshot):
            calls.append(snapshot)
            fake_clock.advance(15 * MINUTE_MS)
            scheduler.tick()

        scheduler = IntervalScheduler(on_interval, interval_minutes=15, clock=fake_clock,
                                      run_in_background=False)
        scheduler.enable()
        fake_clock.advance(15 * MINUTE_MS)

        scheduler.tick()

        assert len(calls) == 1
        assert scheduler.is_generating is False

    def test_failed_generation_still_reanchors(self, scheduler, callback, fake_clock):
        callback.side_effect = RuntimeError("inference down")
        scheduler.enable()
        fake_clock.advance(15 * MINUTE_MS)

        scheduler.tick()

        assert scheduler.is_generating is False
        assert scheduler.anchor_timestamp == 15 * MINUTE_MS
        assert scheduler.seconds_left() == 900

        fake_clock.advance(15 * MINUTE_MS - 1)
        scheduler.tick()
        assert callback.call_count == 1

        fake_clock.advance(1)
        scheduler.tick()
        assert callback.call_count == 2

    def test_reanchor_restarts_countdown(self, scheduler, fake_clock):
        scheduler.enable()
        fake_clock.advance(10 * MINUTE_MS)
        assert scheduler.seconds_left() == 300

        scheduler.reanchor()

        assert scheduler.seconds_left() == 900

    def test_detached_buffer_fires_empty_snapshot(self, scheduler, callback, fake_clock):
        scheduler.enable()
        fake_clock.advance(15 * MINUTE_MS)

        scheduler.tick()

        callback.assert_called_once_with("")

    def test_disable_stops_countdown(self, scheduler, fake_clock):
        scheduler.enable()
        scheduler.disable()

        assert scheduler.seconds_left() == 0
        assert scheduler.enabled is False


@pytest.mark.unit
def test_background_fire_runs_on_worker(fake_clock):
    fired = threading.Event()
    threads = []

    def on_interval(snapshot):
        threads.append(threading.current_thread().name)
        fired.set()

    scheduler = IntervalScheduler(on_interval, interval_minutes=1, clock=fake_clock)
    scheduler.enable()
    fake_clock.advance(MINUTE_MS)

    scheduler.tick()
    scheduler.wait_idle(timeout=2.0)
    scheduler.shutdown()

    assert fired.is_set()
    assert threads[0].startswith("auto-question")
    assert scheduler.is_generating is False
