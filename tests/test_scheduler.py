import threading
import time

import pytest

from slot_notifier.scheduler import PollingScheduler


def _run_in_thread(scheduler):
    thread = threading.Thread(target=scheduler.run, daemon=True)
    thread.start()
    return thread


class TestPollingScheduler:
    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            PollingScheduler(lambda stop: None, 0)

    def test_stop_during_wait_returns_promptly(self):
        ticks = []
        scheduler = PollingScheduler(ticks.append, interval=60)
        thread = _run_in_thread(scheduler)

        started = time.monotonic()
        scheduler.stop()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert time.monotonic() - started < 5
        assert ticks == []

    def test_run_immediately_ticks_before_first_interval(self):
        fired = threading.Event()
        scheduler = PollingScheduler(lambda stop: fired.set(), interval=60, run_immediately=True)
        thread = _run_in_thread(scheduler)

        assert fired.wait(timeout=5)
        scheduler.stop()
        thread.join(timeout=5)
        assert scheduler.ticks_run == 1

    def test_failing_tick_does_not_stop_the_loop(self, caplog):
        calls = []
        done = threading.Event()

        def tick(stop):
            calls.append(1)
            if len(calls) >= 3:
                done.set()
            raise RuntimeError("boom")

        scheduler = PollingScheduler(tick, interval=0.01, run_immediately=True)
        thread = _run_in_thread(scheduler)

        assert done.wait(timeout=5)
        scheduler.stop()
        thread.join(timeout=5)
        assert len(calls) >= 3
        assert "Slot check failed" in caplog.text

    def test_tick_receives_the_stop_event(self):
        received = []

        def tick(stop):
            received.append(stop)
            stop.set()

        stop_event = threading.Event()
        scheduler = PollingScheduler(tick, interval=60, stop_event=stop_event, run_immediately=True)
        scheduler.run()

        assert received == [stop_event]
        assert scheduler.ticks_run == 1


class TestNextFire:
    def test_on_schedule(self, clock):
        scheduler = PollingScheduler(lambda stop: None, interval=60, clock=clock)

        assert scheduler._next_fire(clock.now) == clock.now + 60

    def test_overrun_drops_missed_ticks(self, clock, caplog):
        scheduler = PollingScheduler(lambda stop: None, interval=60, clock=clock)
        scheduled = clock.now
        clock.advance(150)

        assert scheduler._next_fire(scheduled) == clock.now
        assert "skipping 2 tick(s)" in caplog.text
