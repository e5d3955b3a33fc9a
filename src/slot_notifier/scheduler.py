"""
Fixed-interval polling scheduler for slot checks.

Runs the tick function on a single thread, so ticks never overlap. Ticks are
aligned to a fixed schedule; when a tick overruns the interval, the missed
fire times are dropped and the next tick starts right away. Setting the stop
event wakes the scheduler immediately and is also passed into the tick so a
sweep in progress can be abandoned.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional


class PollingScheduler:
    def __init__(
        self,
        tick: Callable[[threading.Event], Any],
        interval: float,
        stop_event: Optional[threading.Event] = None,
        run_immediately: bool = False,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.tick = tick
        self.interval = interval
        self.stop_event = stop_event or threading.Event()
        self.run_immediately = run_immediately
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)
        self.ticks_run = 0

    def stop(self) -> None:
        self.stop_event.set()

    def _next_fire(self, scheduled: float) -> float:
        """Advance the schedule past now, skipping fire times a long tick missed."""
        now = self._clock()
        scheduled += self.interval
        if scheduled <= now:
            missed = int((now - scheduled) // self.interval) + 1
            self._log.warning(f"Slot check overran the interval, skipping {missed} tick(s)")
            scheduled = now
        return scheduled

    def _run_tick(self) -> None:
        try:
            self.tick(self.stop_event)
        except Exception:
            # A crashing tick must not stop polling; the next tick retries.
            self._log.exception("Slot check failed")
        finally:
            self.ticks_run += 1

    def run(self) -> None:
        """Block, running ticks until the stop event is set."""
        self._log.info(f"Starting notifier polling loop interval={self.interval:.0f}s")

        scheduled = self._clock()
        if not self.run_immediately:
            scheduled += self.interval

        while not self.stop_event.is_set():
            delay = scheduled - self._clock()
            if delay > 0 and self.stop_event.wait(delay):
                break
            self._run_tick()
            scheduled = self._next_fire(scheduled)

        self._log.info("Stop requested, notifier polling loop stopped")
