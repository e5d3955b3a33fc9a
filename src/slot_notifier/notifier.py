"""
Slot discovery: one sweep over the configured services per tick.

For every configured service the sweep walks staff -> dates -> timeslots,
keys each timeslot, and announces the ones the dedup store has not seen yet.
Every level is fail-soft: a failing service, staff member, date or
subscriber is logged and skipped, and the rest of the sweep continues. A
slot that could not be checked this tick is simply checked again next tick.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional, Protocol

from .api.base import (
    FAR_FUTURE_DATE,
    ApiStatusError,
    AuthError,
    BookingClient,
    BookingClientError,
    ResponseParseError,
    TransportError,
)
from .formatting import NameResolver, SlotFormatter
from .names import StaticNameResolver
from .slot_keys import build_slot_key, normalize_slot_datetime


SEEN_SLOT_RETENTION = timedelta(days=7)
DEFAULT_INTERVAL = 60.0  # seconds


class DedupStore(Protocol):
    def is_seen(self, slot_key: str) -> bool: ...

    def mark_seen(self, slot_key: str) -> None: ...

    def prune(self, older_than: timedelta) -> int: ...


class NotificationSink(Protocol):
    def list_subscribers(self) -> list[int]: ...

    def send(self, chat_id: int, text: str) -> None: ...


class TickMetrics(Protocol):
    def record_tick(self, duration: float, total_checks: int, new_slots: int) -> None: ...

    def record_notification_sent(self) -> None: ...

    def record_notification_failure(self) -> None: ...

    def record_error(self, error_type: str) -> None: ...

    def set_active_subscribers(self, count: int) -> None: ...

    def record_seen_slot(self) -> None: ...

    def record_pruned(self, removed: int) -> None: ...


@dataclass
class NotifierOptions:
    location_id: int
    service_ids: list[int]
    timezone: str = "Europe/Moscow"
    interval: float = DEFAULT_INTERVAL

    def __post_init__(self):
        if self.interval <= 0:
            self.interval = DEFAULT_INTERVAL


@dataclass
class TickResult:
    """Aggregate outcome of one sweep."""
    duration: float = 0.0
    total_checks: int = 0
    new_slots: int = 0
    notifications_sent: int = 0
    notification_failures: int = 0
    skipped: bool = False
    cancelled: bool = False


def client_error_type(error: BookingClientError) -> str:
    """Metric label for a client error."""
    if isinstance(error, AuthError):
        return "auth"
    if isinstance(error, TransportError):
        return "transport"
    if isinstance(error, ApiStatusError):
        return "api_status"
    if isinstance(error, ResponseParseError):
        return "parse"
    return "client"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SlotNotifier:
    """Drives the booking client, the dedup store and the notification sink."""

    def __init__(
        self,
        client: BookingClient,
        store: DedupStore,
        sink: NotificationSink,
        options: NotifierOptions,
        names: Optional[NameResolver] = None,
        metrics: Optional[TickMetrics] = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[logging.Logger] = None,
    ):
        self.client = client
        self.store = store
        self.sink = sink
        self.options = options
        self.metrics = metrics
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)
        self.formatter = SlotFormatter(
            location_id=options.location_id,
            timezone_name=options.timezone,
            names=names or StaticNameResolver(),
            logger=self._log,
        )

        self._log.info(
            f"Notifier initialized interval={options.interval:.0f}s timezone={options.timezone} "
            f"location_id={options.location_id} service_ids={options.service_ids}"
        )

    def _record_error(self, error_type: str) -> None:
        if self.metrics is not None:
            self.metrics.record_error(error_type)

    def _today(self) -> str:
        return self._clock().astimezone(self.formatter.tz).strftime("%Y-%m-%d")

    def _iter_timeslots(self, today: str, stop: threading.Event) -> Iterator[tuple[int, int, str, str]]:
        """
        Walk the search space, yielding (service_id, staff_id, date, timeslot).

        Services are visited sequentially in configuration order. Client
        errors skip the failing branch only; the stop event ends the walk.
        """
        location_id = self.options.location_id

        for service_id in self.options.service_ids:
            if stop.is_set():
                return
            self._log.debug(f"Checking service service_id={service_id}")

            try:
                staff_ids = self.client.list_bookable_staff(location_id, service_id)
            except BookingClientError as e:
                self._log.error(f"Failed to get staff IDs service_id={service_id} error={e}")
                self._record_error(client_error_type(e))
                continue

            if not staff_ids:
                self._log.debug(f"No bookable staff found service_id={service_id}")
                continue
            self._log.debug(f"Found bookable staff service_id={service_id} staff_ids={staff_ids}")

            for staff_id in staff_ids:
                if stop.is_set():
                    return
                try:
                    dates = self.client.list_bookable_dates(
                        location_id, service_id, today, FAR_FUTURE_DATE, staff_id
                    )
                except BookingClientError as e:
                    self._log.error(
                        f"Failed to get bookable dates service_id={service_id} staff_id={staff_id} error={e}"
                    )
                    self._record_error(client_error_type(e))
                    continue

                for day in dates:
                    if stop.is_set():
                        return
                    try:
                        timeslots = self.client.list_bookable_timeslots(location_id, service_id, day, staff_id)
                    except BookingClientError as e:
                        self._log.error(
                            f"Failed to get timeslots service_id={service_id} staff_id={staff_id} "
                            f"date={day} error={e}"
                        )
                        self._record_error(client_error_type(e))
                        continue

                    for timeslot in timeslots:
                        yield service_id, staff_id, day, timeslot

    def check_and_notify(self, stop: Optional[threading.Event] = None) -> TickResult:
        """
        Run one discovery sweep and announce every slot not seen before.

        Args:
            stop: Shared cancellation signal; a set event abandons the sweep
                between requests. Seen-state already written stays valid.

        Returns:
            TickResult with checks, new slots and delivery counts
        """
        stop = stop or threading.Event()
        start = time.monotonic()
        result = TickResult()
        self._log.debug("Starting slot availability check")

        if not self.options.service_ids or not self.options.location_id:
            self._log.warning(
                f"Configuration incomplete, skipping check location_id={self.options.location_id} "
                f"service_ids={self.options.service_ids}"
            )
            result.skipped = True
            return result

        for service_id, staff_id, day, timeslot in self._iter_timeslots(self._today(), stop):
            result.total_checks += 1
            try:
                self._handle_timeslot(service_id, staff_id, day, timeslot, result)
            except Exception as e:
                self._log.error(
                    f"Failed to process timeslot service_id={service_id} staff_id={staff_id} "
                    f"date={day} timeslot={timeslot!r} error={e}"
                )
                self._record_error("slot")

        result.duration = time.monotonic() - start
        result.cancelled = stop.is_set()

        if result.cancelled:
            self._log.info(f"Slot check cancelled checks_done={result.total_checks}")
        else:
            try:
                removed = self.store.prune(SEEN_SLOT_RETENTION)
            except Exception as e:
                self._log.warning(f"Failed to clean old slots error={e}")
                self._record_error("storage")
            else:
                if self.metrics is not None:
                    self.metrics.record_pruned(removed)

        if self.metrics is not None:
            self.metrics.record_tick(result.duration, result.total_checks, result.new_slots)

        self._log.info(
            f"Slot availability check completed duration={result.duration:.3f}s "
            f"new_slots_found={result.new_slots} total_checks={result.total_checks}"
        )
        return result

    def _handle_timeslot(self, service_id: int, staff_id: int, day: str, timeslot: str, result: TickResult) -> None:
        """Dedup one timeslot and announce it if new."""
        slot_datetime = normalize_slot_datetime(timeslot, day, self.formatter.tz)
        key = build_slot_key(service_id, staff_id, slot_datetime)

        try:
            seen = self.store.is_seen(key)
        except Exception as e:
            self._log.error(f"Failed to check if slot seen key={key} error={e}")
            self._record_error("storage")
            return
        if seen:
            return

        try:
            self.store.mark_seen(key)
        except Exception as e:
            self._log.error(f"Failed to mark slot as seen key={key} error={e}")
            self._record_error("storage")
        else:
            if self.metrics is not None:
                self.metrics.record_seen_slot()
        result.new_slots += 1

        self._log.info(
            f"New slot found service_id={service_id} staff_id={staff_id} date={day} time={slot_datetime}"
        )
        message = self.formatter.slot_message(service_id, staff_id, slot_datetime)
        sent, failed = self.broadcast(message)
        result.notifications_sent += sent
        result.notification_failures += failed

    def broadcast(self, text: str) -> tuple[int, int]:
        """
        Send text to every current subscriber.

        Returns:
            (delivered, failed) counts; one failed recipient never stops the rest
        """
        try:
            subscribers = self.sink.list_subscribers()
        except Exception as e:
            self._log.error(f"Failed to list subscribers error={e}")
            self._record_error("subscribers")
            return 0, 0

        sent = failed = 0
        for chat_id in subscribers:
            try:
                self.sink.send(chat_id, text)
            except Exception as e:
                failed += 1
                self._log.error(f"Failed to notify subscriber chat_id={chat_id} error={e}")
                if self.metrics is not None:
                    self.metrics.record_notification_failure()
            else:
                sent += 1
                if self.metrics is not None:
                    self.metrics.record_notification_sent()

        if self.metrics is not None:
            self.metrics.set_active_subscribers(len(subscribers))
        self._log.info(f"Notified subscribers about new slot subscribers_count={len(subscribers)} failed={failed}")
        return sent, failed

    def collect_current_slots(self, stop: Optional[threading.Event] = None) -> list[str]:
        """
        List every currently bookable slot as a display line, ignoring the seen list.

        Timeslots without a parseable datetime are left out.
        """
        stop = stop or threading.Event()
        lines = []
        if not self.options.service_ids or not self.options.location_id:
            return lines

        for _, staff_id, day, timeslot in self._iter_timeslots(self._today(), stop):
            try:
                slot_datetime = normalize_slot_datetime(timeslot, day, self.formatter.tz)
                line = self.formatter.current_slot_line(staff_id, slot_datetime)
            except Exception as e:
                self._log.error(f"Failed to format timeslot date={day} timeslot={timeslot!r} error={e}")
                continue
            if line is not None:
                lines.append(line)
        return lines
