"""
Prometheus metrics for the notifier.

Each Metrics instance owns its registry so several instances (tests, one-off
CLI runs) never collide on metric names.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


NAMESPACE = "slot_notifier"


class Metrics:
    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.new_slots = Counter(
            "new_slots", "Total number of new slots found",
            namespace=NAMESPACE, registry=self.registry,
        )
        self.slot_checks = Counter(
            "slot_checks", "Total number of timeslots checked against the seen list",
            namespace=NAMESPACE, registry=self.registry,
        )
        self.notifications_sent = Counter(
            "notifications_sent", "Total number of notifications sent to users",
            namespace=NAMESPACE, registry=self.registry,
        )
        self.notification_failures = Counter(
            "notification_failures", "Total number of failed notification deliveries",
            namespace=NAMESPACE, registry=self.registry,
        )
        self.errors = Counter(
            "errors", "Total number of errors by type", ["type"],
            namespace=NAMESPACE, registry=self.registry,
        )
        self.active_subscribers = Gauge(
            "active_subscribers", "Current number of active subscribers",
            namespace=NAMESPACE, registry=self.registry,
        )
        self.seen_slots = Gauge(
            "seen_slots", "Number of seen slots in the database",
            namespace=NAMESPACE, registry=self.registry,
        )
        self.slot_check_duration = Histogram(
            "slot_check_duration_seconds", "Duration of slot availability checks",
            namespace=NAMESPACE, registry=self.registry,
        )

    def record_tick(self, duration: float, total_checks: int, new_slots: int) -> None:
        self.slot_check_duration.observe(duration)
        self.slot_checks.inc(total_checks)
        self.new_slots.inc(new_slots)

    def record_notification_sent(self) -> None:
        self.notifications_sent.inc()

    def record_notification_failure(self) -> None:
        self.notification_failures.inc()

    def record_error(self, error_type: str) -> None:
        self.errors.labels(type=error_type).inc()

    def set_active_subscribers(self, count: int) -> None:
        self.active_subscribers.set(count)

    def set_seen_slots(self, count: int) -> None:
        self.seen_slots.set(count)

    def record_seen_slot(self) -> None:
        self.seen_slots.inc()

    def record_pruned(self, removed: int) -> None:
        self.seen_slots.dec(removed)

    def serve(self, port: int) -> None:
        """Expose /metrics on the given port from a daemon thread."""
        start_http_server(port, registry=self.registry)
