#!/usr/bin/env python3
"""
CLI for the YCLIENTS slot notifier.

Runs the polling loop by default. Subscriber management and maintenance
commands work on the database only and do not need API credentials.

Example usage:
    slot-notifier --config config.json
    slot-notifier --once
    slot-notifier --current
    slot-notifier --add-subscriber 123456789
"""

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path

from .api.base import BookingClient, BookingClientError
from .api.client_factory import client_from_config
from .config import DEFAULT_CONFIG_PATH, Config, ConfigError, load_config
from .metrics import Metrics
from .names import StaticNameResolver
from .notifier import SEEN_SLOT_RETENTION, NotifierOptions, SlotNotifier
from .scheduler import PollingScheduler
from .storage import Storage, StorageError
from .telegram import NotificationError, TelegramSink


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def open_storage(config: Config) -> Storage:
    try:
        return Storage(config.database_url, logger=logging.getLogger("slot_notifier.storage"))
    except StorageError as e:
        print(f"Error: {e}")
        sys.exit(1)


def build_notifier(
    config: Config,
    client: BookingClient,
    storage: Storage,
    sink: TelegramSink,
    metrics: Metrics,
) -> SlotNotifier:
    options = NotifierOptions(
        location_id=config.location_id,
        service_ids=config.service_ids,
        timezone=config.timezone,
        interval=config.interval,
    )
    return SlotNotifier(
        client=client,
        store=storage,
        sink=sink,
        options=options,
        names=StaticNameResolver(),
        metrics=metrics,
        logger=logging.getLogger("slot_notifier.notifier"),
    )


def self_check(client: BookingClient, config: Config, log: logging.Logger) -> bool:
    """Authenticate once by listing staff for the first service."""
    if not config.service_ids:
        log.warning("No service IDs configured, skipping authentication test")
        return True

    log.info("Testing YCLIENTS authentication...")
    try:
        client.list_bookable_staff(config.location_id, config.service_ids[0])
    except BookingClientError as e:
        log.error(f"YCLIENTS authentication test failed: {e}")
        return False
    log.info("YCLIENTS authentication successful")
    return True


def run_admin_command(args, config: Config) -> None:
    """Handle the storage-only commands and exit."""
    storage = open_storage(config)
    try:
        if args.list_subscribers:
            subscribers = storage.list_subscribers()
            if not subscribers:
                print("No subscribers.")
            else:
                print(f"Subscribers ({len(subscribers)}):")
                for chat_id in subscribers:
                    print(f"  {chat_id}")
        elif args.add_subscriber is not None:
            if storage.add_subscriber(args.add_subscriber):
                print(f"Subscribed: {args.add_subscriber}")
            else:
                print(f"Already subscribed: {args.add_subscriber}")
        elif args.remove_subscriber is not None:
            if storage.remove_subscriber(args.remove_subscriber):
                print(f"Unsubscribed: {args.remove_subscriber}")
            else:
                print(f"Not subscribed: {args.remove_subscriber}")
        elif args.prune:
            removed = storage.prune(SEEN_SLOT_RETENTION)
            print(f"Removed {removed} seen slot(s) older than {SEEN_SLOT_RETENTION.days} days.")
        elif args.stats:
            subscribers, seen_slots = storage.get_stats()
            print(f"Subscribers: {subscribers}")
            print(f"Seen slots:  {seen_slots}")
    except StorageError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        storage.close()
    sys.exit(0)


def run_service(args, config: Config) -> int:
    """Wire up the components and run the notifier. Returns the exit code."""
    log = logging.getLogger("slot_notifier")
    log.info("Starting slot notifier")
    log.info(f"Configuration loaded {config.masked()}")

    client = client_from_config(config, logger=logging.getLogger("slot_notifier.yclients"))
    status = client.status()
    log.info(
        f"YCLIENTS client initialized auth_configured={status.auth_configured} "
        f"company_id={status.company_id} form_id={status.form_id} "
        f"form_name={StaticNameResolver().form_name(status.form_id) or '-'}"
    )

    if not args.skip_self_check and not self_check(client, config, log):
        return 1

    storage = open_storage(config)
    try:
        metrics = Metrics()
        try:
            subscriber_count, seen_slots_count = storage.get_stats()
        except StorageError as e:
            log.warning(f"Failed to get startup statistics: {e}")
        else:
            log.info(f"Database statistics subscribers={subscriber_count} seen_slots={seen_slots_count}")
            metrics.set_active_subscribers(subscriber_count)
            metrics.set_seen_slots(seen_slots_count)

        sink = TelegramSink(
            config.telegram_token,
            subscribers=storage,
            logger=logging.getLogger("slot_notifier.telegram"),
        )
        notifier = build_notifier(config, client, storage, sink, metrics)

        if args.current:
            slots = notifier.collect_current_slots()
            if not slots:
                print("No slots available.")
            for line in slots:
                print(line)
            return 0

        if args.once:
            result = notifier.check_and_notify()
            print(
                f"Checked {result.total_checks} timeslot(s), {result.new_slots} new, "
                f"{result.notifications_sent} notification(s) sent, "
                f"{result.notification_failures} failed."
            )
            return 0

        try:
            bot_name = sink.bot_username()
        except NotificationError as e:
            log.error(f"Failed to initialize Telegram bot: {e}")
            return 1
        log.info(f"Telegram bot initialized bot_username={bot_name}")

        if config.metrics_port:
            metrics.serve(config.metrics_port)
            log.info(f"Starting metrics server on :{config.metrics_port}")

        stop_event = threading.Event()

        def request_stop(signum, _frame):
            log.info(f"Received signal {signum}, stopping gracefully...")
            stop_event.set()

        signal.signal(signal.SIGINT, request_stop)
        signal.signal(signal.SIGTERM, request_stop)

        scheduler = PollingScheduler(
            notifier.check_and_notify,
            interval=config.interval,
            stop_event=stop_event,
            run_immediately=args.run_immediately,
            logger=logging.getLogger("slot_notifier.scheduler"),
        )
        log.info("Slot notifier started successfully")
        scheduler.run()
        log.info("Slot notifier stopped")
        return 0
    finally:
        storage.close()


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Slot notifier: watches YCLIENTS for new appointment slots and notifies Telegram subscribers",
        epilog="Example: slot-notifier --config config.json --run-immediately",
    )
    parser.add_argument("--config", default=str(DEFAULT_CONFIG_PATH),
                        help=f"Path to config.json (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"),
                        help="Logging level (default: $LOG_LEVEL or INFO)")

    # Service modes
    parser.add_argument("--once", action="store_true",
                        help="Run a single slot check and exit")
    parser.add_argument("--current", action="store_true",
                        help="Print all currently bookable slots and exit (does not notify)")
    parser.add_argument("--run-immediately", action="store_true",
                        help="Run the first check at startup instead of after one interval")
    parser.add_argument("--skip-self-check", action="store_true",
                        help="Do not test YCLIENTS authentication at startup")

    # Storage-only commands
    parser.add_argument("--list-subscribers", action="store_true",
                        help="List subscribed Telegram chat IDs")
    parser.add_argument("--add-subscriber", type=int, metavar="CHAT_ID",
                        help="Subscribe a Telegram chat ID")
    parser.add_argument("--remove-subscriber", type=int, metavar="CHAT_ID",
                        help="Unsubscribe a Telegram chat ID")
    parser.add_argument("--prune", action="store_true",
                        help=f"Delete seen slots older than {SEEN_SLOT_RETENTION.days} days")
    parser.add_argument("--stats", action="store_true",
                        help="Show subscriber and seen-slot counts")

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    admin = (
        args.list_subscribers
        or args.add_subscriber is not None
        or args.remove_subscriber is not None
        or args.prune
        or args.stats
    )

    if args.config != str(DEFAULT_CONFIG_PATH) and not Path(args.config).exists():
        parser.error(f"config file not found: {args.config}")

    try:
        config = load_config(args.config, validate=not admin)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if admin:
        run_admin_command(args, config)

    sys.exit(run_service(args, config))


if __name__ == "__main__":
    main()
