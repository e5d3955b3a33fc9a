from datetime import datetime, timedelta

import pytest

from slot_notifier.storage import Storage, StorageError


class SteppingClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now


@pytest.fixture
def db_clock():
    return SteppingClock(datetime(2025, 6, 1, 6, 0))


@pytest.fixture
def storage(tmp_path, db_clock):
    storage = Storage(f"sqlite:///{tmp_path / 'data' / 'notifier.db'}", clock=db_clock)
    yield storage
    storage.close()


class TestSeenSlots:
    def test_unknown_key_is_not_seen(self, storage):
        assert storage.is_seen("svc=1|staff=2|dt=x") is False

    def test_marked_key_is_seen(self, storage):
        storage.mark_seen("svc=1|staff=2|dt=x")

        assert storage.is_seen("svc=1|staff=2|dt=x") is True

    def test_mark_seen_is_idempotent(self, storage, db_clock):
        storage.mark_seen("k")
        db_clock.now += timedelta(days=1)
        storage.mark_seen("k")

        assert storage.get_stats() == (0, 1)

    def test_prune_removes_only_expired_records(self, storage, db_clock):
        start = db_clock.now
        storage.mark_seen("ten-days-old")
        db_clock.now = start + timedelta(days=7)
        storage.mark_seen("three-days-old")
        db_clock.now = start + timedelta(days=10)

        removed = storage.prune(timedelta(days=7))

        assert removed == 1
        assert storage.is_seen("ten-days-old") is False
        assert storage.is_seen("three-days-old") is True

    def test_prune_with_nothing_expired(self, storage):
        storage.mark_seen("fresh")

        assert storage.prune(timedelta(days=7)) == 0

    def test_database_directory_created(self, tmp_path, storage):
        assert (tmp_path / "data" / "notifier.db").exists()


class TestSubscribers:
    def test_add_and_list_in_subscription_order(self, storage, db_clock):
        assert storage.add_subscriber(222) is True
        db_clock.now += timedelta(minutes=1)
        assert storage.add_subscriber(111) is True

        assert storage.list_subscribers() == [222, 111]

    def test_add_twice_reports_existing(self, storage):
        storage.add_subscriber(111)

        assert storage.add_subscriber(111) is False
        assert storage.get_stats() == (1, 0)

    def test_remove(self, storage):
        storage.add_subscriber(111)

        assert storage.remove_subscriber(111) is True
        assert storage.remove_subscriber(111) is False
        assert storage.is_subscribed(111) is False

    def test_large_chat_ids_round_trip(self, storage):
        storage.add_subscriber(-1001234567890)

        assert storage.is_subscribed(-1001234567890) is True


def test_in_memory_database():
    storage = Storage("sqlite://")
    storage.mark_seen("k")

    assert storage.is_seen("k") is True
    assert storage.get_stats() == (0, 1)


def test_unreachable_database_is_storage_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")

    with pytest.raises(StorageError):
        Storage(f"sqlite:///{blocker / 'sub' / 'notifier.db'}")
