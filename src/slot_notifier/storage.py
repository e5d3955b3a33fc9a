"""
SQLite persistence for seen slots and Telegram subscribers.

Seen-slot records are created once when a slot is first announced, never
updated, and removed by prune() after the retention window. Every operation
opens its own session, so the CLI can inspect or clean the database while
the polling loop is running.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy import BigInteger, Column, DateTime, Text, create_engine, func, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


Base = declarative_base()


class SeenSlot(Base):
    __tablename__ = "seen_slots"

    slot_key = Column(Text, primary_key=True)
    created_at = Column(DateTime, nullable=False)


class Subscriber(Base):
    __tablename__ = "subscribers"

    chat_id = Column(BigInteger, primary_key=True)
    created_at = Column(DateTime, nullable=False)


class StorageError(Exception):
    """Raised when a database operation fails."""


def _utcnow() -> datetime:
    # SQLite DateTime columns are naive; everything is stored as UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _create_engine(database_url: str):
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url)

    # check_same_thread=False: the loop thread and CLI share the engine
    connect_args = {"check_same_thread": False}
    if not url.database or url.database == ":memory:":
        return create_engine(database_url, connect_args=connect_args, poolclass=StaticPool)

    Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args=connect_args)


class Storage:
    """Dedup oracle and subscriber list backed by SQLAlchemy."""

    def __init__(
        self,
        database_url: str,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[logging.Logger] = None,
    ):
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)
        try:
            self.engine = _create_engine(database_url)
            self.SessionLocal = sessionmaker(autoflush=False, bind=self.engine)
            Base.metadata.create_all(self.engine)
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"Failed to open database {database_url}: {e}") from e
        self._log.info("Database migrated successfully")

    def close(self) -> None:
        self.engine.dispose()

    # --- Seen slots ---

    def is_seen(self, slot_key: str) -> bool:
        try:
            with self.SessionLocal() as db:
                return db.get(SeenSlot, slot_key) is not None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to check slot {slot_key}: {e}") from e

    def mark_seen(self, slot_key: str) -> None:
        """Record a slot as seen. Marking an already-seen key is a no-op."""
        try:
            with self.SessionLocal() as db:
                if db.get(SeenSlot, slot_key) is not None:
                    return
                db.add(SeenSlot(slot_key=slot_key, created_at=self._clock()))
                try:
                    db.commit()
                except IntegrityError:
                    # Inserted concurrently by another writer.
                    db.rollback()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to mark slot {slot_key}: {e}") from e

    def prune(self, older_than: timedelta) -> int:
        """
        Delete seen-slot records created before now - older_than.

        Returns:
            Number of removed records
        """
        cutoff = self._clock() - older_than
        try:
            with self.SessionLocal() as db:
                removed = (
                    db.query(SeenSlot)
                    .filter(SeenSlot.created_at < cutoff)
                    .delete(synchronize_session=False)
                )
                db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to clean old slots: {e}") from e

        if removed:
            self._log.info(f"Cleaned old slots removed={removed} older_than={older_than}")
        return removed

    # --- Subscribers ---

    def add_subscriber(self, chat_id: int) -> bool:
        """Subscribe a chat. Returns False if it was already subscribed."""
        try:
            with self.SessionLocal() as db:
                if db.get(Subscriber, chat_id) is not None:
                    return False
                db.add(Subscriber(chat_id=chat_id, created_at=self._clock()))
                try:
                    db.commit()
                except IntegrityError:
                    db.rollback()
                    return False
                return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to add subscriber {chat_id}: {e}") from e

    def remove_subscriber(self, chat_id: int) -> bool:
        """Unsubscribe a chat. Returns False if it was not subscribed."""
        try:
            with self.SessionLocal() as db:
                removed = db.query(Subscriber).filter(Subscriber.chat_id == chat_id).delete()
                db.commit()
                return bool(removed)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to remove subscriber {chat_id}: {e}") from e

    def is_subscribed(self, chat_id: int) -> bool:
        try:
            with self.SessionLocal() as db:
                return db.get(Subscriber, chat_id) is not None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to check subscriber {chat_id}: {e}") from e

    def list_subscribers(self) -> list[int]:
        try:
            with self.SessionLocal() as db:
                return list(db.scalars(select(Subscriber.chat_id).order_by(Subscriber.created_at)))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list subscribers: {e}") from e

    def get_stats(self) -> tuple[int, int]:
        """Return (subscriber count, seen slot count)."""
        try:
            with self.SessionLocal() as db:
                subscribers = db.scalar(select(func.count()).select_from(Subscriber))
                seen_slots = db.scalar(select(func.count()).select_from(SeenSlot))
                return subscribers or 0, seen_slots or 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get statistics: {e}") from e
