"""Notification and sync-state storage.

``NotificationStore`` is the persistence port the reconciler and cursor store
depend on. ``SQLiteStore`` is the on-disk implementation; ``MemoryStore``
keeps everything in dictionaries and is used by tests and dry runs.
"""

import dataclasses
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from .errors import StoreError
from .models import (
    CachedNotification,
    NotificationReason,
    SubjectType,
    SyncCursor,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


class NotificationStore(ABC):
    """Record store for cached notifications and per-account sync cursors."""

    @abstractmethod
    def get_notifications(self, thread_ids: Iterable[str]) -> Dict[str, CachedNotification]:
        """Point lookup of several threads; missing ids are absent from the result."""

    def get_notification(self, thread_id: str) -> Optional[CachedNotification]:
        return self.get_notifications([thread_id]).get(thread_id)

    @abstractmethod
    def save_notifications(self, notifications: List[CachedNotification]) -> None:
        """Insert or replace the given records atomically."""

    @abstractmethod
    def list_notifications(self, account_id: Optional[str] = None) -> List[CachedNotification]:
        """All records (optionally for one account), most recently updated first."""

    @abstractmethod
    def delete_notifications(self, thread_ids: Iterable[str]) -> int:
        """Delete by thread id. Returns the number of deleted records."""

    @abstractmethod
    def delete_all_for_account(self, account_id: str) -> int:
        pass

    @abstractmethod
    def account_ids(self) -> Set[str]:
        """Accounts that own at least one notification or cursor."""

    @abstractmethod
    def get_cursor(self, account_id: str) -> Optional[SyncCursor]:
        pass

    @abstractmethod
    def save_cursor(self, cursor: SyncCursor) -> None:
        pass

    @abstractmethod
    def delete_cursor(self, account_id: str) -> None:
        pass

    def close(self) -> None:
        pass


_NOTIFICATION_COLUMNS = (
    "thread_id", "account_id", "unread", "reason", "updated_at", "last_read_at",
    "subject_title", "subject_type", "subject_url", "latest_comment_url",
    "repository_id", "repository_name", "repository_full_name", "repository_owner",
    "repository_avatar_url", "is_private_repository",
    "archived", "snoozed", "snooze_until", "fetched_at", "locally_modified_at",
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _notification_to_row(n: CachedNotification) -> tuple:
    return (
        n.thread_id, n.account_id, int(n.unread), n.reason.value, _ts(n.updated_at),
        _ts(n.last_read_at), n.subject_title, n.subject_type.value, n.subject_url,
        n.latest_comment_url, n.repository_id, n.repository_name, n.repository_full_name,
        n.repository_owner, n.repository_avatar_url, int(n.is_private_repository),
        int(n.archived), int(n.snoozed), _ts(n.snooze_until), _ts(n.fetched_at),
        _ts(n.locally_modified_at),
    )


def _row_to_notification(row: sqlite3.Row) -> CachedNotification:
    return CachedNotification(
        thread_id=row["thread_id"],
        account_id=row["account_id"],
        unread=bool(row["unread"]),
        reason=NotificationReason.parse(row["reason"]),
        updated_at=parse_timestamp(row["updated_at"]),
        last_read_at=parse_timestamp(row["last_read_at"]),
        subject_title=row["subject_title"],
        subject_type=SubjectType.parse(row["subject_type"]),
        subject_url=row["subject_url"],
        latest_comment_url=row["latest_comment_url"],
        repository_id=row["repository_id"],
        repository_name=row["repository_name"],
        repository_full_name=row["repository_full_name"],
        repository_owner=row["repository_owner"],
        repository_avatar_url=row["repository_avatar_url"],
        is_private_repository=bool(row["is_private_repository"]),
        archived=bool(row["archived"]),
        snoozed=bool(row["snoozed"]),
        snooze_until=parse_timestamp(row["snooze_until"]),
        fetched_at=parse_timestamp(row["fetched_at"]),
        locally_modified_at=parse_timestamp(row["locally_modified_at"]),
    )


class SQLiteStore(NotificationStore):
    """SQLite-backed store. Callers serialize writes (see ``Reconciler``)."""

    def __init__(self, db_path: str):
        """
        Open the database and create tables if they don't exist.

        Args:
            db_path: Path to the SQLite database file, or ``:memory:``.
        """
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        with self.conn:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS notifications (
                    thread_id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    unread INTEGER NOT NULL,
                    reason TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    last_read_at TEXT,
                    subject_title TEXT NOT NULL,
                    subject_type TEXT NOT NULL,
                    subject_url TEXT,
                    latest_comment_url TEXT,
                    repository_id INTEGER NOT NULL,
                    repository_name TEXT NOT NULL,
                    repository_full_name TEXT NOT NULL,
                    repository_owner TEXT NOT NULL,
                    repository_avatar_url TEXT,
                    is_private_repository INTEGER NOT NULL DEFAULT 0,
                    archived INTEGER NOT NULL DEFAULT 0,
                    snoozed INTEGER NOT NULL DEFAULT 0,
                    snooze_until TEXT,
                    fetched_at TEXT NOT NULL,
                    locally_modified_at TEXT
                )
            """)
            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_notifications_account ON notifications (account_id)"
            )
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS sync_state (
                    account_id TEXT PRIMARY KEY,
                    last_modified TEXT,
                    last_polled_at TEXT,
                    poll_interval INTEGER NOT NULL DEFAULT 60
                )
            """)

    def get_notifications(self, thread_ids: Iterable[str]) -> Dict[str, CachedNotification]:
        ids = list(thread_ids)
        found: Dict[str, CachedNotification] = {}
        # Stay well below SQLITE_MAX_VARIABLE_NUMBER
        for start in range(0, len(ids), 500):
            chunk = ids[start:start + 500]
            placeholders = ",".join("?" for _ in chunk)
            cursor = self.conn.execute(
                f"SELECT * FROM notifications WHERE thread_id IN ({placeholders})", chunk
            )
            for row in cursor.fetchall():
                found[row["thread_id"]] = _row_to_notification(row)
        return found

    def save_notifications(self, notifications: List[CachedNotification]) -> None:
        if not notifications:
            return
        columns = ", ".join(_NOTIFICATION_COLUMNS)
        placeholders = ", ".join("?" for _ in _NOTIFICATION_COLUMNS)
        try:
            with self.conn:
                self.conn.executemany(
                    f"INSERT OR REPLACE INTO notifications ({columns}) VALUES ({placeholders})",
                    [_notification_to_row(n) for n in notifications],
                )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to save {len(notifications)} notification(s): {e}") from e

    def list_notifications(self, account_id: Optional[str] = None) -> List[CachedNotification]:
        if account_id is None:
            cursor = self.conn.execute("SELECT * FROM notifications ORDER BY updated_at DESC")
        else:
            cursor = self.conn.execute(
                "SELECT * FROM notifications WHERE account_id = ? ORDER BY updated_at DESC",
                (account_id,),
            )
        return [_row_to_notification(row) for row in cursor.fetchall()]

    def delete_notifications(self, thread_ids: Iterable[str]) -> int:
        ids = list(thread_ids)
        try:
            with self.conn:
                cursor = self.conn.executemany(
                    "DELETE FROM notifications WHERE thread_id = ?", [(i,) for i in ids]
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete notifications: {e}") from e

    def delete_all_for_account(self, account_id: str) -> int:
        try:
            with self.conn:
                cursor = self.conn.execute(
                    "DELETE FROM notifications WHERE account_id = ?", (account_id,)
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete notifications for {account_id}: {e}") from e

    def account_ids(self) -> Set[str]:
        cursor = self.conn.execute(
            "SELECT account_id FROM notifications UNION SELECT account_id FROM sync_state"
        )
        return {row[0] for row in cursor.fetchall()}

    def get_cursor(self, account_id: str) -> Optional[SyncCursor]:
        cursor = self.conn.execute(
            "SELECT * FROM sync_state WHERE account_id = ?", (account_id,)
        )
        row = cursor.fetchone()
        if not row:
            return None
        return SyncCursor(
            account_id=row["account_id"],
            last_modified=row["last_modified"],
            last_polled_at=parse_timestamp(row["last_polled_at"]),
            poll_interval=row["poll_interval"],
        )

    def save_cursor(self, cursor: SyncCursor) -> None:
        try:
            with self.conn:
                self.conn.execute(
                    "INSERT OR REPLACE INTO sync_state "
                    "(account_id, last_modified, last_polled_at, poll_interval) VALUES (?, ?, ?, ?)",
                    (
                        cursor.account_id,
                        cursor.last_modified,
                        _ts(cursor.last_polled_at),
                        cursor.poll_interval,
                    ),
                )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to save sync state for {cursor.account_id}: {e}") from e

    def delete_cursor(self, account_id: str) -> None:
        try:
            with self.conn:
                self.conn.execute("DELETE FROM sync_state WHERE account_id = ?", (account_id,))
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete sync state for {account_id}: {e}") from e

    def close(self) -> None:
        self.conn.close()


class MemoryStore(NotificationStore):
    """In-memory store. Records are copied in and out so callers never share state with it."""

    def __init__(self):
        self.notifications: Dict[str, CachedNotification] = {}
        self.cursors: Dict[str, SyncCursor] = {}
        self.write_count = 0    # number of mutating calls that changed something

    def get_notifications(self, thread_ids: Iterable[str]) -> Dict[str, CachedNotification]:
        return {
            thread_id: dataclasses.replace(self.notifications[thread_id])
            for thread_id in thread_ids
            if thread_id in self.notifications
        }

    def save_notifications(self, notifications: List[CachedNotification]) -> None:
        if not notifications:
            return
        for notification in notifications:
            self.notifications[notification.thread_id] = dataclasses.replace(notification)
        self.write_count += 1

    def list_notifications(self, account_id: Optional[str] = None) -> List[CachedNotification]:
        records = [
            dataclasses.replace(n)
            for n in self.notifications.values()
            if account_id is None or n.account_id == account_id
        ]
        return sorted(records, key=lambda n: n.updated_at, reverse=True)

    def delete_notifications(self, thread_ids: Iterable[str]) -> int:
        deleted = 0
        for thread_id in thread_ids:
            if self.notifications.pop(thread_id, None) is not None:
                deleted += 1
        if deleted:
            self.write_count += 1
        return deleted

    def delete_all_for_account(self, account_id: str) -> int:
        ids = [t for t, n in self.notifications.items() if n.account_id == account_id]
        return self.delete_notifications(ids)

    def account_ids(self) -> Set[str]:
        return {n.account_id for n in self.notifications.values()} | set(self.cursors)

    def get_cursor(self, account_id: str) -> Optional[SyncCursor]:
        cursor = self.cursors.get(account_id)
        return dataclasses.replace(cursor) if cursor else None

    def save_cursor(self, cursor: SyncCursor) -> None:
        self.cursors[cursor.account_id] = dataclasses.replace(cursor)
        self.write_count += 1

    def delete_cursor(self, account_id: str) -> None:
        if self.cursors.pop(account_id, None) is not None:
            self.write_count += 1
